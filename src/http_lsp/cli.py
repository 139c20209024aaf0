from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer

from http_lsp.config import executor_config, resolve_settings, results_target
from http_lsp.executor import execute
from http_lsp.formatter import summary
from http_lsp.log import configure_logging
from http_lsp.model import ExecError, ParseResult
from http_lsp.parser import parse
from http_lsp.results import ResultsWriter, render_section, section_key
from http_lsp.schema import ParseResultDTO

app = typer.Typer(add_completion=False, help="Run HTTP requests from .http files.")


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise typer.BadParameter(f"cannot read {path}: {exc}") from exc


def _select_indices(
    result: ParseResult, index: Optional[int], run_all: bool
) -> list[int]:
    count = len(result.requests)
    if count == 0:
        raise typer.BadParameter("no requests found")
    if run_all:
        return list(range(count))
    selected = 0 if index is None else index
    if not 0 <= selected < count:
        raise typer.BadParameter(f"--index must be between 0 and {count - 1}")
    return [selected]


def _obj(ctx: typer.Context) -> dict:
    return ctx.obj if isinstance(ctx.obj, dict) else {}


@app.command()
def serve(
    log_level: str = typer.Option("INFO", "--log-level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file"),
) -> None:
    """Start the language server on stdin/stdout."""
    from http_lsp.server import start

    configure_logging(log_level, log_file)
    start()


@app.command()
def check(
    paths: List[Path] = typer.Argument(..., exists=True, dir_okay=False),
    json_output: bool = typer.Option(False, "--json"),
) -> None:
    """Parse request files and report their requests and errors."""
    failed = False
    for path in paths:
        result = parse(_read_source(path))
        if result.errors:
            failed = True
        if json_output:
            payload = {"path": str(path), **ParseResultDTO.from_result(result).model_dump()}
            typer.echo(json.dumps(payload, sort_keys=True))
            continue
        for index, request in enumerate(result.requests):
            label = f" ({request.label})" if request.label else ""
            typer.echo(
                f"{path}:{request.span.start_line + 1}: "
                f"[{index}] {request.method} {request.url}{label}"
            )
        for error in result.errors:
            typer.echo(f"{path}:{error.line + 1}: {error.kind.value}: {error.message}", err=True)
    if failed:
        raise typer.Exit(code=1)


@app.command()
def send(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    index: Optional[int] = typer.Option(None, "--index", "-i"),
    run_all: bool = typer.Option(False, "--all"),
    results: Optional[Path] = typer.Option(None, "--results"),
    timeout: Optional[float] = typer.Option(None, "--timeout"),
    max_redirects: Optional[int] = typer.Option(None, "--max-redirects"),
) -> None:
    """Execute requests from PATH and update the results document."""
    if run_all and index is not None:
        raise typer.BadParameter("--index and --all are mutually exclusive")
    result = parse(_read_source(path))
    indices = _select_indices(result, index, run_all)
    settings = resolve_settings(
        path.parent,
        {
            "timeout_seconds": timeout,
            "max_redirects": max_redirects,
            "results_path": str(results.resolve()) if results is not None else None,
        },
    )
    results_path, _ = results_target(settings, path, path.parent)
    transport = _obj(ctx).get("transport")
    writer = ResultsWriter()

    async def _run_one(idx: int) -> ExecError | None:
        request = result.requests[idx]
        outcome = await execute(request, executor_config(settings), transport=transport)
        key = section_key(path.name, result.requests, idx)
        await writer.write(results_path, key, render_section(key, request, outcome))
        typer.echo(f"[{idx}] {request.method} {request.url}: {summary(outcome)}")
        return outcome if isinstance(outcome, ExecError) else None

    async def _run() -> list[ExecError | None]:
        return await asyncio.gather(*(_run_one(idx) for idx in indices))

    try:
        outcomes = asyncio.run(_run())
    except OSError as exc:
        typer.echo(f"Failed to write results to {results_path}: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    failures = [failure for failure in outcomes if failure is not None]
    typer.echo(f"Results written to {results_path}")
    if failures:
        raise typer.Exit(code=1)


def main() -> None:  # pragma: no cover
    app(prog_name="http-lsp")


if __name__ == "__main__":  # pragma: no cover
    main()
