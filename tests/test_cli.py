from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from http_lsp import cli
from http_lsp.results import read_sections

runner = CliRunner()

TWO_REQUESTS = (
    "GET https://api.example.com/data\n"
    "\n"
    "### create user\n"
    "POST https://api.example.com/users\n"
    "Content-Type: application/json\n"
    "\n"
    '{"name":"x"}\n'
)


def _transport(calls: list[httpx.Request], status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status, text=f"{request.method} {request.url.path}")

    return httpx.MockTransport(handler)


def test_check_lists_requests_and_reports_errors(write_request_file) -> None:
    path = write_request_file(
        "GET https://a.example/1\n###\nFOO https://x\n### named\nPUT https://a.example/2\n"
    )
    result = runner.invoke(cli.app, ["check", str(path)])
    assert result.exit_code == 1
    assert f"{path}:1: [0] GET https://a.example/1" in result.output
    assert f"{path}:5: [1] PUT https://a.example/2 (named)" in result.output
    assert f"{path}:3: InvalidMethod" in result.output


def test_check_clean_file_json(write_request_file) -> None:
    path = write_request_file(TWO_REQUESTS)
    result = runner.invoke(cli.app, ["check", "--json", str(path)])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["path"] == str(path)
    assert payload["errors"] == []
    assert [request["method"] for request in payload["requests"]] == ["GET", "POST"]
    assert payload["requests"][1]["label"] == "create user"
    assert payload["requests"][1]["span"] == [3, 6]


def test_send_all_writes_every_section(write_request_file, tmp_path: Path) -> None:
    path = write_request_file(TWO_REQUESTS)
    calls: list[httpx.Request] = []
    result = runner.invoke(
        cli.app, ["send", str(path), "--all"], obj={"transport": _transport(calls)}
    )
    assert result.exit_code == 0, result.output
    assert "[0] GET https://api.example.com/data: 200 OK" in result.output
    assert "[1] POST https://api.example.com/users: 200 OK" in result.output
    target = tmp_path / "api.responses.http"
    assert f"Results written to {target}" in result.output
    sections = read_sections(target.read_text(encoding="utf-8"))
    assert set(sections) == {
        "api.http :: GET https://api.example.com/data",
        "api.http :: create user",
    }
    assert len(calls) == 2


def test_send_single_index_to_explicit_results(write_request_file, tmp_path: Path) -> None:
    path = write_request_file(TWO_REQUESTS)
    target = tmp_path / "out" / "results.http"
    calls: list[httpx.Request] = []
    result = runner.invoke(
        cli.app,
        ["send", str(path), "-i", "1", "--results", str(target)],
        obj={"transport": _transport(calls)},
    )
    assert result.exit_code == 0, result.output
    (sent,) = calls
    assert sent.method == "POST"
    assert "POST /users" in target.read_text(encoding="utf-8")


def test_send_reports_execution_errors(write_request_file) -> None:
    path = write_request_file("GET not-a-url\n")
    calls: list[httpx.Request] = []
    result = runner.invoke(cli.app, ["send", str(path)], obj={"transport": _transport(calls)})
    assert result.exit_code == 1
    assert "InvalidUrl" in result.output
    assert calls == []
    assert "ERROR InvalidUrl" in path.with_name("api.responses.http").read_text(encoding="utf-8")


def test_send_rejects_bad_selection(write_request_file) -> None:
    path = write_request_file(TWO_REQUESTS)
    out_of_range = runner.invoke(cli.app, ["send", str(path), "--index", "5"])
    assert out_of_range.exit_code == 2
    both = runner.invoke(cli.app, ["send", str(path), "--index", "0", "--all"])
    assert both.exit_code == 2
    empty = write_request_file("# nothing here\n", name="empty.http")
    assert runner.invoke(cli.app, ["send", str(empty)]).exit_code == 2


def test_send_write_failure_exits_2(write_request_file, tmp_path: Path) -> None:
    path = write_request_file(TWO_REQUESTS)
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    result = runner.invoke(
        cli.app,
        ["send", str(path), "--results", str(blocker / "out.http")],
        obj={"transport": _transport([])},
    )
    assert result.exit_code == 2
    assert "Failed to write results" in result.output


def test_serve_configures_logging_then_starts(monkeypatch) -> None:
    pytest.importorskip("pygls")
    from http_lsp import server

    seen: list[tuple] = []
    monkeypatch.setattr(
        cli, "configure_logging", lambda level, log_file: seen.append((level, log_file))
    )
    monkeypatch.setattr(server, "start", lambda: seen.append(("started",)))
    result = runner.invoke(cli.app, ["serve", "--log-level", "DEBUG"])
    assert result.exit_code == 0, result.output
    assert seen == [("DEBUG", None), ("started",)]
