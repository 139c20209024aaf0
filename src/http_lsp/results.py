"""Results document: one section per executed request, updated in place.

Sections are delimited by marker lines carrying the section key::

    ### >>> api.http :: GET https://api.example.com/data
    # 2026-10-19 12:00:00
    GET https://api.example.com/data

    HTTP/1.1 200 OK (42ms)
    ...
    ### <<< api.http :: GET https://api.example.com/data

The key is derived from the source file name and the request label, or from
method and URL when the request has no label. Requests that share a key in one
document get an ordinal suffix (``[2]``, ``[3]``, ...).
Request or response lines that start like a marker are written behind a
``# `` prefix so they never delimit a section.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from http_lsp.formatter import format_request, format_result
from http_lsp.model import ExecOutcome, Request
from http_lsp.parser import split_lines

logger = logging.getLogger("http_lsp.results")

BEGIN_MARKER = "### >>> "
END_MARKER = "### <<< "
DEFAULT_SUFFIX = ".responses.http"


def default_results_path(source: Path) -> Path:
    return source.with_name(source.stem + DEFAULT_SUFFIX)


def _base_key(request: Request) -> str:
    if request.label:
        return request.label
    return f"{request.method} {request.url}"


def section_key(source_name: str, requests: tuple[Request, ...], index: int) -> str:
    base = _base_key(requests[index])
    ordinal = sum(1 for other in requests[: index + 1] if _base_key(other) == base)
    key = f"{source_name} :: {base}"
    if ordinal > 1:
        key = f"{key} [{ordinal}]"
    return key


def _escape_markers(text: str) -> str:
    """Comment out lines that would read as section markers."""
    return "".join(
        f"# {line}" if line.startswith((BEGIN_MARKER, END_MARKER)) else line
        for line in split_lines(text, keepends=True)
    )


def render_section(
    key: str,
    request: Request,
    outcome: ExecOutcome,
    *,
    now: datetime | None = None,
) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    parts = [
        f"{BEGIN_MARKER}{key}\n",
        f"# {stamp}\n",
        _escape_markers(format_request(request)),
        "\n",
        _escape_markers(format_result(outcome)),
        f"{END_MARKER}{key}\n",
    ]
    return "".join(parts)


def upsert_section(text: str, key: str, section: str) -> str:
    """Replace the section named ``key`` in ``text`` or append it."""
    lines = split_lines(text, keepends=True)
    begin = f"{BEGIN_MARKER}{key}"
    end = f"{END_MARKER}{key}"
    start_idx: int | None = None
    for idx, line in enumerate(lines):
        if line.rstrip("\r\n") == begin:
            start_idx = idx
            break
    if start_idx is None:
        prefix = text
        if prefix and not prefix.endswith("\n"):
            prefix += "\n"
        if prefix and not prefix.endswith("\n\n"):
            prefix += "\n"
        return prefix + section
    stop_idx = len(lines)
    for idx in range(start_idx + 1, len(lines)):
        if lines[idx].rstrip("\r\n") == end:
            stop_idx = idx + 1
            break
    return "".join(lines[:start_idx]) + section + "".join(lines[stop_idx:])


def read_sections(text: str) -> dict[str, str]:
    """Map each complete section key to its section text (markers included)."""
    sections: dict[str, str] = {}
    current: str | None = None
    buffer: list[str] = []
    for line in split_lines(text, keepends=True):
        bare = line.rstrip("\r\n")
        if current is None:
            if bare.startswith(BEGIN_MARKER):
                current = bare[len(BEGIN_MARKER) :]
                buffer = [line]
            continue
        buffer.append(line)
        if bare == f"{END_MARKER}{current}":
            sections[current] = "".join(buffer)
            current = None
    return sections


def _replace_file(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_section(path: Path, key: str, section: str) -> None:
    try:
        existing = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        existing = ""
    _replace_file(path, upsert_section(existing, key, section))


class ResultsWriter:
    """Serialises section writes per results file, in completion order."""

    def __init__(self) -> None:
        self._locks: dict[Path, asyncio.Lock] = {}

    def _lock_for(self, path: Path) -> asyncio.Lock:
        resolved = path.resolve()
        lock = self._locks.get(resolved)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[resolved] = lock
        return lock

    async def write(self, path: Path, key: str, section: str) -> None:
        async with self._lock_for(path):
            logger.debug("writing section %r to %s", key, path)
            await asyncio.to_thread(write_section, path, key, section)
