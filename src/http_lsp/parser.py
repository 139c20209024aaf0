"""Request-file parser.

A request file is a sequence of blocks separated by ``###`` lines. Each block
holds at most one request::

    ### optional label
    # comments and blank lines
    POST https://api.example.com/users
    Content-Type: application/json

    {"name": "x"}

``parse`` never raises: a malformed block is skipped and reported as a
``ParseError`` so that the remaining blocks still parse.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from http_lsp.model import (
    Header,
    ParseError,
    ParseErrorKind,
    ParseResult,
    Request,
    Span,
)

METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"})

_SEPARATOR_RE = re.compile(r"^###(?:\s+(?P<label>.*?))?$")
_NAME_RE = re.compile(r"^(?:#|//)\s*@name\s+(?P<name>\S.*?)$")
_HTTP_VERSION_RE = re.compile(r"\s+HTTP/\d(?:\.\d)?$", re.IGNORECASE)
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class _Block:
    start: int
    end: int
    label: str | None


def split_lines(text: str, *, keepends: bool = False) -> list[str]:
    """Split on LSP line breaks only: ``\\r\\n``, ``\\r`` and ``\\n``.

    Unlike ``str.splitlines`` this keeps form feeds, ``\\u2028`` and friends
    inside their line, so line numbers match the editor's.
    """
    lines: list[str] = []
    start = 0
    for match in _LINE_BREAK_RE.finditer(text):
        end = match.end() if keepends else match.start()
        lines.append(text[start:end])
        start = match.end()
    if start < len(text):
        lines.append(text[start:])
    return lines


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_comment(line: str) -> bool:
    stripped = line.lstrip()
    return stripped.startswith("#") or stripped.startswith("//")


def separator_label(line: str) -> tuple[bool, str | None]:
    """Return ``(is_separator, label)`` for one line."""
    match = _SEPARATOR_RE.match(line.strip())
    if match is None:
        return False, None
    label = match.group("label")
    return True, (label or None)


def _split_blocks(lines: list[str]) -> list[_Block]:
    blocks: list[_Block] = []
    start = 0
    label: str | None = None
    for idx, line in enumerate(lines):
        is_separator, next_label = separator_label(line)
        if not is_separator:
            continue
        blocks.append(_Block(start=start, end=idx, label=label))
        start = idx + 1
        label = next_label
    blocks.append(_Block(start=start, end=len(lines), label=label))
    return blocks


def _last_content_line(lines: list[str], start: int, end: int) -> int:
    last = start
    for idx in range(start, end):
        if not _is_blank(lines[idx]):
            last = idx
    return last


def _block_span(lines: list[str], block: _Block, first: int) -> Span:
    return Span(first, _last_content_line(lines, first, block.end))


def _parse_request_line(line: str) -> tuple[str, str] | None:
    parts = line.strip().split(None, 1)
    if len(parts) < 2:
        return None
    method, url = parts[0], parts[1].strip()
    url = _HTTP_VERSION_RE.sub("", url)
    if not url:
        return None
    return method, url


def _parse_header(line: str) -> Header | None:
    name, colon, value = line.partition(":")
    if not colon:
        return None
    name = name.strip()
    if not name:
        return None
    return Header(name=name, value=value.strip())


def _parse_block(
    lines: list[str], block: _Block
) -> tuple[Request | None, ParseError | None]:
    label = block.label
    idx = block.start
    while idx < block.end:
        line = lines[idx]
        if _is_blank(line):
            idx += 1
            continue
        if _is_comment(line):
            match = _NAME_RE.match(line.strip())
            if match is not None:
                label = match.group("name").strip()
            idx += 1
            continue
        break
    if idx >= block.end:
        return None, None

    request_line_idx = idx
    span = _block_span(lines, block, request_line_idx)
    parsed = _parse_request_line(lines[request_line_idx])
    if parsed is None:
        return None, ParseError(
            kind=ParseErrorKind.MALFORMED_REQUEST_LINE,
            message=f"Expected 'METHOD URL', got {lines[request_line_idx].strip()!r}",
            line=request_line_idx,
            span=span,
        )
    method, url = parsed
    if method.upper() not in METHODS:
        return None, ParseError(
            kind=ParseErrorKind.INVALID_METHOD,
            message=f"Unknown HTTP method {method!r}",
            line=request_line_idx,
            span=span,
        )

    headers: list[Header] = []
    idx = request_line_idx + 1
    while idx < block.end and not _is_blank(lines[idx]):
        header = _parse_header(lines[idx])
        if header is None:
            return None, ParseError(
                kind=ParseErrorKind.MALFORMED_HEADER,
                message=f"Expected 'Name: value', got {lines[idx].strip()!r}",
                line=idx,
                span=span,
            )
        headers.append(header)
        idx += 1

    body_lines = lines[idx + 1 : block.end] if idx < block.end else []
    while body_lines and _is_blank(body_lines[0]):
        body_lines.pop(0)
    while body_lines and _is_blank(body_lines[-1]):
        body_lines.pop()
    body = "\n".join(body_lines) if body_lines else None

    request = Request(
        method=method.upper(),
        url=url,
        headers=tuple(headers),
        body=body,
        span=span,
        label=label,
    )
    return request, None


def parse(text: str) -> ParseResult:
    lines = split_lines(text)
    requests: list[Request] = []
    errors: list[ParseError] = []
    for block in _split_blocks(lines):
        request, error = _parse_block(lines, block)
        if request is not None:
            requests.append(request)
        if error is not None:
            errors.append(error)
    return ParseResult(requests=tuple(requests), errors=tuple(errors))


def request_at_line(result: ParseResult, line: int) -> int | None:
    """Index of the request whose span holds ``line``, else the nearest one above."""
    best: int | None = None
    for index, request in enumerate(result.requests):
        if request.span.start_line <= line:
            best = index
        else:
            break
    return best
