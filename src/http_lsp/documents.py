"""Open-document state owned by the front end.

Every open or change replaces the document's text and ``ParseResult``
wholesale; runnable actions are plain ``(uri, version, index)`` tuples checked
against the current version when they are invoked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import unquote, urlparse

from http_lsp.model import ParseResult, Request, RunnableAction
from http_lsp.parser import parse, split_lines

logger = logging.getLogger("http_lsp.documents")


class DocumentState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Document:
    uri: str
    version: int
    text: str
    parse_result: ParseResult = field(default_factory=ParseResult)
    state: DocumentState = DocumentState.OPEN

    @property
    def path(self) -> Path:
        return uri_to_path(self.uri)

    def reparse(self) -> ParseResult:
        self.parse_result = parse(self.text)
        return self.parse_result


@dataclass(frozen=True)
class Resolution:
    request: Request | None
    notice: str | None = None


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


def _offset(text: str, line: int, character: int) -> int:
    lines = split_lines(text, keepends=True)
    if line >= len(lines):
        return len(text)
    prefix = sum(len(chunk) for chunk in lines[:line])
    content = lines[line].rstrip("\r\n")
    return prefix + min(character, len(content))


def apply_change(text: str, change: object) -> str:
    """Apply one ``didChange`` content change (whole-document or ranged)."""
    new_text = getattr(change, "text", "")
    change_range = getattr(change, "range", None)
    if change_range is None:
        return new_text
    start = _offset(text, change_range.start.line, change_range.start.character)
    end = _offset(text, change_range.end.line, change_range.end.character)
    return text[:start] + new_text + text[end:]


class DocumentStore:
    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}

    def get(self, uri: str) -> Document | None:
        return self._documents.get(uri)

    def open(self, uri: str, version: int, text: str) -> Document:
        document = Document(uri=uri, version=version, text=text)
        document.reparse()
        self._documents[uri] = document
        logger.debug(
            "opened %s v%d: %d requests, %d errors",
            uri,
            version,
            len(document.parse_result.requests),
            len(document.parse_result.errors),
        )
        return document

    def change(self, uri: str, version: int, text: str) -> Document | None:
        document = self._documents.get(uri)
        if document is None:
            logger.warning("change for unopened document %s", uri)
            return None
        if version <= document.version:
            logger.warning(
                "ignoring change for %s: version %d is not newer than %d",
                uri,
                version,
                document.version,
            )
            return None
        document.text = text
        document.version = version
        document.reparse()
        return document

    def close(self, uri: str) -> Document | None:
        document = self._documents.pop(uri, None)
        if document is not None:
            document.state = DocumentState.CLOSED
        return document

    def actions(self, uri: str) -> list[RunnableAction]:
        document = self._documents.get(uri)
        if document is None:
            return []
        return [
            RunnableAction(uri=uri, version=document.version, index=index)
            for index in range(len(document.parse_result.requests))
        ]

    def is_current(self, action: RunnableAction) -> bool:
        document = self._documents.get(action.uri)
        return document is not None and document.version == action.version

    def resolve(self, action: RunnableAction) -> Resolution:
        document = self._documents.get(action.uri)
        if document is None:
            return Resolution(None, f"{action.uri} is not open; request not sent")
        if document.version != action.version:
            return Resolution(
                None,
                f"Document changed since this action was listed "
                f"(v{action.version}, now v{document.version}); request not sent",
            )
        requests = document.parse_result.requests
        if not 0 <= action.index < len(requests):
            return Resolution(None, f"No request #{action.index} in {action.uri}")
        return Resolution(requests[action.index])
