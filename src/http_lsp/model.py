"""Value types shared by the parser, executor, formatter and front end."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Span:
    start_line: int
    end_line: int


@dataclass(frozen=True)
class Header:
    name: str
    value: str


@dataclass(frozen=True)
class Request:
    method: str
    url: str
    headers: tuple[Header, ...] = ()
    body: str | None = None
    span: Span = Span(0, 0)
    label: str | None = None

    def header_values(self, name: str) -> list[str]:
        wanted = name.lower()
        return [header.value for header in self.headers if header.name.lower() == wanted]


class ParseErrorKind(str, Enum):
    INVALID_METHOD = "InvalidMethod"
    MALFORMED_HEADER = "MalformedHeader"
    MALFORMED_REQUEST_LINE = "MalformedRequestLine"


@dataclass(frozen=True)
class ParseError:
    kind: ParseErrorKind
    message: str
    line: int
    span: Span


@dataclass(frozen=True)
class ParseResult:
    requests: tuple[Request, ...] = ()
    errors: tuple[ParseError, ...] = ()


@dataclass(frozen=True)
class Response:
    status_code: int
    status_text: str
    headers: tuple[Header, ...]
    body: str
    elapsed: float
    http_version: str = "HTTP/1.1"

    @property
    def elapsed_ms(self) -> int:
        return int(round(self.elapsed * 1000))

    def content_type(self) -> str:
        for header in self.headers:
            if header.name.lower() == "content-type":
                return header.value
        return ""


class ExecErrorKind(str, Enum):
    INVALID_URL = "InvalidUrl"
    TIMEOUT = "Timeout"
    TOO_MANY_REDIRECTS = "TooManyRedirects"
    TRANSPORT = "Transport"


@dataclass(frozen=True)
class ExecError:
    kind: ExecErrorKind
    message: str


ExecOutcome = Response | ExecError


@dataclass(frozen=True)
class RunnableAction:
    """Editor-facing handle for one request of one document version."""

    uri: str
    version: int
    index: int
