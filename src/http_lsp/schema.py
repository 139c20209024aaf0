from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from http_lsp.model import ParseError, ParseResult, Request, RunnableAction


class ServerSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    timeout_seconds: float = Field(default=30.0, gt=0)
    max_redirects: int = Field(default=10, ge=0)
    results_path: Optional[str] = None
    log_file: Optional[str] = None


class SendRequestPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uri: str
    version: int
    index: int = Field(ge=0)

    @classmethod
    def from_action(cls, action: RunnableAction) -> "SendRequestPayload":
        return cls(uri=action.uri, version=action.version, index=action.index)

    def to_action(self) -> RunnableAction:
        return RunnableAction(uri=self.uri, version=self.version, index=self.index)


class SendRequestResponse(BaseModel):
    status: str
    summary: Optional[str] = None
    key: Optional[str] = None
    results_path: Optional[str] = None
    notice: Optional[str] = None
    errors: List[str] = []


class HeaderDTO(BaseModel):
    name: str
    value: str


class RequestDTO(BaseModel):
    index: int
    method: str
    url: str
    headers: List[HeaderDTO] = []
    body: Optional[str] = None
    span: Tuple[int, int]
    label: Optional[str] = None

    @classmethod
    def from_request(cls, index: int, request: Request) -> "RequestDTO":
        return cls(
            index=index,
            method=request.method,
            url=request.url,
            headers=[HeaderDTO(name=h.name, value=h.value) for h in request.headers],
            body=request.body,
            span=(request.span.start_line, request.span.end_line),
            label=request.label,
        )


class ParseErrorDTO(BaseModel):
    kind: str
    message: str
    line: int
    span: Tuple[int, int]

    @classmethod
    def from_error(cls, error: ParseError) -> "ParseErrorDTO":
        return cls(
            kind=error.kind.value,
            message=error.message,
            line=error.line,
            span=(error.span.start_line, error.span.end_line),
        )


class ParseResultDTO(BaseModel):
    requests: List[RequestDTO] = []
    errors: List[ParseErrorDTO] = []

    @classmethod
    def from_result(cls, result: ParseResult) -> "ParseResultDTO":
        return cls(
            requests=[
                RequestDTO.from_request(index, request)
                for index, request in enumerate(result.requests)
            ],
            errors=[ParseErrorDTO.from_error(error) for error in result.errors],
        )
