from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import httpx
from pygls.lsp.server import LanguageServer
from pydantic import ValidationError
from lsprotocol.types import (
    INITIALIZE,
    TEXT_DOCUMENT_CODE_ACTION,
    TEXT_DOCUMENT_CODE_LENS,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_CLOSE,
    TEXT_DOCUMENT_DID_OPEN,
    WORKSPACE_DID_CHANGE_CONFIGURATION,
    CodeAction,
    CodeActionKind,
    CodeActionParams,
    CodeLens,
    CodeLensOptions,
    CodeLensParams,
    Command,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeConfigurationParams,
    DidChangeTextDocumentParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    InitializeParams,
    LogMessageParams,
    MessageType,
    Position,
    PublishDiagnosticsParams,
    Range,
    ShowMessageParams,
    TextDocumentSyncKind,
)

from http_lsp import __version__
from http_lsp.config import (
    client_settings,
    executor_config,
    resolve_settings,
    results_target,
)
from http_lsp.documents import Document, DocumentStore, apply_change, uri_to_path
from http_lsp.executor import execute
from http_lsp.formatter import summary
from http_lsp.invariants import never, require_not_none
from http_lsp.log import configure_logging
from http_lsp.model import ExecError, ParseError, Request, RunnableAction
from http_lsp.parser import request_at_line
from http_lsp.results import ResultsWriter, render_section, section_key
from http_lsp.schema import SendRequestPayload, SendRequestResponse, ServerSettings

logger = logging.getLogger("http_lsp.server")

SEND_REQUEST_COMMAND = "http-lsp.sendRequest"
DIAGNOSTIC_SOURCE = "http-lsp"


class HttpLanguageServer(LanguageServer):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.documents = DocumentStore()
        self.results = ResultsWriter()
        self.settings = ServerSettings()
        self.root: Path | None = None
        self.transport: httpx.AsyncBaseTransport | None = None


server = HttpLanguageServer(
    "http-lsp",
    __version__,
    text_document_sync_kind=TextDocumentSyncKind.Full,
)


def _require_payload(payload: object, *, command: str) -> dict[str, object]:
    if payload is None:
        never("missing command payload", command=command)
    if not isinstance(payload, dict):
        never(
            "invalid command payload type",
            command=command,
            payload_type=type(payload).__name__,
        )
    return payload


def _diagnostic(error: ParseError) -> Diagnostic:
    return Diagnostic(
        range=Range(
            start=Position(line=error.line, character=0),
            end=Position(line=max(error.line, error.span.end_line) + 1, character=0),
        ),
        message=error.message,
        severity=DiagnosticSeverity.Error,
        code=error.kind.value,
        source=DIAGNOSTIC_SOURCE,
    )


def _publish(ls: HttpLanguageServer, uri: str, document: Document | None) -> None:
    diagnostics = []
    version = None
    if document is not None:
        diagnostics = [_diagnostic(error) for error in document.parse_result.errors]
        version = document.version
    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, version=version, diagnostics=diagnostics)
    )


def _notify(ls: HttpLanguageServer, kind: MessageType, message: str) -> None:
    ls.window_show_message(ShowMessageParams(type=kind, message=message))


def _trace(ls: HttpLanguageServer, message: str) -> None:
    logger.info(message)
    ls.window_log_message(LogMessageParams(type=MessageType.Log, message=message))


def _action_title(request: Request) -> str:
    if request.label:
        return f"▶ Send {request.method} {request.label}"
    return f"▶ Send {request.method} {request.url}"


def _send_command(action: RunnableAction, request: Request) -> Command:
    payload: dict[str, object] = SendRequestPayload.from_action(action).model_dump()
    return Command(
        title=_action_title(request),
        command=SEND_REQUEST_COMMAND,
        arguments=[payload],
    )


@server.feature(INITIALIZE)
def initialize(ls: HttpLanguageServer, params: InitializeParams) -> None:
    root: Path | None = None
    if params.root_uri:
        root = uri_to_path(params.root_uri)
    elif params.root_path:
        root = Path(params.root_path)
    ls.root = root
    ls.settings = resolve_settings(root, client_settings(params.initialization_options))
    if ls.settings.log_file:
        configure_logging(logging.getLogger("http_lsp").level, ls.settings.log_file)
    logger.info("initialized for %s with %s", root, ls.settings)


@server.feature(WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(
    ls: HttpLanguageServer, params: DidChangeConfigurationParams
) -> None:
    ls.settings = resolve_settings(ls.root, client_settings(params.settings))
    logger.info("settings updated: %s", ls.settings)


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: HttpLanguageServer, params: DidOpenTextDocumentParams) -> None:
    item = params.text_document
    document = ls.documents.open(item.uri, item.version, item.text)
    _publish(ls, item.uri, document)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: HttpLanguageServer, params: DidChangeTextDocumentParams) -> None:
    uri = params.text_document.uri
    current = ls.documents.get(uri)
    if current is None:
        logger.warning("didChange for unopened document %s", uri)
        return
    text = current.text
    for change in params.content_changes:
        text = apply_change(text, change)
    document = ls.documents.change(uri, params.text_document.version, text)
    if document is not None:
        _publish(ls, uri, document)


@server.feature(TEXT_DOCUMENT_DID_CLOSE)
def did_close(ls: HttpLanguageServer, params: DidCloseTextDocumentParams) -> None:
    uri = params.text_document.uri
    ls.documents.close(uri)
    _publish(ls, uri, None)


@server.feature(TEXT_DOCUMENT_CODE_LENS, CodeLensOptions(resolve_provider=False))
def code_lens(ls: HttpLanguageServer, params: CodeLensParams) -> list[CodeLens]:
    uri = params.text_document.uri
    document = ls.documents.get(uri)
    if document is None:
        return []
    lenses: list[CodeLens] = []
    for action in ls.documents.actions(uri):
        request = document.parse_result.requests[action.index]
        anchor = Position(line=request.span.start_line, character=0)
        lenses.append(
            CodeLens(
                range=Range(start=anchor, end=anchor),
                command=_send_command(action, request),
            )
        )
    return lenses


@server.feature(TEXT_DOCUMENT_CODE_ACTION)
def code_action(ls: HttpLanguageServer, params: CodeActionParams) -> list[CodeAction]:
    uri = params.text_document.uri
    document = ls.documents.get(uri)
    if document is None:
        return []
    index = request_at_line(document.parse_result, params.range.start.line)
    if index is None:
        return []
    request = document.parse_result.requests[index]
    action = RunnableAction(uri=uri, version=document.version, index=index)
    command = _send_command(action, request)
    return [
        CodeAction(
            title=command.title,
            kind=CodeActionKind.Empty,
            command=command,
            is_preferred=True,
        )
    ]


@server.command(SEND_REQUEST_COMMAND)
async def send_request(ls: HttpLanguageServer, payload: dict | None = None) -> dict:
    payload = _require_payload(payload, command=SEND_REQUEST_COMMAND)
    try:
        action = SendRequestPayload.model_validate(payload).to_action()
    except ValidationError as exc:
        return SendRequestResponse(status="invalid", errors=[str(exc)]).model_dump()

    resolution = ls.documents.resolve(action)
    if resolution.request is None:
        notice = resolution.notice or "request not sent"
        _notify(ls, MessageType.Warning, notice)
        return SendRequestResponse(status="stale", notice=notice).model_dump()

    request = resolution.request
    document = require_not_none(
        ls.documents.get(action.uri), reason="resolved action has no document", uri=action.uri
    )
    source = document.path
    key = section_key(source.name, document.parse_result.requests, action.index)
    results_path, shared = results_target(ls.settings, source, ls.root)

    _trace(ls, f"Executing {request.method} {request.url}")
    outcome = await execute(request, executor_config(ls.settings), transport=ls.transport)
    outcome_summary = summary(outcome)
    _trace(ls, f"{request.method} {request.url}: {outcome_summary}")

    if not shared and not ls.documents.is_current(action):
        notice = (
            f"{request.method} {request.url} finished after its document "
            f"changed or closed; result discarded"
        )
        _notify(ls, MessageType.Warning, notice)
        return SendRequestResponse(
            status="discarded", summary=outcome_summary, key=key, notice=notice
        ).model_dump()

    section = render_section(key, request, outcome)
    try:
        await ls.results.write(results_path, key, section)
    except OSError as exc:
        message = f"Failed to write response to {results_path}: {exc}"
        logger.error(message)
        _notify(ls, MessageType.Error, message)
        return SendRequestResponse(
            status="write_failed",
            summary=outcome_summary,
            key=key,
            results_path=str(results_path),
            errors=[str(exc)],
        ).model_dump()

    severity = MessageType.Error if isinstance(outcome, ExecError) else MessageType.Info
    _notify(ls, severity, f"{outcome_summary} - written to {results_path.name}")
    return SendRequestResponse(
        status="ok",
        summary=outcome_summary,
        key=key,
        results_path=str(results_path),
    ).model_dump()


def start(start_fn: Callable[[], None] | None = None) -> None:
    """Serve the protocol on stdin/stdout."""
    (start_fn or server.start_io)()


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover
