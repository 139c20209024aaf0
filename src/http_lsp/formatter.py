from __future__ import annotations

import json

from http_lsp.model import ExecError, ExecOutcome, Request, Response


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    if not media_type:
        return False
    subtype = media_type.partition("/")[2]
    return subtype == "json" or subtype.endswith("+json")


def format_body(response: Response) -> str:
    """Pretty-print structured bodies; anything else passes through verbatim."""
    if not _is_json(response.content_type()):
        return response.body
    try:
        value = json.loads(response.body)
    except ValueError:
        return response.body
    return json.dumps(value, indent=2, ensure_ascii=False)


def format_response(response: Response) -> str:
    lines = [
        f"{response.http_version} {response.status_code} {response.status_text}"
        f" ({response.elapsed_ms}ms)"
    ]
    lines.extend(f"{header.name}: {header.value}" for header in response.headers)
    lines.append("")
    body = format_body(response)
    if body:
        lines.append(body)
    return "\n".join(lines) + "\n"


def format_error(error: ExecError) -> str:
    return f"ERROR {error.kind.value}\n{error.message}\n"


def format_result(outcome: ExecOutcome) -> str:
    if isinstance(outcome, ExecError):
        return format_error(outcome)
    return format_response(outcome)


def format_request(request: Request) -> str:
    lines = [f"{request.method} {request.url}"]
    lines.extend(f"{header.name}: {header.value}" for header in request.headers)
    if request.body is not None:
        lines.append("")
        lines.append(request.body)
    return "\n".join(lines) + "\n"


def summary(outcome: ExecOutcome) -> str:
    if isinstance(outcome, ExecError):
        return f"{outcome.kind.value}: {outcome.message}"
    return f"{outcome.status_code} {outcome.status_text} ({outcome.elapsed_ms}ms)"
