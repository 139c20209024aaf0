from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx

from http_lsp.model import ExecError, ExecErrorKind, ExecOutcome, Header, Request, Response

logger = logging.getLogger("http_lsp.executor")

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_REDIRECTS = 10
_SCHEMES = frozenset({"http", "https"})


@dataclass(frozen=True)
class ExecutorConfig:
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_redirects: int = DEFAULT_MAX_REDIRECTS


def _resolve_url(raw: str) -> httpx.URL | ExecError:
    try:
        url = httpx.URL(raw)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        return ExecError(ExecErrorKind.INVALID_URL, f"Cannot parse URL {raw!r}: {exc}")
    if not url.is_absolute_url or url.scheme not in _SCHEMES or not url.host:
        return ExecError(
            ExecErrorKind.INVALID_URL,
            f"URL {raw!r} is not an absolute http(s) URL",
        )
    return url


def _response_headers(response: httpx.Response) -> tuple[Header, ...]:
    encoding = response.headers.encoding
    return tuple(
        Header(name=key.decode(encoding), value=value.decode(encoding))
        for key, value in response.headers.raw
    )


async def execute(
    request: Request,
    config: ExecutorConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ExecOutcome:
    """Send ``request`` and return the ``Response`` or an ``ExecError`` value.

    HTTP error statuses are successful outcomes here. Only URL problems,
    timeouts, redirect loops and transport failures become ``ExecError``.
    """
    config = config or ExecutorConfig()
    url = _resolve_url(request.url)
    if isinstance(url, ExecError):
        return url

    # Header text goes out as UTF-8 bytes.
    headers = [
        (header.name.encode("utf-8"), header.value.encode("utf-8"))
        for header in request.headers
    ]
    kwargs: dict[str, object] = {"headers": headers}
    if request.body is not None:
        kwargs["content"] = request.body.encode("utf-8")

    logger.debug("dispatch %s %s", request.method, url)
    start = time.perf_counter()
    try:
        async with httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(config.timeout),
            follow_redirects=True,
            max_redirects=config.max_redirects,
        ) as client:
            try:
                outgoing = client.build_request(request.method, url, **kwargs)
            except (TypeError, ValueError) as exc:
                return ExecError(ExecErrorKind.TRANSPORT, f"Cannot build request: {exc}")
            response = await asyncio.wait_for(
                client.send(outgoing),
                timeout=config.timeout,
            )
            body = response.text
    except (httpx.TimeoutException, asyncio.TimeoutError):
        return ExecError(
            ExecErrorKind.TIMEOUT,
            f"Request timed out after {config.timeout:g}s",
        )
    except httpx.TooManyRedirects:
        return ExecError(
            ExecErrorKind.TOO_MANY_REDIRECTS,
            f"Exceeded {config.max_redirects} redirects",
        )
    except httpx.InvalidURL as exc:
        return ExecError(ExecErrorKind.INVALID_URL, str(exc))
    except httpx.RequestError as exc:
        detail = str(exc) or type(exc).__name__
        logger.info("transport failure for %s %s: %s", request.method, url, detail)
        return ExecError(ExecErrorKind.TRANSPORT, detail)
    elapsed = time.perf_counter() - start

    return Response(
        status_code=response.status_code,
        status_text=response.reason_phrase,
        headers=_response_headers(response),
        body=body,
        elapsed=elapsed,
        http_version=response.http_version,
    )
