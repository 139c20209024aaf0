from __future__ import annotations

import json
import os
import select
import subprocess
import sys
import time
from pathlib import Path

import pytest

pytest.importorskip("pygls")

SRC = Path(__file__).resolve().parents[1] / "src"
DEADLINE_SECONDS = 20.0


def _write_rpc(stream, message: dict) -> None:
    payload = json.dumps(message).encode("utf-8")
    stream.write(f"Content-Length: {len(payload)}\r\n\r\n".encode("utf-8") + payload)
    stream.flush()


def _read_exact(stream, length: int, deadline: float) -> bytes:
    body = bytearray()
    while len(body) < length:
        remaining = max(0.0, deadline - time.monotonic())
        ready, _, _ = select.select([stream.fileno()], [], [], remaining)
        if not ready:
            raise AssertionError("server response timed out")
        chunk = os.read(stream.fileno(), length - len(body))
        if not chunk:
            raise AssertionError("server closed stdout")
        body.extend(chunk)
    return bytes(body)


def _read_rpc(stream, deadline: float) -> dict:
    header = b""
    while b"\r\n\r\n" not in header:
        header += _read_exact(stream, 1, deadline)
    length = 0
    for line in header.split(b"\r\n"):
        if line.lower().startswith(b"content-length:"):
            length = int(line.split(b":", 1)[1].strip())
    assert length > 0
    return json.loads(_read_exact(stream, length, deadline).decode("utf-8"))


def _read_until(stream, predicate, deadline: float) -> dict:
    while True:
        message = _read_rpc(stream, deadline)
        if predicate(message):
            return message


def test_server_round_trip_over_stdio(tmp_path: Path) -> None:
    source = tmp_path / "api.http"
    text = "FOO https://x\n###\nGET not-a-url\n"
    source.write_text(text, encoding="utf-8")
    uri = source.as_uri()

    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC), env.get("PYTHONPATH")]))
    proc = subprocess.Popen(
        [sys.executable, "-m", "http_lsp.server"],
        cwd=tmp_path,
        env=env,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
    )
    deadline = time.monotonic() + DEADLINE_SECONDS
    try:
        _write_rpc(
            proc.stdin,
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {"processId": None, "rootUri": tmp_path.as_uri(), "capabilities": {}},
            },
        )
        init = _read_until(proc.stdout, lambda m: m.get("id") == 1, deadline)
        capabilities = init["result"]["capabilities"]
        assert capabilities["codeLensProvider"] is not None
        assert "http-lsp.sendRequest" in capabilities["executeCommandProvider"]["commands"]

        _write_rpc(proc.stdin, {"jsonrpc": "2.0", "method": "initialized", "params": {}})
        _write_rpc(
            proc.stdin,
            {
                "jsonrpc": "2.0",
                "method": "textDocument/didOpen",
                "params": {
                    "textDocument": {"uri": uri, "languageId": "http", "version": 1, "text": text}
                },
            },
        )
        published = _read_until(
            proc.stdout,
            lambda m: m.get("method") == "textDocument/publishDiagnostics",
            deadline,
        )
        (diagnostic,) = published["params"]["diagnostics"]
        assert diagnostic["code"] == "InvalidMethod"

        _write_rpc(
            proc.stdin,
            {
                "jsonrpc": "2.0",
                "id": 2,
                "method": "textDocument/codeLens",
                "params": {"textDocument": {"uri": uri}},
            },
        )
        (lens,) = _read_until(proc.stdout, lambda m: m.get("id") == 2, deadline)["result"]
        arguments = lens["command"]["arguments"]
        assert arguments == [{"uri": uri, "version": 1, "index": 0}]

        _write_rpc(
            proc.stdin,
            {
                "jsonrpc": "2.0",
                "id": 3,
                "method": "workspace/executeCommand",
                "params": {"command": "http-lsp.sendRequest", "arguments": arguments},
            },
        )
        result = _read_until(proc.stdout, lambda m: m.get("id") == 3, deadline)["result"]
        assert result["status"] == "ok"
        assert result["summary"].startswith("InvalidUrl")
        written = (tmp_path / "api.responses.http").read_text(encoding="utf-8")
        assert "ERROR InvalidUrl" in written

        _write_rpc(proc.stdin, {"jsonrpc": "2.0", "id": 4, "method": "shutdown"})
        _read_until(proc.stdout, lambda m: m.get("id") == 4, deadline)
        _write_rpc(proc.stdin, {"jsonrpc": "2.0", "method": "exit"})
        proc.wait(timeout=DEADLINE_SECONDS)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
