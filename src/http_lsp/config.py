from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

from pydantic import ValidationError

from http_lsp.executor import ExecutorConfig
from http_lsp.results import default_results_path
from http_lsp.schema import ServerSettings

logger = logging.getLogger("http_lsp.config")

DEFAULT_CONFIG_NAME = "http-lsp.toml"
SETTINGS_SECTION = "http-lsp"

ENV_OVERRIDES = {
    "HTTP_LSP_TIMEOUT_SECONDS": "timeout_seconds",
    "HTTP_LSP_MAX_REDIRECTS": "max_redirects",
    "HTTP_LSP_RESULTS_PATH": "results_path",
    "HTTP_LSP_LOG_FILE": "log_file",
}

# Parsed TOML, env strings and client JSON all land in the same flat table.
TomlTable: TypeAlias = dict[str, object]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        logger.warning("cannot read config file %s", path)
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("ignoring malformed config file %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def http_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("http", {})
    return section if isinstance(section, dict) else {}


def env_defaults(environ: Mapping[str, str] | None = None) -> TomlTable:
    environ = os.environ if environ is None else environ
    values: TomlTable = {}
    for env_name, key in ENV_OVERRIDES.items():
        raw = environ.get(env_name, "").strip()
        if raw:
            values[key] = raw
    return values


def merge_payload(payload: Mapping[str, object], defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def client_settings(raw: object) -> TomlTable:
    """Extract our options from client-provided settings.

    Clients send either the options directly or nested under ``http-lsp``.
    """
    if not isinstance(raw, Mapping):
        return {}
    nested = raw.get(SETTINGS_SECTION)
    if isinstance(nested, Mapping):
        raw = nested
    return {str(key): value for key, value in raw.items()}


def resolve_settings(
    root: Path | None = None,
    overrides: Mapping[str, object] | None = None,
    *,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServerSettings:
    merged = merge_payload(env_defaults(environ), http_defaults(root, config_path))
    merged = merge_payload(overrides or {}, merged)
    try:
        return ServerSettings.model_validate(merged)
    except ValidationError as exc:
        logger.warning("invalid http-lsp settings, using defaults: %s", exc)
        return ServerSettings()


def executor_config(settings: ServerSettings) -> ExecutorConfig:
    return ExecutorConfig(
        timeout=settings.timeout_seconds,
        max_redirects=settings.max_redirects,
    )


def results_target(
    settings: ServerSettings, source: Path, root: Path | None = None
) -> tuple[Path, bool]:
    """Return ``(path, shared)`` for results of requests from ``source``.

    A configured ``results_path`` is shared by every source document; the
    default file next to the source lives and dies with that document.
    """
    if settings.results_path:
        path = Path(settings.results_path).expanduser()
        if not path.is_absolute():
            path = (root or source.parent) / path
        return path, True
    return default_results_path(source), False
