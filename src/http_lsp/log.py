from __future__ import annotations

import logging
import sys
from pathlib import Path

LOGGER_NAME = "http_lsp"
_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", log_file: str | Path | None = None) -> None:
    """Route ``http_lsp.*`` records to stderr or ``log_file``.

    stdout carries the protocol stream and must never receive log output.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)
    logger.setLevel(level if isinstance(level, int) else level.upper())
    logger.propagate = False
