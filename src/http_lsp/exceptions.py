"""Exception markers for http-lsp."""

from __future__ import annotations


class NeverRaise(RuntimeError):
    """Sentinel exception for code paths that a well-behaved client cannot reach.

    The front end raises it when a protocol contract is broken (for example a
    command invoked with a payload that is not an object). ``env`` carries the
    offending values for the log record.
    """

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})


class NeverThrown(NeverRaise):
    """Alias for NeverRaise used by the explicit never() marker."""
