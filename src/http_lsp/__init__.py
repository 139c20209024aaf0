"""http-lsp package root."""

from http_lsp.exceptions import NeverRaise, NeverThrown
from http_lsp.invariants import never

__all__ = ["__version__", "NeverRaise", "NeverThrown", "never"]

__version__ = "0.1.0"
