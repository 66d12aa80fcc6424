"""CLI command implementations exposed via `helpsync.ui.cli`."""

from __future__ import annotations

from .check import check
from .to_help import to_help
from .to_markdown import to_markdown


__all__ = ["check", "to_help", "to_markdown"]
