"""Diagnostic abstractions shared across the synchronization pipeline."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class DiagnosticEmitter(Protocol):
    """Interface used to surface warnings, errors, and structured events."""

    debug_enabled: bool

    def warning(self, message: str, exc: BaseException | None = None) -> None: ...

    def error(self, message: str, exc: BaseException | None = None) -> None: ...

    def event(self, name: str, payload: Mapping[str, Any]) -> None: ...


class NullEmitter:
    """Emitter that ignores every diagnostic."""

    debug_enabled: bool = False

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        return

    def error(self, message: str, exc: BaseException | None = None) -> None:
        return

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        return


class LoggingEmitter:
    """Emitter that forwards diagnostics to the standard logging module."""

    def __init__(
        self, *, logger_obj: logging.Logger | None = None, debug_enabled: bool = False
    ) -> None:
        self._logger = logger_obj or logger
        self.debug_enabled = debug_enabled

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        if exc is not None:
            self._logger.warning(message, exc_info=exc)
        else:
            self._logger.warning(message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        if exc is not None:
            self._logger.error(message, exc_info=exc)
        else:
            self._logger.error(message)

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        message = format_event_message(name, payload)
        if message:
            self._logger.info(message)
            return
        self._logger.debug("diagnostic event %s: %s", name, dict(payload))


def ensure_emitter(emitter: DiagnosticEmitter | None) -> DiagnosticEmitter:
    """Return a usable emitter, defaulting to the null implementation."""
    return emitter if emitter is not None else NullEmitter()


def format_event_message(name: str, payload: Mapping[str, Any]) -> str | None:
    """Return a human-friendly summary for selected diagnostic events."""
    data = dict(payload)

    if name == "node_added":
        key = data.get("key") or "<unknown>"
        output = data.get("output_name") or "<unnamed>"
        return f"Added TOC entry {output} for new topic {key}"

    if name == "node_pruned":
        key = data.get("key") or "<unknown>"
        return f"Removed TOC entry for missing topic {key}"

    if name == "name_deduplicated":
        candidate = data.get("candidate") or "<unknown>"
        resolved = data.get("resolved") or "<unknown>"
        return f"Renamed duplicate {candidate} to {resolved}"

    if name == "budget_shrunk":
        before = data.get("from")
        after = data.get("to")
        longest = data.get("longest")
        suffix = f" (longest path {longest})" if longest is not None else ""
        return f"Segment length budget reduced from {before} to {after}{suffix}"

    if name == "tree_persisted":
        path = data.get("path") or "<unknown>"
        count = data.get("nodes")
        details = f" ({count} topics)" if count is not None else ""
        return f"Wrote TOC {path}{details}"

    if name == "metadata_generated":
        key = data.get("key") or "<unknown>"
        return f"Generated new metadata for {key}"

    if name == "globals_promoted":
        names = data.get("names") or []
        return f"Promoted global attributes: {', '.join(names)}"

    return None


__all__ = [
    "DiagnosticEmitter",
    "LoggingEmitter",
    "NullEmitter",
    "ensure_emitter",
    "format_event_message",
]
