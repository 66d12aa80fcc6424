"""Custom exception hierarchy for the docset synchronization pipeline."""

from __future__ import annotations

from collections.abc import Iterable


class DocsetError(RuntimeError):
    """Base exception for docset synchronization failures."""


class ConfigError(DocsetError):
    """Raised when the run configuration cannot be validated."""


class ConsistencyError(DocsetError):
    """Fatal structural corruption detected in the canonical tree.

    Consistency errors must abort the run before anything is written so the
    previously persisted tree stays valid for a retry.
    """

    exit_code = 3


class DuplicateAssetIdError(ConsistencyError):
    """Raised when two nodes of the canonical tree share an asset id."""

    def __init__(self, asset_id: str, keys: Iterable[str]) -> None:
        self.asset_id = asset_id
        self.keys = tuple(keys)
        joined = " and ".join(self.keys)
        super().__init__(
            f"Duplicate AssetID '{asset_id}' found for {joined}. Resolve this conflict, "
            "then re-run. If a topic has been published with that AssetID it has "
            "precedence, otherwise precedence goes to the older document."
        )


class DuplicateOutputNameError(ConsistencyError):
    """Raised when two nodes of the canonical tree share an output name."""

    def __init__(self, output_name: str, keys: Iterable[str]) -> None:
        self.output_name = output_name
        self.keys = tuple(keys)
        super().__init__(
            f"Output name '{output_name}' is assigned to {' and '.join(self.keys)}."
        )


class OrphanedNodeError(ConsistencyError):
    """Raised when a topic cannot be attached below its recorded parent."""

    def __init__(self, key: str, parent_key: str | None) -> None:
        self.key = key
        self.parent_key = parent_key
        super().__init__(
            f"Topic '{key}' references parent '{parent_key}' which is not in the TOC. "
            "Has the parent been deleted, renamed, or moved?"
        )


class MovedNodeError(ConsistencyError):
    """Raised when a source topic sits below a different parent than its TOC entry."""

    def __init__(self, key: str, recorded_parent: str | None, parent_key: str | None) -> None:
        self.key = key
        self.recorded_parent = recorded_parent
        self.parent_key = parent_key
        recorded = f"'{recorded_parent}'" if recorded_parent else "the top level"
        current = f"'{parent_key}'" if parent_key else "the top level"
        super().__init__(
            f"Topic '{key}' is recorded below {recorded} but the source now places it "
            f"below {current}. Move it back, or move its TOC entry before re-running."
        )


class PathBudgetError(ConsistencyError):
    """Raised when no segment budget makes every output path fit the ceiling."""

    def __init__(self, path: str, length: int, ceiling: int, segment_length: int) -> None:
        self.path = path
        self.length = length
        self.ceiling = ceiling
        self.segment_length = segment_length
        super().__init__(
            f"Path '{path}' ({length} characters with offset) cannot be shortened below "
            f"the {ceiling} character ceiling (segment budget reached {segment_length}). "
            "Build closer to the drive root or lower the destination offset."
        )


class MetadataMissingError(ConsistencyError):
    """Raised when a topic has no metadata and synthesis is not permitted."""

    def __init__(self, key: str, reason: str | None = None) -> None:
        self.key = key
        detail = reason or (
            "Re-run interactively, pass --generate, or restore the metadata file."
        )
        super().__init__(f"No valid metadata available for '{key}'. {detail}")


class TreeFormatError(ConsistencyError):
    """Raised when a persisted canonical tree cannot be parsed."""


class MetadataFormatError(ConsistencyError):
    """Raised when a persisted metadata record exists but cannot be read."""


class OperationCancelled(DocsetError):
    """Raised when the operator declines to continue at a prompt."""


class WriteFailedError(DocsetError):
    """Raised when a file cannot be written after the allowed attempts."""

    def __init__(self, path: str, attempts: int, cause: BaseException | None = None) -> None:
        self.path = path
        self.attempts = attempts
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to write '{path}' after {attempts} attempts{detail}")


class ToolExecutionError(DocsetError):
    """Raised when an external converter or compiler fails to execute properly."""

    def __init__(self, tool: str, message: str, *, stderr: str = "", returncode: int | None = None):
        self.tool = tool
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"{tool}: {message}")


def exception_messages(exc: BaseException) -> list[str]:
    """Return the collected message chain for an exception and its causes."""
    messages: list[str] = []
    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        text = str(current).strip()
        if text:
            first_line = text.splitlines()[0].strip()
            if first_line:
                messages.append(first_line)
        current = current.__cause__ or current.__context__
    return messages


def exception_hint(exc: BaseException) -> str | None:
    """Return the most specific message available for an exception chain."""
    messages = exception_messages(exc)
    return messages[-1] if messages else None


__all__ = [
    "ConfigError",
    "ConsistencyError",
    "DocsetError",
    "DuplicateAssetIdError",
    "DuplicateOutputNameError",
    "MetadataFormatError",
    "MetadataMissingError",
    "MovedNodeError",
    "OperationCancelled",
    "OrphanedNodeError",
    "PathBudgetError",
    "ToolExecutionError",
    "TreeFormatError",
    "WriteFailedError",
    "exception_hint",
    "exception_messages",
]
