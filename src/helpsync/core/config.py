"""Configuration models used by the synchronization pipeline.

SyncConfig

`max_segment_length` (`int`)
: Initial budget for one derived name segment, before uniqueness suffixes.
  The path budgeter lowers it when generated paths would be too long.

`path_ceiling` (`int`)
: Exclusive upper bound for the length of a full output path plus the
  destination offset. Defaults to 250, the most restrictive target.

`path_offset` (`int`)
: Minimum destination directory length to reserve. The effective offset is
  the larger of this value and the length of the actual output directory.

`min_segment_length` (`int`)
: Budget floor. Reaching it without fitting the ceiling is fatal.

`max_budget_iterations` (`int`)
: Hard limit on rebuilds performed by the path budgeter.

`root_collection_name` (`str | None`)
: Name for the top-level Markdown file and directory instead of the one
  derived from the first topic title. Ignored for rootless TOCs.

`prune_missing` (`bool`)
: Remove TOC entries whose source topic disappeared. By default they are kept
  so a temporarily missing topic does not lose its identity.

`allow_rootless` (`bool`)
: Accept a Markdown tree whose top level holds more than one topic.

`quiet` (`bool`)
: Suppress every prompt and apply safe defaults instead.

`generate_metadata` (`bool`)
: Allow minting new metadata for topics that have none, without prompting.

`strict_markdown` (`bool`)
: Read Markdown as `markdown_strict` instead of GitHub-flavoured Markdown.

`write_attempts` (`int`)
: Attempts made for every file write before the failure is reported.

`pandoc_path` / `hxcomp_path` (`str`)
: Executables used for conversion and archive compilation.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
import yaml

from .exceptions import ConfigError


DEFAULT_PATH_CEILING = 250
DEFAULT_SEGMENT_LENGTH = 50
DEFAULT_PATH_OFFSET = 75


class SyncConfig(BaseModel):
    """Settings shared by both conversion directions."""

    model_config = ConfigDict(extra="forbid")

    max_segment_length: int = Field(default=DEFAULT_SEGMENT_LENGTH, ge=1)
    path_ceiling: int = Field(default=DEFAULT_PATH_CEILING, ge=16)
    path_offset: int = Field(default=DEFAULT_PATH_OFFSET, ge=0)
    min_segment_length: int = Field(default=8, ge=1)
    max_budget_iterations: int = Field(default=32, ge=1)
    root_collection_name: str | None = None
    prune_missing: bool = False
    allow_rootless: bool = False
    quiet: bool = False
    generate_metadata: bool = False
    strict_markdown: bool = False
    write_attempts: int = Field(default=3, ge=1)
    pandoc_path: str = "pandoc"
    hxcomp_path: str = "hxcomp"

    @model_validator(mode="after")
    def check_budget(self) -> SyncConfig:
        """Ensure the segment budget starts above its floor."""
        if self.min_segment_length > self.max_segment_length:
            raise ValueError(
                "min_segment_length cannot exceed max_segment_length "
                f"({self.min_segment_length} > {self.max_segment_length})"
            )
        return self

    @property
    def markdown_flavor(self) -> str:
        return "markdown_strict" if self.strict_markdown else "gfm"

    @property
    def interactive(self) -> bool:
        return not self.quiet

    def with_overrides(self, **overrides: Any) -> SyncConfig:
        """Return a copy updated with the non-``None`` overrides."""
        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        return build_config(values)


def build_config(values: Mapping[str, Any] | None = None) -> SyncConfig:
    """Validate raw settings into a :class:`SyncConfig`."""
    try:
        return SyncConfig.model_validate(dict(values or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(path: Path | None = None, **overrides: Any) -> SyncConfig:
    """Load settings from a YAML file, then apply explicit overrides."""
    values: dict[str, Any] = {}
    if path is not None:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"Unable to read configuration file '{path}': {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Configuration file '{path}' is not valid YAML: {exc}") from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ConfigError(f"Configuration file '{path}' must contain a mapping.")
        section = payload.get("helpsync", payload)
        if not isinstance(section, Mapping):
            raise ConfigError(f"The 'helpsync' section of '{path}' must be a mapping.")
        values.update({str(key).replace("-", "_"): value for key, value in section.items()})
    values.update({key: value for key, value in overrides.items() if value is not None})
    return build_config(values)


__all__ = [
    "DEFAULT_PATH_CEILING",
    "DEFAULT_PATH_OFFSET",
    "DEFAULT_SEGMENT_LENGTH",
    "SyncConfig",
    "build_config",
    "load_config",
]
