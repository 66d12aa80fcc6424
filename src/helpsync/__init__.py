"""Primary public API for helpsync."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as _pkg_version
import logging

from helpsync.api import (
    ConversionReport,
    HelpToMarkdown,
    MarkdownToHelp,
    check_markdown_tree,
)
from helpsync.core.config import SyncConfig, load_config
from helpsync.core.exceptions import ConsistencyError, DocsetError
from helpsync.core.sync import TocSynchronizer


try:
    __version__ = _pkg_version("helpsync")
except PackageNotFoundError:
    __version__ = "0.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())


__all__ = [
    "ConsistencyError",
    "ConversionReport",
    "DocsetError",
    "HelpToMarkdown",
    "MarkdownToHelp",
    "SyncConfig",
    "TocSynchronizer",
    "__version__",
    "check_markdown_tree",
    "load_config",
]
