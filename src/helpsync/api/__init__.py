"""Facade over both conversion directions.

Architecture
: `HelpToMarkdown` and `MarkdownToHelp` wire a source adapter, the TOC
  synchronizer, the metadata store and the external tools into one run.
: `check_markdown_tree` audits a Markdown tree and its canonical tree without
  writing anything.

Usage Example
:
    >>> from pathlib import Path
    >>> from tempfile import TemporaryDirectory
    >>> from helpsync.api import check_markdown_tree
    >>> with TemporaryDirectory() as tmpdir:
    ...     root = Path(tmpdir)
    ...     _ = (root / "Guide.md").write_text("# Guide\\n")
    ...     problems = check_markdown_tree(root, root / "guide.hxtx")
    >>> problems[0].startswith("No canonical tree found")
    True
"""

from __future__ import annotations

from .pipeline import (
    ConversionReport,
    HelpToMarkdown,
    MarkdownToHelp,
    check_markdown_tree,
    locate_tree,
    path_offset,
)


__all__ = [
    "ConversionReport",
    "HelpToMarkdown",
    "MarkdownToHelp",
    "check_markdown_tree",
    "locate_tree",
    "path_offset",
]
