"""Shared Typer option definitions for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer


INPUTS_PANEL = "Input Handling"
STRUCTURE_PANEL = "Structure"
METADATA_PANEL = "Metadata"
OUTPUT_PANEL = "Output"
TOOLS_PANEL = "Tools"
DIAGNOSTICS_PANEL = "Diagnostics"

ArchiveArgument = Annotated[
    Path,
    typer.Argument(
        metavar="ARCHIVE",
        help="Compiled help archive (.hxs) or an already decompiled directory.",
        exists=True,
        file_okay=True,
        dir_okay=True,
        readable=True,
        resolve_path=True,
        rich_help_panel=INPUTS_PANEL,
    ),
]

MarkdownRootArgument = Annotated[
    Path,
    typer.Argument(
        metavar="MD_ROOT",
        help="Root directory of the Markdown tree.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
        resolve_path=True,
        rich_help_panel=INPUTS_PANEL,
    ),
]

MarkdownOutputOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        "-o",
        help="Directory receiving the Markdown tree (defaults to 'md' beside the archive).",
        resolve_path=True,
        rich_help_panel=OUTPUT_PANEL,
    ),
]

ArchiveOutputOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        "-o",
        help="Help archive to produce (defaults to '<MD_ROOT>.hxs' beside the tree).",
        resolve_path=True,
        rich_help_panel=OUTPUT_PANEL,
    ),
]

MetaDirOption = Annotated[
    Path | None,
    typer.Option(
        "--meta",
        "-m",
        help="Directory holding per-topic metadata records.",
        resolve_path=True,
        rich_help_panel=METADATA_PANEL,
    ),
]

GlobalMetadataOption = Annotated[
    Path | None,
    typer.Option(
        "--global",
        help="Docset-wide metadata record (defaults to 'global.json' in the metadata directory).",
        resolve_path=True,
        rich_help_panel=METADATA_PANEL,
    ),
]

GenerateOption = Annotated[
    bool,
    typer.Option(
        "--generate",
        help="Mint metadata for topics that have none without asking.",
        rich_help_panel=METADATA_PANEL,
    ),
]

TreePathOption = Annotated[
    Path | None,
    typer.Option(
        "--hxtx",
        help="Canonical TOC tree (defaults to '<name>.hxtx' at the Markdown root).",
        resolve_path=True,
        rich_help_panel=STRUCTURE_PANEL,
    ),
]

RootNameOption = Annotated[
    str | None,
    typer.Option(
        "--name",
        "-n",
        help="Name of the top-level Markdown file and directory.",
        rich_help_panel=STRUCTURE_PANEL,
    ),
]

OffsetOption = Annotated[
    int | None,
    typer.Option(
        "--offset",
        "-d",
        min=0,
        help="Minimum destination path length reserved in front of generated paths.",
        rich_help_panel=STRUCTURE_PANEL,
    ),
]

SegmentLengthOption = Annotated[
    int | None,
    typer.Option(
        "--max-length",
        "-s",
        min=1,
        help="Initial length budget for one generated name segment.",
        rich_help_panel=STRUCTURE_PANEL,
    ),
]

AllowRootlessOption = Annotated[
    bool,
    typer.Option(
        "--allow-rootless",
        help="Accept more than one top-level topic.",
        rich_help_panel=STRUCTURE_PANEL,
    ),
]

PruneOption = Annotated[
    bool,
    typer.Option(
        "--prune",
        help="Remove TOC entries whose source topic no longer exists.",
        rich_help_panel=STRUCTURE_PANEL,
    ),
]

StrictMarkdownOption = Annotated[
    bool,
    typer.Option(
        "--strict",
        help="Read Markdown as markdown_strict instead of GitHub-flavoured Markdown.",
        rich_help_panel=INPUTS_PANEL,
    ),
]

SkipDecompileOption = Annotated[
    bool,
    typer.Option(
        "--skip-decompile",
        help="Reuse the '<archive>_files' directory from a previous run.",
        rich_help_panel=INPUTS_PANEL,
    ),
]

NoCompileOption = Annotated[
    bool,
    typer.Option(
        "--no-compile",
        help="Write the help project without invoking the compiler.",
        rich_help_panel=OUTPUT_PANEL,
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Never prompt; apply safe defaults instead.",
        rich_help_panel=DIAGNOSTICS_PANEL,
    ),
]

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        help="YAML configuration file.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
        rich_help_panel=INPUTS_PANEL,
    ),
]

PandocOption = Annotated[
    str | None,
    typer.Option(
        "--pandoc",
        help="Pandoc executable to use.",
        rich_help_panel=TOOLS_PANEL,
    ),
]

HxCompOption = Annotated[
    str | None,
    typer.Option(
        "--hxcomp",
        help="Help compiler executable to use.",
        rich_help_panel=TOOLS_PANEL,
    ),
]

VerbosityOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase diagnostic detail (repeatable).",
        rich_help_panel=DIAGNOSTICS_PANEL,
    ),
]

DebugOption = Annotated[
    bool,
    typer.Option(
        "--debug",
        help="Show full tracebacks and write debug records to the log.",
        rich_help_panel=DIAGNOSTICS_PANEL,
    ),
]


__all__ = [
    "AllowRootlessOption",
    "ArchiveArgument",
    "ArchiveOutputOption",
    "ConfigOption",
    "DebugOption",
    "GenerateOption",
    "GlobalMetadataOption",
    "HxCompOption",
    "MarkdownOutputOption",
    "MarkdownRootArgument",
    "MetaDirOption",
    "NoCompileOption",
    "OffsetOption",
    "PandocOption",
    "PruneOption",
    "QuietOption",
    "RootNameOption",
    "SegmentLengthOption",
    "SkipDecompileOption",
    "StrictMarkdownOption",
    "TreePathOption",
    "VerbosityOption",
]
