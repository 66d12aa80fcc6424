"""Implementation of the ``helpsync to-markdown`` command."""

from __future__ import annotations

import typer

from helpsync.api import HelpToMarkdown
from helpsync.core.config import load_config

from .._options import (
    ArchiveArgument,
    ConfigOption,
    DebugOption,
    HxCompOption,
    MarkdownOutputOption,
    MetaDirOption,
    OffsetOption,
    PandocOption,
    PruneOption,
    QuietOption,
    RootNameOption,
    SegmentLengthOption,
    SkipDecompileOption,
    TreePathOption,
    VerbosityOption,
)
from ..diagnostics import CliEmitter
from ..presenter import present_report
from ..state import attach_log_file, set_cli_state
from ..utils import build_prompter, cli_failures, flag


LOG_NAME = "helpsync.log"


def to_markdown(
    archive: ArchiveArgument,
    output: MarkdownOutputOption = None,
    meta: MetaDirOption = None,
    name: RootNameOption = None,
    offset: OffsetOption = None,
    max_length: SegmentLengthOption = None,
    tree: TreePathOption = None,
    skip_decompile: SkipDecompileOption = False,
    prune: PruneOption = False,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    pandoc: PandocOption = None,
    hxcomp: HxCompOption = None,
    verbose: VerbosityOption = 0,
    debug: DebugOption = False,
) -> None:
    """Convert a compiled help archive into a Markdown tree."""
    state = set_cli_state(verbosity=verbose, debug=debug)
    log_path = attach_log_file(archive.parent / LOG_NAME, state)
    try:
        with cli_failures(state):
            settings = load_config(
                config,
                path_offset=offset,
                max_segment_length=max_length,
                prune_missing=flag(prune),
                quiet=flag(quiet),
                pandoc_path=pandoc,
                hxcomp_path=hxcomp,
            )
            converter = HelpToMarkdown(
                archive,
                output,
                meta_root=meta,
                tree_path=tree,
                root_name=name,
                decompile=not skip_decompile,
                config=settings,
                prompter=build_prompter(settings, state),
                emitter=CliEmitter(state),
            )
            report = converter.run()
    finally:
        state.close_log()

    present_report(state, report, title=f"Markdown tree {converter.md_root}")
    if not report.ok:
        typer.echo(f"See {log_path} for details.", err=True)
        raise typer.Exit(code=1)


__all__ = ["to_markdown"]
