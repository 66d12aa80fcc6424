"""Implementation of the ``helpsync to-help`` command."""

from __future__ import annotations

import typer

from helpsync.api import MarkdownToHelp
from helpsync.core.config import load_config

from .._options import (
    AllowRootlessOption,
    ArchiveOutputOption,
    ConfigOption,
    DebugOption,
    GenerateOption,
    GlobalMetadataOption,
    HxCompOption,
    MarkdownRootArgument,
    MetaDirOption,
    NoCompileOption,
    OffsetOption,
    PandocOption,
    PruneOption,
    QuietOption,
    SegmentLengthOption,
    StrictMarkdownOption,
    TreePathOption,
    VerbosityOption,
)
from ..diagnostics import CliEmitter
from ..presenter import present_report
from ..state import attach_log_file, set_cli_state
from ..utils import build_prompter, cli_failures, flag


def to_help(
    md_root: MarkdownRootArgument,
    output: ArchiveOutputOption = None,
    meta: MetaDirOption = None,
    global_path: GlobalMetadataOption = None,
    tree: TreePathOption = None,
    offset: OffsetOption = None,
    max_length: SegmentLengthOption = None,
    generate: GenerateOption = False,
    allow_rootless: AllowRootlessOption = False,
    prune: PruneOption = False,
    strict: StrictMarkdownOption = False,
    no_compile: NoCompileOption = False,
    quiet: QuietOption = False,
    config: ConfigOption = None,
    pandoc: PandocOption = None,
    hxcomp: HxCompOption = None,
    verbose: VerbosityOption = 0,
    debug: DebugOption = False,
) -> None:
    """Compile a Markdown tree into a help archive."""
    state = set_cli_state(verbosity=verbose, debug=debug)
    try:
        with cli_failures(state):
            settings = load_config(
                config,
                path_offset=offset,
                max_segment_length=max_length,
                generate_metadata=flag(generate),
                allow_rootless=flag(allow_rootless),
                prune_missing=flag(prune),
                strict_markdown=flag(strict),
                quiet=flag(quiet),
                pandoc_path=pandoc,
                hxcomp_path=hxcomp,
            )
            converter = MarkdownToHelp(
                md_root,
                output,
                meta_root=meta,
                global_path=global_path,
                tree_path=tree,
                compile_archive=not no_compile,
                config=settings,
                prompter=build_prompter(settings, state),
                emitter=CliEmitter(state),
            )
            attach_log_file(converter.log_path, state)
            report = converter.run()
    finally:
        state.close_log()

    present_report(state, report, title=f"Help archive {converter.output}")
    if not report.ok:
        typer.echo(f"See {converter.log_path} for details.", err=True)
        raise typer.Exit(code=1)


__all__ = ["to_help"]
