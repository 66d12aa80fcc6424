"""Implementation of the ``helpsync check`` command."""

from __future__ import annotations

import typer

from helpsync.api import check_markdown_tree
from helpsync.core.config import load_config
from helpsync.core.exceptions import ConsistencyError

from .._options import (
    AllowRootlessOption,
    ConfigOption,
    DebugOption,
    MarkdownRootArgument,
    TreePathOption,
    VerbosityOption,
)
from ..diagnostics import CliEmitter
from ..presenter import present_problems
from ..state import set_cli_state
from ..utils import cli_failures, flag


def check(
    md_root: MarkdownRootArgument,
    tree: TreePathOption = None,
    allow_rootless: AllowRootlessOption = False,
    config: ConfigOption = None,
    verbose: VerbosityOption = 0,
    debug: DebugOption = False,
) -> None:
    """Report consistency problems of a Markdown tree without writing anything."""
    state = set_cli_state(verbosity=verbose, debug=debug)
    with cli_failures(state):
        settings = load_config(config, allow_rootless=flag(allow_rootless))
        problems = check_markdown_tree(
            md_root, tree, config=settings, emitter=CliEmitter(state)
        )
    present_problems(state, problems)
    if problems:
        raise typer.Exit(code=ConsistencyError.exit_code)


__all__ = ["check"]
