"""Typer application wiring for the helpsync CLI."""

from __future__ import annotations

import typer

from helpsync.ui.cli.commands import check, to_help, to_markdown

from .state import debug_enabled, emit_error, get_cli_state
from .utils import exit_code_for


app = typer.Typer(
    help="Keep compiled help archives and Markdown trees in sync.",
    context_settings={"help_option_names": ["--help"]},
    no_args_is_help=True,
)


app.command(name="to-markdown")(to_markdown)
app.command(name="to-help")(to_help)
app.command(name="check")(check)


def main() -> None:
    """Entry point compatible with console scripts."""
    try:
        app()
    except typer.Exit:
        raise
    except KeyboardInterrupt as exc:
        if debug_enabled():
            raise
        emit_error("Operation cancelled by user.", exception=exc)
        raise SystemExit(1) from exc
    except SystemExit:
        raise
    except Exception as exc:  # pragma: no cover - last-resort reporting
        state = get_cli_state()
        if state.show_tracebacks:
            from rich.traceback import Traceback

            tb = Traceback.from_exception(
                type(exc),
                exc,
                exc.__traceback__,
                show_locals=state.verbosity >= 2,
            )
            state.err_console.print(tb)
        else:
            emit_error(str(exc), exception=exc)
        raise SystemExit(exit_code_for(exc)) from exc


__all__ = ["app", "main"]
