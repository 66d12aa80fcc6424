"""Auxiliary helpers used by CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
import contextlib
import logging

import typer

from helpsync.core.config import SyncConfig
from helpsync.core.exceptions import DocsetError, exception_hint
from helpsync.core.prompts import Prompter, QuietPrompter

from .prompts import RichPrompter
from .state import CLIState, emit_error


def flag(value: bool) -> bool | None:
    """Turn an unset boolean flag into ``None`` so it does not override the file."""
    return True if value else None


def build_prompter(settings: SyncConfig, state: CLIState) -> Prompter:
    if settings.quiet:
        return QuietPrompter()
    return RichPrompter(state)


def exit_code_for(exc: BaseException) -> int:
    return int(getattr(exc, "exit_code", 1))


@contextlib.contextmanager
def cli_failures(state: CLIState) -> Iterator[None]:
    """Report pipeline failures and exit with their status code.

    Consistency errors exit with status 3 and every other failure with 1.
    With ``--debug`` the exception propagates to the application entry point,
    which prints the full traceback.
    """
    try:
        yield
    except (DocsetError, OSError) as exc:
        if state.show_tracebacks:
            logging.getLogger("helpsync").error(str(exc), exc_info=exc)
            raise
        message = str(exc)
        hint = exception_hint(exc)
        if hint and hint not in message:
            message = f"{message} ({hint})"
        emit_error(message, exception=exc)
        raise typer.Exit(code=exit_code_for(exc)) from exc


__all__ = ["build_prompter", "cli_failures", "exit_code_for", "flag"]
