"""Terminal prompter backed by rich."""

from __future__ import annotations

from collections.abc import Sequence

from rich.prompt import Confirm, Prompt

from .state import CLIState, get_cli_state


class RichPrompter:
    """Ask the operator on the terminal."""

    interactive: bool = True

    def __init__(self, state: CLIState | None = None) -> None:
        self._state = state or get_cli_state()

    def ask(self, message: str, *, default: str = "") -> str:
        return Prompt.ask(message, default=default, console=self._state.err_console)

    def choose(self, message: str, choices: Sequence[str], *, default: str) -> str:
        return Prompt.ask(
            message, choices=list(choices), default=default, console=self._state.err_console
        )

    def confirm(self, message: str, *, default: bool = False) -> bool:
        return Confirm.ask(message, default=default, console=self._state.err_console)


__all__ = ["RichPrompter"]
