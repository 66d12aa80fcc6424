"""Operator decisions requested by the pipeline."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable


@runtime_checkable
class Prompter(Protocol):
    """Interface used when a situation needs an operator decision.

    Non-interactive implementations return the supplied defaults, which are
    always the safe choice (skip or abort).
    """

    interactive: bool

    def ask(self, message: str, *, default: str = "") -> str: ...

    def choose(self, message: str, choices: Sequence[str], *, default: str) -> str: ...

    def confirm(self, message: str, *, default: bool = False) -> bool: ...


class QuietPrompter:
    """Prompter that never asks and always takes the default."""

    interactive: bool = False

    def ask(self, message: str, *, default: str = "") -> str:
        return default

    def choose(self, message: str, choices: Sequence[str], *, default: str) -> str:
        return default

    def confirm(self, message: str, *, default: bool = False) -> bool:
        return default


class ScriptedPrompter:
    """Prompter replaying prepared answers, used by automation and tests."""

    interactive: bool = True

    def __init__(self, answers: Sequence[str | bool]) -> None:
        self._answers = list(answers)
        self.questions: list[str] = []

    def _next(self, message: str) -> str | bool | None:
        self.questions.append(message)
        return self._answers.pop(0) if self._answers else None

    def ask(self, message: str, *, default: str = "") -> str:
        answer = self._next(message)
        return default if answer is None else str(answer)

    def choose(self, message: str, choices: Sequence[str], *, default: str) -> str:
        answer = self._next(message)
        if answer is None or str(answer) not in choices:
            return default
        return str(answer)

    def confirm(self, message: str, *, default: bool = False) -> bool:
        answer = self._next(message)
        if answer is None:
            return default
        if isinstance(answer, bool):
            return answer
        return str(answer).strip().lower() in {"y", "yes", "true", "1"}


__all__ = ["Prompter", "QuietPrompter", "ScriptedPrompter"]
