"""Keep generated output paths under a target filesystem's length ceiling."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import logging
import math
from typing import Generic, TypeVar

from .config import DEFAULT_PATH_CEILING
from .diagnostics import DiagnosticEmitter, ensure_emitter
from .exceptions import PathBudgetError


logger = logging.getLogger(__name__)

T = TypeVar("T")

PATH_SEPARATOR = "/"


@dataclass(slots=True)
class LongestPath:
    """Longest path of a build together with its segment count."""

    path: str
    length: int
    segments: int


def longest_path(paths: Iterable[str]) -> LongestPath | None:
    """Return the longest of ``paths``; the first one wins on ties."""
    best: LongestPath | None = None
    for path in paths:
        if best is None or len(path) > best.length:
            segments = len([part for part in path.split(PATH_SEPARATOR) if part]) or 1
            best = LongestPath(path=path, length=len(path), segments=segments)
    return best


@dataclass(slots=True)
class PathBudget:
    """Mutable segment length budget checked against a path ceiling."""

    segment_length: int
    offset: int = 0
    ceiling: int = DEFAULT_PATH_CEILING
    minimum: int = 1

    def fits(self, length: int) -> bool:
        return length + self.offset < self.ceiling

    def check(self, paths: Iterable[str]) -> bool:
        """Return ``True`` when a rebuild is required, shrinking the budget first.

        The budget drops by the overflow spread across the longest path's
        segments, plus two characters for uniqueness suffixes. Each shrink is
        at least two characters, so repeated checks terminate.
        """
        worst = longest_path(paths)
        if worst is None or self.fits(worst.length):
            return False
        overflow = worst.length + self.offset - self.ceiling
        reduction = math.ceil(overflow / worst.segments) + 2
        proposed = self.segment_length - reduction
        if proposed < self.minimum:
            raise PathBudgetError(
                worst.path, worst.length + self.offset, self.ceiling, self.segment_length
            )
        self.segment_length = proposed
        return True


@dataclass(slots=True)
class BudgetOutcome(Generic[T]):
    """Result of a budgeted build."""

    result: T
    segment_length: int
    iterations: int


def fit_to_ceiling(
    build: Callable[[int], T],
    paths_of: Callable[[T], Iterable[str]],
    budget: PathBudget,
    *,
    max_iterations: int = 32,
    emitter: DiagnosticEmitter | None = None,
) -> BudgetOutcome[T]:
    """Rebuild with a shrinking budget until every path fits the ceiling.

    ``build`` receives the current segment length and must construct the
    whole result from scratch, since a tighter budget can change every
    naming and deduplication decision.
    """
    diagnostics = ensure_emitter(emitter)
    for iteration in range(1, max_iterations + 1):
        result = build(budget.segment_length)
        paths = list(paths_of(result))
        previous = budget.segment_length
        if not budget.check(paths):
            logger.debug(
                "Path budget accepted segment length %s after %s build(s)",
                budget.segment_length,
                iteration,
            )
            return BudgetOutcome(result=result, segment_length=previous, iterations=iteration)
        worst = longest_path(paths)
        diagnostics.event(
            "budget_shrunk",
            {
                "from": previous,
                "to": budget.segment_length,
                "longest": worst.length + budget.offset if worst else None,
            },
        )
    worst = longest_path(paths_of(result))
    raise PathBudgetError(
        worst.path if worst else "",
        (worst.length if worst else 0) + budget.offset,
        budget.ceiling,
        budget.segment_length,
    )


__all__ = [
    "BudgetOutcome",
    "LongestPath",
    "PathBudget",
    "fit_to_ceiling",
    "longest_path",
]
