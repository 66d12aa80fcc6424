"""Make derived names unique across a docset namespace.

Collisions are resolved in two phases. First the names of enclosing
directories are prepended (``Widget.Resize``), skipping a directory whose name
is only a category label such as ``Enumerations``. Once the name holds three
segments, or no directory is left below the tree root, a numeric suffix is
used instead (``Resize~0``, ``Resize~1``).

Names carrying the overload placeholder go straight to the numeric phase and
increment the placeholder (``Resize(0)``, ``Resize(1)``) rather than gaining a
``~N`` suffix. A name therefore never carries both markers.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import re


SEGMENT_JOINER = "."
MAX_SEGMENTS = 3

_PLACEHOLDER_RE = re.compile(r"\((\d+)\)")
_TILDE_RE = re.compile(r"~(\d+)$")


def singular_of(word: str) -> str:
    """Return a naive singular form (``Properties`` -> ``Property``)."""
    if word.lower().endswith("ies"):
        return word[:-3] + "y"
    if word.lower().endswith("s"):
        return word[:-1]
    return word


def is_category_label(directory: str, candidate: str, grandparent: str | None = None) -> bool:
    """Return whether ``directory`` only labels a category of ``candidate``.

    Such a directory (``Enumerations`` above ``ColorEnumeration``, or a class
    directory above a name that already starts with the class) adds nothing
    when prepended, so the deduplicator skips it and uses the next level up.
    """
    if not directory:
        return False
    name = candidate.lower()
    label = directory.lower()
    if name.startswith(label) or name.endswith(label):
        return True
    singular = singular_of(label)
    if singular and name.endswith(singular):
        return True
    return bool(grandparent) and name.startswith(grandparent.lower())


def has_placeholder(name: str) -> bool:
    return _PLACEHOLDER_RE.search(name) is not None


def bump_suffix(name: str) -> str:
    """Return the next numeric variant of ``name``."""
    matches = list(_PLACEHOLDER_RE.finditer(name))
    if matches:
        last = matches[-1]
        number = int(last.group(1)) + 1
        return f"{name[: last.start()]}({number}){name[last.end() :]}"
    tilde = _TILDE_RE.search(name)
    if tilde:
        return f"{name[: tilde.start()]}~{int(tilde.group(1)) + 1}"
    return f"{name}~0"


def _key(name: str) -> str:
    # Target filesystems may be case-insensitive.
    return name.casefold()


class NameRegistry:
    """Set of assigned names for one output namespace."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._taken: dict[str, str] = {}
        for name in names:
            self.reserve(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and _key(name) in self._taken

    def __len__(self) -> int:
        return len(self._taken)

    def reserve(self, name: str) -> None:
        """Record ``name`` as taken without checking for collisions."""
        self._taken.setdefault(_key(name), name)

    def resolve(self, candidate: str, context: Sequence[str] = ()) -> str:
        """Return a variant of ``candidate`` that collides with no taken name.

        ``context`` lists the enclosing directory names, nearest first, up to
        but excluding the tree root.
        """
        name = candidate
        if name not in self:
            return name

        if not has_placeholder(name):
            ancestors = [entry for entry in context if entry]
            level = 0
            while (
                name in self
                and len(name.split(SEGMENT_JOINER)) < MAX_SEGMENTS
                and level < len(ancestors)
            ):
                directory = ancestors[level]
                grandparent = ancestors[level + 1] if level + 1 < len(ancestors) else None
                level += 1
                if is_category_label(directory, name, grandparent):
                    if level >= len(ancestors):
                        break
                    directory = ancestors[level]
                    level += 1
                name = f"{directory}{SEGMENT_JOINER}{name}"

        while name in self:
            name = bump_suffix(name)
        return name

    def claim(self, candidate: str, context: Sequence[str] = ()) -> str:
        """Resolve ``candidate`` and register the result."""
        name = self.resolve(candidate, context)
        self.reserve(name)
        return name


def find_duplicates(names: Sequence[str]) -> list[int]:
    """Return indices of every name that repeats an earlier entry."""
    order = sorted(range(len(names)), key=lambda index: (_key(names[index]), index))
    duplicates: list[int] = []
    for previous, current in zip(order, order[1:]):
        if _key(names[previous]) == _key(names[current]):
            duplicates.append(current)
    return sorted(duplicates)


def dedupe_batch(
    candidates: Sequence[str],
    contexts: Sequence[Sequence[str]] | None = None,
) -> list[str]:
    """Make a whole batch of freshly derived names unique.

    The first occurrence of a name keeps it. Resolving one collision can
    create another, so scanning repeats until a pass finds nothing.
    """
    names = list(candidates)
    if contexts is None:
        contexts = [() for _ in names]
    if len(contexts) != len(names):
        raise ValueError("contexts must align with candidates")
    while True:
        duplicates = find_duplicates(names)
        if not duplicates:
            return names
        registry = NameRegistry(names)
        for index in duplicates:
            names[index] = registry.claim(names[index], contexts[index])


__all__ = [
    "MAX_SEGMENTS",
    "SEGMENT_JOINER",
    "NameRegistry",
    "bump_suffix",
    "dedupe_batch",
    "find_duplicates",
    "has_placeholder",
    "is_category_label",
    "singular_of",
]
