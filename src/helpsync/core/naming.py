"""Derive filesystem-safe name segments from topic titles."""

from __future__ import annotations

from pathlib import PurePosixPath
import re

from slugify import slugify


JOINER = "_"
PLACEHOLDER = "(0)"
FALLBACK_NAME = "Topic"

# Illegal in file names on the most restrictive target, or ambiguous as path text.
_SLUG_DISALLOWED = r"[^-A-Za-z0-9_()~]+"
_SLUG_REPLACEMENTS = (("+", "Plus"), ("#", "Sharp"))

_SEPARATORS_RE = re.compile(r"[:,.\s\-/\\]+")
_SIGNATURE_RE = re.compile(r"_?\(.*\)")
_JOINER_RUN_RE = re.compile(r"_{2,}")

MEMBER_SUFFIXES = (
    "_Method",
    "_Property",
    "_Event",
    "_Field",
    "_Class",
    "_Structure",
    "_Interface",
    "_Enumeration",
    "_Function",
)
GROUP_SUFFIXES = ("Methods", "Properties", "Events", "Members")
ROOT_NAMESPACES = ("Microsoft", "Windows", "WindowsPreview")


def fallback_title(source_name: str) -> str:
    """Return the title used when a topic declares none.

    Compiled help pages are named ``Title_guid.htm``; everything before the
    first underscore of the stem is the readable part.
    """
    stem = PurePosixPath(source_name.replace("\\", "/")).stem
    head = stem.split("_", 1)[0]
    return head or stem or FALLBACK_NAME


def normalise_separators(title: str) -> str:
    """Turn whitespace and separator characters into single joiners."""
    return _SEPARATORS_RE.sub(JOINER, title.strip())


def collapse_signature(name: str) -> str:
    """Replace a parenthesised member signature with the placeholder token."""
    return _SIGNATURE_RE.sub(PLACEHOLDER, name, count=1)


def _transliterate(name: str) -> str:
    cleaned = slugify(
        name,
        lowercase=False,
        separator=JOINER,
        regex_pattern=_SLUG_DISALLOWED,
        replacements=_SLUG_REPLACEMENTS,
        entities=False,
        decimal=False,
        hexadecimal=False,
    )
    cleaned = _JOINER_RUN_RE.sub(JOINER, cleaned)
    return cleaned.strip(JOINER)


def strip_member_suffix(name: str) -> str:
    """Drop a ``_Method``-style suffix that only disambiguates source topics."""
    lowered = name.lower()
    for suffix in MEMBER_SUFFIXES:
        if lowered.endswith(suffix.lower()) and len(name) > len(suffix):
            return name[: name.rindex(JOINER)]
    return name


def collapse_well_known(name: str) -> str:
    """Apply member-list and root-namespace collapses."""
    lowered = name.lower()
    for group in GROUP_SUFFIXES:
        if lowered.endswith(f"{JOINER}{group.lower()}"):
            return group
    for namespace in ROOT_NAMESPACES:
        prefix = f"{namespace}{JOINER}"
        if lowered.startswith(prefix.lower()) and len(name) > len(prefix):
            return name[len(prefix) :]
    return name


def shorten(name: str, max_length: int) -> str:
    """Trim trailing joiner-delimited segments until ``name`` fits the budget."""
    while len(name) > max_length:
        cut = name.rfind(JOINER)
        if cut > 0:
            name = name[:cut]
        else:
            # Leave room for a uniqueness suffix added later.
            name = name[: max(1, max_length - 2)]
    return name


def derive_name(title: str | None, max_length: int, *, source_name: str | None = None) -> str:
    """Return a filesystem-safe, length-bounded name segment for ``title``.

    When the title is empty, the readable part of ``source_name`` is used.
    """
    # Leading hashes are Markdown heading markers.
    text = (title or "").strip().lstrip("#").strip()
    if not text:
        text = fallback_title(source_name or "")
    name = normalise_separators(text)
    name = _transliterate(name)
    name = collapse_signature(name)
    name = strip_member_suffix(name)
    name = collapse_well_known(name)
    name = shorten(name, max_length)
    return name or FALLBACK_NAME


def adjust_for_context(name: str, ancestor_names: list[str]) -> str:
    """Collapse ``XConstructor`` to ``Constructor`` below the matching class."""
    if not name.endswith("onstructor"):
        return name
    class_name = name.replace("Constructor", "Class")
    location = "/".join(ancestor_names)
    if re.search(re.escape(class_name), location, re.IGNORECASE):
        return "Constructor"
    return name


__all__ = [
    "FALLBACK_NAME",
    "GROUP_SUFFIXES",
    "JOINER",
    "MEMBER_SUFFIXES",
    "PLACEHOLDER",
    "ROOT_NAMESPACES",
    "adjust_for_context",
    "collapse_signature",
    "collapse_well_known",
    "derive_name",
    "fallback_title",
    "normalise_separators",
    "shorten",
    "strip_member_suffix",
]
