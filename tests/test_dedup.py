from __future__ import annotations

import pytest

from helpsync.core.dedup import (
    NameRegistry,
    bump_suffix,
    dedupe_batch,
    find_duplicates,
    has_placeholder,
    is_category_label,
    singular_of,
)


def test_unique_name_is_kept() -> None:
    registry = NameRegistry(["Resize"])
    assert registry.claim("Move", ["Widget"]) == "Move"
    assert "move" in registry


def test_collision_prepends_enclosing_directory() -> None:
    registry = NameRegistry(["Resize"])
    assert registry.claim("Resize", ["Widget", "Controls"]) == "Widget.Resize"
    assert registry.claim("Resize", ["Widget", "Controls"]) == "Controls.Widget.Resize"


def test_collision_is_case_insensitive() -> None:
    registry = NameRegistry(["resize"])
    assert "RESIZE" in registry
    assert registry.resolve("Resize", ["Widget"]) == "Widget.Resize"


def test_category_directory_is_skipped() -> None:
    registry = NameRegistry(["ColorEnumeration"])
    resolved = registry.resolve("ColorEnumeration", ["Enumerations", "Drawing"])
    assert resolved == "Drawing.ColorEnumeration"


def test_numeric_suffix_when_no_directory_is_left() -> None:
    registry = NameRegistry(["Resize"])
    assert registry.claim("Resize") == "Resize~0"
    assert registry.claim("Resize") == "Resize~1"


def test_numeric_suffix_after_three_segments() -> None:
    registry = NameRegistry(["A.B.C"])
    assert registry.resolve("A.B.C", ["X"]) == "A.B.C~0"


def test_placeholder_names_increment_instead_of_prepending() -> None:
    registry = NameRegistry(["Resize(0)"])
    resolved = registry.claim("Resize(0)", ["Widget"])
    assert resolved == "Resize(1)"
    assert "~" not in resolved
    assert registry.claim("Resize(0)", ["Widget"]) == "Resize(2)"


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Resize", "Resize~0"),
        ("Resize~0", "Resize~1"),
        ("Resize~9", "Resize~10"),
        ("Resize(0)", "Resize(1)"),
        ("Resize(3)_Async", "Resize(4)_Async"),
    ],
)
def test_bump_suffix(name: str, expected: str) -> None:
    assert bump_suffix(name) == expected


def test_has_placeholder() -> None:
    assert has_placeholder("Resize(0)")
    assert not has_placeholder("Resize")


def test_category_label_detection() -> None:
    assert singular_of("Properties") == "Property"
    assert singular_of("Events") == "Event"
    assert is_category_label("Enumerations", "ColorEnumeration")
    assert is_category_label("Widget", "WidgetResize")
    assert is_category_label("Members", "Resize", grandparent="Re")
    assert not is_category_label("Widget", "Resize")
    assert not is_category_label("", "Resize")


def test_find_duplicates_reports_later_occurrences() -> None:
    assert find_duplicates(["a", "B", "A", "b", "c"]) == [2, 3]
    assert find_duplicates(["a", "b"]) == []


def test_dedupe_batch_keeps_first_occurrence() -> None:
    assert dedupe_batch(["Resize", "Resize", "Resize"]) == ["Resize", "Resize~0", "Resize~1"]


def test_dedupe_batch_uses_contexts() -> None:
    names = dedupe_batch(["Resize", "Resize"], [["Widget"], ["Gadget"]])
    assert names == ["Resize", "Gadget.Resize"]


def test_dedupe_batch_rejects_misaligned_contexts() -> None:
    with pytest.raises(ValueError):
        dedupe_batch(["a", "b"], [["x"]])
