from __future__ import annotations

from pathlib import Path

import pytest

from helpsync.core.exceptions import WriteFailedError
from helpsync.core.io import (
    backup,
    next_backup_path,
    replace_text,
    replace_with_clean,
    write_text,
)


def test_write_text_creates_parents_and_appends(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "run.log"

    write_text(target, "first\n")
    write_text(target, "second\n", append=True)

    assert target.read_text(encoding="utf-8") == "first\nsecond\n"


def test_write_text_reports_failure_after_attempts(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(WriteFailedError) as excinfo:
        write_text(blocker / "page.md", "content", attempts=2, delay=0)

    assert excinfo.value.path == str(blocker / "page.md")
    assert excinfo.value.attempts == 2


def test_replace_text_leaves_no_temporary_file(tmp_path: Path) -> None:
    target = tmp_path / "docs.hxtx"
    target.write_text("old", encoding="utf-8")

    replace_text(target, "new")

    assert target.read_text(encoding="utf-8") == "new"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["docs.hxtx"]


def test_backups_use_the_next_free_slot(tmp_path: Path) -> None:
    target = tmp_path / "docs.hxtx"
    assert backup(target) is None

    target.write_text("one", encoding="utf-8")
    first = backup(target)
    target.write_text("two", encoding="utf-8")
    second = backup(target)

    assert first == tmp_path / "docs.hxtx.bkp.0"
    assert second == tmp_path / "docs.hxtx.bkp.1"
    assert second.read_text(encoding="utf-8") == "two"
    assert next_backup_path(target) == tmp_path / "docs.hxtx.bkp.2"


def test_replace_with_clean_empties_directory(tmp_path: Path) -> None:
    output = tmp_path / "out"
    (output / "stale").mkdir(parents=True)
    (output / "stale" / "page.htm").write_text("x", encoding="utf-8")

    replace_with_clean(output)

    assert output.is_dir()
    assert list(output.iterdir()) == []
