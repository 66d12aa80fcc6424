from __future__ import annotations

from pathlib import Path

import pytest

from helpsync.core.config import SyncConfig, build_config, load_config
from helpsync.core.exceptions import ConfigError


def test_defaults() -> None:
    config = SyncConfig()
    assert config.max_segment_length == 50
    assert config.path_ceiling == 250
    assert config.path_offset == 75
    assert config.markdown_flavor == "gfm"
    assert config.interactive is True


def test_load_config_reads_section_and_dashed_keys(tmp_path: Path) -> None:
    path = tmp_path / "helpsync.yml"
    path.write_text(
        "helpsync:\n  max-segment-length: 40\n  strict-markdown: true\n  quiet: true\n",
        encoding="utf-8",
    )

    config = load_config(path, quiet=None, prune_missing=True)

    assert config.max_segment_length == 40
    assert config.markdown_flavor == "markdown_strict"
    assert config.quiet is True
    assert config.interactive is False
    assert config.prune_missing is True


def test_load_config_accepts_flat_mapping_and_empty_file(tmp_path: Path) -> None:
    flat = tmp_path / "flat.yml"
    flat.write_text("path_offset: 10\n", encoding="utf-8")
    empty = tmp_path / "empty.yml"
    empty.write_text("", encoding="utf-8")

    assert load_config(flat).path_offset == 10
    assert load_config(empty) == SyncConfig()


@pytest.mark.parametrize(
    "content",
    [
        "- a list\n",
        "helpsync: 3\n",
        "unknown_option: 1\n",
        "max_segment_length: [\n",
    ],
)
def test_load_config_rejects_invalid_files(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bad.yml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_load_config_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unable to read"):
        load_config(tmp_path / "missing.yml")


def test_budget_floor_cannot_exceed_start() -> None:
    with pytest.raises(ConfigError, match="min_segment_length"):
        build_config({"max_segment_length": 6, "min_segment_length": 8})


def test_with_overrides_ignores_none() -> None:
    config = SyncConfig(quiet=True).with_overrides(quiet=None, allow_rootless=True)
    assert config.quiet is True
    assert config.allow_rootless is True
