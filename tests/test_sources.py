from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from helpsync.core.config import SyncConfig
from helpsync.core.exceptions import TreeFormatError
from helpsync.core.metadata import MetadataStore
from helpsync.core.prompts import ScriptedPrompter
from helpsync.core.sources import HelpTocSource, MarkdownTreeSource, SourceTopic
from helpsync.core.toc import TocNode


HXT = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE HelpTOC SYSTEM "ms-help://hx/resources/HelpTOC.DTD">
<HelpTOC DTDVersion="1.0">
  <HelpTOCNode Url="html/widget.htm" Title="Widget">
    <HelpTOCNode Url="html/resize_1f2e.htm" />
    <HelpTOCNode Url="html/missing.htm">
      <HelpTOCNode Url="html/below_missing.htm" />
    </HelpTOCNode>
    <HelpTOCNode Url="html/widget.htm" />
  </HelpTOCNode>
</HelpTOC>
"""

WIDGET_PAGE = """<html><head>
<xml><MSHelp:RLTitle Title="Widget Class"/><MSHelp:TOCTitle Title="Widget"/>
<MSHelp:Attr Name="AssetID" Value="widget-id"/></xml>
</head><body></body></html>
"""


class _RecordingEmitter:
    debug_enabled = False

    def __init__(self) -> None:
        self.warnings: list[str] = []

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        self.warnings.append(message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        return

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        return


def _help_root(tmp_path: Path) -> Path:
    root = tmp_path / "Product"
    html = root / "html"
    html.mkdir(parents=True)
    (root / "Product.hxt").write_text(HXT, encoding="utf-8")
    (html / "widget.htm").write_text(WIDGET_PAGE, encoding="utf-8")
    (html / "resize_1f2e.htm").write_text("<html><body>Resize</body></html>", encoding="utf-8")
    (html / "below_missing.htm").write_text("<html></html>", encoding="utf-8")
    return root


def _write(root: Path, relative: str, content: str = "# Topic\n") -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_help_source_lists_present_topics_in_toc_order(tmp_path: Path) -> None:
    root = _help_root(tmp_path)
    emitter = _RecordingEmitter()
    source = HelpTocSource(root, root / "Product.hxt", emitter=emitter)

    assert source.list_topics() == [
        SourceTopic("html/widget.htm", None),
        SourceTopic("html/resize_1f2e.htm", "html/widget.htm"),
    ]
    assert source.parent_of("html/resize_1f2e.htm") == "html/widget.htm"
    assert any("missing.htm" in message for message in emitter.warnings)
    assert any("repeated" in message for message in emitter.warnings)


def test_help_source_titles_and_ids(tmp_path: Path) -> None:
    root = _help_root(tmp_path)
    source = HelpTocSource(root, root / "Product.hxt")

    assert source.read_title("html/widget.htm") == "Widget"
    assert source.asset_id_of("html/widget.htm") == "widget-id"
    # Pages without metadata fall back to their file name and a stable minted id.
    assert source.read_title("html/resize_1f2e.htm") == "resize"
    minted = source.asset_id_of("html/resize_1f2e.htm")
    assert minted and source.asset_id_of("html/resize_1f2e.htm") == minted


def test_help_source_asks_for_missing_files_when_interactive(tmp_path: Path) -> None:
    root = _help_root(tmp_path)
    relocated = tmp_path / "elsewhere.htm"
    relocated.write_text("<html></html>", encoding="utf-8")
    prompter = ScriptedPrompter([str(relocated)])

    source = HelpTocSource(root, root / "Product.hxt", prompter=prompter)
    keys = [topic.key for topic in source.list_topics()]

    assert keys == [
        "html/widget.htm",
        "html/resize_1f2e.htm",
        "html/missing.htm",
        "html/below_missing.htm",
    ]
    assert source.path_of("html/missing.htm") == relocated


def test_help_source_rejects_entries_without_url(tmp_path: Path) -> None:
    toc = tmp_path / "broken.hxt"
    toc.write_text('<HelpTOC><HelpTOCNode Title="x"/></HelpTOC>', encoding="utf-8")
    with pytest.raises(TreeFormatError):
        HelpTocSource(tmp_path, toc).list_topics()


def test_help_source_layout(tmp_path: Path) -> None:
    source = HelpTocSource(tmp_path, tmp_path / "toc.hxt")
    parent = TocNode("html/widget.htm", "Widget", "Widget")
    child = TocNode("html/resize.htm", "Resize", "Resize")

    assert source.output_path(child, (parent,)) == "Widget/Resize.md"
    assert source.encode(child, (parent,)) == {"Url": "html/resize.htm", "MDPath": "Widget/Resize.md"}
    assert source.decode({"Url": "html/resize.htm", "MDPath": "Widget/Resize.md"}) == (
        "html/resize.htm",
        "Resize",
    )
    assert source.decode({"Url": "html/new.htm"}) == ("html/new.htm", "")


def test_markdown_source_walks_nested_tree(tmp_path: Path) -> None:
    md_root = tmp_path / "md"
    _write(md_root, "Widget.md")
    _write(md_root, "Widget/Resize.md")
    _write(md_root, "Widget/properties.md")
    _write(md_root, "Widget/properties/Color.md")
    _write(md_root, "resources/notes.md")
    _write(md_root, "Widget/Orphans/Lost.md")
    emitter = _RecordingEmitter()
    store = MetadataStore(tmp_path / "meta", source_root=md_root)

    source = MarkdownTreeSource(md_root, store, emitter=emitter)

    assert source.list_topics() == [
        SourceTopic("Widget.md", None),
        SourceTopic("Widget/properties.md", "Widget.md"),
        SourceTopic("Widget/properties/Color.md", "Widget/properties.md"),
        SourceTopic("Widget/Resize.md", "Widget.md"),
    ]
    assert source.unmatched_directories() == [md_root / "Widget" / "Orphans"]
    assert len(emitter.warnings) == 1
    assert "Widget/Orphans" in emitter.warnings[0]


def test_markdown_source_requires_single_top_level_topic(tmp_path: Path) -> None:
    md_root = tmp_path / "md"
    _write(md_root, "A.md")
    _write(md_root, "B.md")
    store = MetadataStore(tmp_path / "meta")

    with pytest.raises(TreeFormatError):
        MarkdownTreeSource(md_root, store).list_topics()
    topics = MarkdownTreeSource(md_root, store, allow_rootless=True).list_topics()
    assert [topic.key for topic in topics] == ["A.md", "B.md"]


def test_markdown_source_requires_a_topic(tmp_path: Path) -> None:
    md_root = tmp_path / "md"
    md_root.mkdir()
    with pytest.raises(TreeFormatError):
        MarkdownTreeSource(md_root, MetadataStore(tmp_path / "meta")).validate()


def test_markdown_source_reads_titles_through_metadata(tmp_path: Path) -> None:
    md_root = tmp_path / "md"
    _write(md_root, "Widget.md", "# Widget Properties\n")
    store = MetadataStore(
        tmp_path / "meta",
        source_root=md_root,
        config=SyncConfig(generate_metadata=True, quiet=True),
    )
    source = MarkdownTreeSource(md_root, store)

    assert source.read_title("Widget.md") == "Properties"
    assert source.asset_id_of("Widget.md") == store.resolve("Widget.md").asset_id


def test_markdown_source_layout(tmp_path: Path) -> None:
    source = MarkdownTreeSource(tmp_path, MetadataStore(tmp_path / "meta"))
    node = TocNode("Widget/Resize.md", "Widget.Resize", "Resize")

    assert source.output_path(node, ()) == "Widget.Resize.htm"
    assert source.encode(node, ()) == {"Url": "Widget.Resize.htm", "MDPath": "Widget/Resize.md"}
    assert source.decode({"Url": "Widget.Resize.htm", "MDPath": "Widget\\Resize.md"}) == (
        "Widget/Resize.md",
        "Widget.Resize",
    )
