from __future__ import annotations

from collections.abc import Mapping
import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError
import pytest

from helpsync.core.config import SyncConfig
from helpsync.core.exceptions import (
    MetadataFormatError,
    MetadataMissingError,
    OperationCancelled,
)
from helpsync.core.metadata import (
    ORIENTATION_TOPIC,
    SYNTAX_TOPIC,
    Attribute,
    GlobalAttributes,
    Keyword,
    MetadataStore,
    TopicMetadata,
    classify_topic,
    derive_toc_title,
    first_heading,
    parse_comment_block,
    parse_help_metadata,
    strip_comment_block,
    synthesize_metadata,
)
from helpsync.core.prompts import ScriptedPrompter


HELP_PAGE = """<html><head><title>Ignored</title>
<xml xmlns:MSHelp="http://msdn.microsoft.com/mshelp">
<MSHelp:TOCTitle Title="Resize"/>
<MSHelp:RLTitle Title="Widget.Resize Method"/>
<MSHelp:Keyword Index="K" Term="Resize method"/>
<MSHelp:Attr Name="AssetID" Value="abc-123"/>
<MSHelp:Attr Name="Locale" Value="kbEnglish"/>
<MSHelp:Attr Name="TopicType" Value="kbSyntax"/>
</xml></head><body><p>Body</p></body></html>
"""

COMMENTED_TOPIC = """# Widget Class

Body text.

<!--
RLTitle : Widget Class
AssetID : 1111
KeywordK : Widget class
KeywordF : Widget
Locale : kbEnglish
DevLang : CSharp
-->
"""


class _RecordingEmitter:
    debug_enabled = False

    def __init__(self) -> None:
        self.warnings: list[str] = []
        self.events: list[tuple[str, dict[str, Any]]] = []

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        self.warnings.append(message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        return

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        self.events.append((name, dict(payload)))


def _record(**overrides: Any) -> TopicMetadata:
    values: dict[str, Any] = {"rl_title": "Widget Class", "asset_id": "1111"}
    values.update(overrides)
    return TopicMetadata(**values)


def test_parse_help_metadata_reads_data_island() -> None:
    metadata = parse_help_metadata(HELP_PAGE)

    assert metadata is not None
    assert metadata.rl_title == "Widget.Resize Method"
    assert metadata.toc_title == "Resize"
    assert metadata.display_title == "Resize"
    assert metadata.asset_id == "abc-123"
    assert metadata.keywords == [Keyword(index="K", term="Resize method")]
    assert metadata.attribute("Locale") == "kbEnglish"
    assert metadata.attribute("AssetID") is None


def test_parse_help_metadata_requires_asset_id() -> None:
    assert parse_help_metadata("<html><head><title>Intro</title></head></html>") is None
    assert parse_help_metadata("<p>no metadata</p>") is None


def test_topic_metadata_validates_required_text() -> None:
    with pytest.raises(ValidationError):
        TopicMetadata(rl_title="  ", asset_id="x")
    assert _record(toc_title="   ").toc_title is None


def test_topic_metadata_json_uses_aliases() -> None:
    metadata = _record(
        keywords=[Keyword(index="A", term="1111")],
        attrs=[Attribute(name="DevLang", value="CSharp")],
    )
    payload = json.loads(metadata.to_json())

    assert payload == {
        "RLTitle": "Widget Class",
        "AssetID": "1111",
        "Keywords": [{"Index": "A", "Term": "1111"}],
        "Attrs": [{"Name": "DevLang", "Value": "CSharp"}],
    }
    assert TopicMetadata.model_validate_json(metadata.to_json()) == metadata


def test_to_help_xml_embeds_asset_id_and_globals() -> None:
    metadata = _record(toc_title="Widget", attrs=[Attribute(name="DevLang", value="C&C")])
    island = metadata.to_help_xml({"Locale": "kbEnglish"})

    assert island.startswith('<xml xmlns:MSHelp="http://msdn.microsoft.com/mshelp">')
    assert '<MSHelp:TOCTitle Title="Widget"/>' in island
    assert '<MSHelp:Attr Name="AssetID" Value="1111"/>' in island
    assert '<MSHelp:Attr Name="DevLang" Value="C&amp;C"/>' in island
    assert '<MSHelp:Attr Name="Locale" Value="kbEnglish"/>' in island
    assert island.endswith("</xml>")


def test_without_returns_same_instance_when_nothing_is_removed() -> None:
    metadata = _record(attrs=[Attribute(name="DevLang", value="CSharp")])
    assert metadata.without(["Locale"]) is metadata
    assert metadata.without(["DevLang"]).attrs == []


def test_first_heading_supports_atx_and_setext() -> None:
    assert first_heading("Intro text\n\n# Hello World #\n") == "Hello World"
    assert first_heading("Title\n=====\n\nBody") == "Title"
    assert first_heading("no heading here") is None


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Widget.Resize(Int32) Method", "Resize(Int32)"),
        ("Resize Method", "Resize"),
        ("Widget Properties", "Properties"),
        ("Getting Started", None),
    ],
)
def test_derive_toc_title(title: str, expected: str | None) -> None:
    assert derive_toc_title(title) == expected


def test_classify_topic() -> None:
    assert classify_topic("# Resize\n\n## Syntax\n\n```\ncode\n```") == SYNTAX_TOPIC
    assert classify_topic("# Overview\n\nJust prose.") == ORIENTATION_TOPIC


def test_strip_comment_block_removes_trailing_metadata_only() -> None:
    assert strip_comment_block(COMMENTED_TOPIC) == "# Widget Class\n\nBody text.\n"
    leading = "<!--\nAssetID : 1\nLocale : en\n-->\n# Title\n"
    assert strip_comment_block(leading) == leading
    plain = "# Title\n\n<!-- just a note -->\n"
    assert strip_comment_block(plain) == plain


def test_parse_comment_block_splits_globals_from_local_attributes() -> None:
    metadata, found_globals = parse_comment_block(COMMENTED_TOPIC)

    assert metadata is not None
    assert metadata.rl_title == "Widget Class"
    assert metadata.asset_id == "1111"
    assert [keyword.index for keyword in metadata.keywords] == ["K", "F"]
    assert metadata.attrs == [Attribute(name="DevLang", value="CSharp")]
    assert found_globals == {"Locale": "kbEnglish"}


def test_parse_comment_block_defaults_title_to_first_heading() -> None:
    text = "# Heading Title\n\n<!--\nAssetID : 22\nDevLang : VB\n-->\n"
    metadata, _ = parse_comment_block(text)
    assert metadata is not None
    assert metadata.rl_title == "Heading Title"


def test_parse_comment_block_needs_asset_id_and_two_entries() -> None:
    assert parse_comment_block("# T\n\n<!--\nLocale : en\nDevLang : VB\n-->\n") == (
        None,
        {"Locale": "en"},
    )
    assert parse_comment_block("# T\n\n<!--\nAssetID : 1\n-->\n") == (None, {})


def test_synthesize_metadata_mints_identity() -> None:
    text = "# Widget.Resize(Int32) Method\n\n## Syntax\n"
    metadata = synthesize_metadata(text, fallback_title="resize", asset_id="id-1")

    assert metadata.rl_title == "Widget.Resize(Int32) Method"
    assert metadata.toc_title == "Resize(Int32)"
    assert metadata.keywords == [Keyword(index="A", term="id-1")]
    assert metadata.attribute("TopicType") == SYNTAX_TOPIC

    fresh = synthesize_metadata("no heading", fallback_title="Fallback")
    assert fresh.rl_title == "Fallback"
    assert fresh.asset_id
    assert fresh.asset_id != synthesize_metadata("x", fallback_title="x").asset_id


def test_global_attributes_promote_once(tmp_path: Path) -> None:
    emitter = _RecordingEmitter()
    attributes = GlobalAttributes(tmp_path / "global.json", emitter=emitter)

    assert attributes.promote({"Locale": "kbEnglish", "DevLang": "CSharp"}) == ["Locale"]
    assert attributes.is_set
    assert attributes.promote({"Locale": "kbFrench"}) == []
    assert attributes.values == {"Locale": "kbEnglish"}
    assert [name for name, _ in emitter.events] == ["globals_promoted"]

    assert attributes.flush() is True
    assert json.loads((tmp_path / "global.json").read_text(encoding="utf-8")) == {
        "Locale": "kbEnglish"
    }
    assert attributes.flush() is False


def test_global_attributes_load(tmp_path: Path) -> None:
    path = tmp_path / "global.json"
    attributes = GlobalAttributes(path)
    assert attributes.load() is False

    path.write_text('{"Locale": "kbEnglish"}', encoding="utf-8")
    assert attributes.load() is True
    assert attributes.is_set
    assert not attributes.dirty


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_global_attributes_reject_malformed_files(tmp_path: Path, content: str) -> None:
    path = tmp_path / "global.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(MetadataFormatError):
        GlobalAttributes(path).load()


def _markdown_tree(tmp_path: Path, files: dict[str, str]) -> Path:
    root = tmp_path / "md"
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def test_store_prefers_persisted_record(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"Widget.md": COMMENTED_TOPIC})
    meta = tmp_path / "meta"
    meta.mkdir()
    (meta / "Widget.json").write_text(_record(asset_id="persisted").to_json(), encoding="utf-8")

    store = MetadataStore(meta, source_root=md_root)
    metadata = store.resolve("Widget.md")

    assert metadata.asset_id == "persisted"
    assert store.pending == []
    assert store.resolve("Widget.md") is metadata


def test_store_recovers_comment_block_and_promotes_globals(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"Widget.md": COMMENTED_TOPIC})
    meta = tmp_path / "meta"
    store = MetadataStore(meta, source_root=md_root)

    metadata = store.resolve("Widget.md")

    assert metadata.asset_id == "1111"
    assert store.globals.values == {"Locale": "kbEnglish"}
    assert store.pending == ["Widget.md"]
    assert store.flush() == []
    assert (meta / "Widget.json").is_file()
    assert json.loads((meta / "global.json").read_text(encoding="utf-8")) == {
        "Locale": "kbEnglish"
    }
    assert store.pending == []


def test_store_keeps_global_and_local_attributes_exclusive(tmp_path: Path) -> None:
    meta = tmp_path / "meta"
    meta.mkdir()
    (meta / "global.json").write_text('{"Locale": "kbEnglish"}', encoding="utf-8")
    record = _record(
        attrs=[
            Attribute(name="Locale", value="kbEnglish"),
            Attribute(name="DevLang", value="CSharp"),
        ]
    )
    (meta / "Widget.json").write_text(record.to_json(), encoding="utf-8")

    store = MetadataStore(meta)
    metadata = store.resolve("Widget.md")

    assert [attr.name for attr in metadata.attrs] == ["DevLang"]
    assert store.pending == ["Widget.md"]
    store.flush()
    stored = TopicMetadata.model_validate_json((meta / "Widget.json").read_text(encoding="utf-8"))
    assert stored.attribute("Locale") is None


def test_store_first_record_promotes_its_standard_attributes(tmp_path: Path) -> None:
    store = MetadataStore(tmp_path / "meta")
    record = _record(attrs=[Attribute(name="Product", value="Widgets")])

    localized = store.record("Widget.md", record)

    assert store.globals.values == {"Product": "Widgets"}
    assert localized.attrs == []
    assert store.pending == ["Widget.md"]


def test_store_record_skips_unchanged_records(tmp_path: Path) -> None:
    meta = tmp_path / "meta"
    meta.mkdir()
    record = _record()
    (meta / "Widget.json").write_text(record.to_json(), encoding="utf-8")

    store = MetadataStore(meta)
    store.record("Widget.md", record)
    assert store.pending == []


def test_store_ignores_invalid_record_with_warning(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"Widget.md": COMMENTED_TOPIC})
    meta = tmp_path / "meta"
    meta.mkdir()
    (meta / "Widget.json").write_text('{"RLTitle": ""}', encoding="utf-8")
    emitter = _RecordingEmitter()

    store = MetadataStore(meta, source_root=md_root, emitter=emitter)

    assert store.resolve("Widget.md").asset_id == "1111"
    assert any("Ignoring invalid metadata" in message for message in emitter.warnings)


def test_store_refuses_to_synthesize_when_quiet(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"Widget.md": "# Widget\n"})
    store = MetadataStore(tmp_path / "meta", source_root=md_root)

    with pytest.raises(MetadataMissingError) as excinfo:
        store.resolve("Widget.md")
    assert excinfo.value.key == "Widget.md"


def test_store_synthesizes_when_generation_is_allowed(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"Widget.md": "# Widget Class\n"})
    emitter = _RecordingEmitter()
    store = MetadataStore(
        tmp_path / "meta",
        source_root=md_root,
        config=SyncConfig(generate_metadata=True, quiet=True),
        emitter=emitter,
    )

    metadata = store.resolve("Widget.md")

    assert metadata.rl_title == "Widget Class"
    assert metadata.keywords == [Keyword(index="A", term=metadata.asset_id)]
    assert ("metadata_generated", {"key": "Widget.md", "asset_id": metadata.asset_id}) in (
        emitter.events
    )
    assert any("No global metadata" in message for message in emitter.warnings)
    assert store.pending == ["Widget.md"]


def test_store_synthesis_reuses_bound_asset_id(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"Widget.md": "# Widget Class\n"})
    store = MetadataStore(
        tmp_path / "meta",
        source_root=md_root,
        config=SyncConfig(generate_metadata=True, quiet=True),
    )
    store.bind_asset_id("widget.md", "G1")

    metadata = store.resolve("Widget.md")

    assert metadata.asset_id == "G1"
    assert metadata.keywords == [Keyword(index="A", term="G1")]


def test_store_overrides_persisted_asset_id_that_disagrees_with_tree(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"Widget.md": "# Widget Class\n"})
    meta = tmp_path / "meta"
    meta.mkdir()
    stale = _record(asset_id="stale", keywords=[Keyword(index="A", term="stale")])
    (meta / "Widget.json").write_text(stale.to_json(), encoding="utf-8")
    emitter = _RecordingEmitter()
    store = MetadataStore(meta, source_root=md_root, emitter=emitter)
    store.bind_asset_id("Widget.md", "G1")

    metadata = store.resolve("Widget.md")

    assert metadata.asset_id == "G1"
    assert metadata.keywords == [Keyword(index="A", term="G1")]
    assert any("'stale'" in message and "'G1'" in message for message in emitter.warnings)
    assert store.pending == ["Widget.md"]
    store.flush()
    assert json.loads((meta / "Widget.json").read_text(encoding="utf-8"))["AssetID"] == "G1"


def test_store_asks_once_when_operator_generates_all(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"A.md": "# A\n", "B.md": "# B\n"})
    prompter = ScriptedPrompter(["all", "kbEnglish"])
    store = MetadataStore(tmp_path / "meta", source_root=md_root, prompter=prompter)

    store.resolve("A.md")
    store.resolve("B.md")

    # One authorization question followed by one question per global attribute.
    assert len(prompter.questions) == 1 + len(store.globals.names)
    assert store.globals.values == {"Locale": "kbEnglish"}
    assert store.pending == ["A.md", "B.md"]


def test_store_cancels_when_operator_declines(tmp_path: Path) -> None:
    md_root = _markdown_tree(tmp_path, {"A.md": "# A\n"})
    store = MetadataStore(
        tmp_path / "meta", source_root=md_root, prompter=ScriptedPrompter(["n"])
    )
    with pytest.raises(OperationCancelled):
        store.resolve("A.md")


def test_store_path_for_mirrors_markdown_tree(tmp_path: Path) -> None:
    store = MetadataStore(tmp_path / "meta")
    assert store.path_for("Widget/Resize.md") == tmp_path / "meta" / "Widget" / "Resize.json"
