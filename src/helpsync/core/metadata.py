"""Per-topic identity records and the docset-wide attribute store."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from html import escape
import json
import logging
from pathlib import Path, PurePosixPath
import re
from typing import Any
import uuid

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import SyncConfig
from .diagnostics import DiagnosticEmitter, ensure_emitter
from .exceptions import (
    MetadataFormatError,
    MetadataMissingError,
    OperationCancelled,
    WriteFailedError,
)
from .io import write_text
from .prompts import Prompter, QuietPrompter


logger = logging.getLogger(__name__)

MSHELP_NAMESPACE = "http://msdn.microsoft.com/mshelp"
GLOBAL_FILENAME = "global.json"

STANDARD_GLOBAL_NAMES = (
    "Locale",
    "DocSet",
    "ProjType",
    "Technology",
    "Product",
    "productversion",
    "CommunityContent",
)

TOPIC_TYPE = "TopicType"
SYNTAX_TOPIC = "kbSyntax"
ORIENTATION_TOPIC = "kbOrient"

MEMBER_WORDS = frozenset(
    {"property", "method", "event", "field", "interface", "enumeration", "structure", "function"}
)
GROUPING_WORDS = frozenset(
    {
        "members",
        "properties",
        "methods",
        "events",
        "fields",
        "interfaces",
        "enumerations",
        "structures",
        "functions",
    }
)

_COMMENT_RE = re.compile(r"<!--(?P<body>.*?)-->", re.DOTALL)
_ENTRY_RE = re.compile(r"^\s*(?P<key>[A-Za-z][\w.-]*)\s+:\s+(?P<value>.*?)\s*$")
_KEYWORD_KEY_RE = re.compile(r"^Keyword(?P<index>[A-Za-z])$")
_ATX_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s*(?P<title>.+?)\s*#*\s*$")
_SETEXT_RE = re.compile(r"^\s{0,3}(=+|-+)\s*$")
_SYNTAX_RE = re.compile(
    r"^\s{0,3}#+\s*Syntax\s*#*\s*$|<span[^>]*>\s*Syntax\s*</span>",
    re.IGNORECASE | re.MULTILINE,
)


class Keyword(BaseModel):
    """Index entry attached to a topic."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    index: str = Field(alias="Index")
    term: str = Field(alias="Term")


class Attribute(BaseModel):
    """Name/value classification attribute."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(alias="Name")
    value: str = Field(alias="Value")


class TopicMetadata(BaseModel):
    """Identity and classification record of one topic."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rl_title: str = Field(alias="RLTitle")
    toc_title: str | None = Field(default=None, alias="TOCTitle")
    asset_id: str = Field(alias="AssetID")
    keywords: list[Keyword] = Field(default_factory=list, alias="Keywords")
    attrs: list[Attribute] = Field(default_factory=list, alias="Attrs")

    @field_validator("rl_title", "asset_id")
    @classmethod
    def _require_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("toc_title")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @property
    def display_title(self) -> str:
        """Return the title shown in the TOC."""
        return self.toc_title or self.rl_title

    def attribute(self, name: str) -> str | None:
        for attr in self.attrs:
            if attr.name == name:
                return attr.value
        return None

    def without(self, names: Iterable[str]) -> TopicMetadata:
        """Return a copy without the attributes listed in ``names``."""
        excluded = set(names)
        kept = [attr for attr in self.attrs if attr.name not in excluded]
        if len(kept) == len(self.attrs):
            return self
        return self.model_copy(update={"attrs": kept})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2) + "\n"

    def to_help_xml(self, global_attributes: Mapping[str, str] | None = None) -> str:
        """Render the ``MSHelp`` data island embedded in generated pages."""
        lines = [f'<xml xmlns:MSHelp="{MSHELP_NAMESPACE}">']
        if self.toc_title:
            lines.append(f'<MSHelp:TOCTitle Title="{escape(self.toc_title)}"/>')
        lines.append(f'<MSHelp:RLTitle Title="{escape(self.rl_title)}"/>')
        for keyword in self.keywords:
            lines.append(
                f'<MSHelp:Keyword Index="{escape(keyword.index)}" Term="{escape(keyword.term)}"/>'
            )
        lines.append(f'<MSHelp:Attr Name="AssetID" Value="{escape(self.asset_id)}"/>')
        for attr in self.attrs:
            lines.append(f'<MSHelp:Attr Name="{escape(attr.name)}" Value="{escape(attr.value)}"/>')
        for name, value in (global_attributes or {}).items():
            lines.append(f'<MSHelp:Attr Name="{escape(name)}" Value="{escape(value)}"/>')
        lines.append("</xml>")
        return "\n".join(lines)


def parse_help_metadata(html: str) -> TopicMetadata | None:
    """Extract the ``MSHelp`` data island of a compiled help page.

    Returns ``None`` when the page carries no title or asset id.
    """
    soup = BeautifulSoup(html, "html.parser")
    values: dict[str, Any] = {"Keywords": [], "Attrs": []}
    for tag in soup.find_all(re.compile(r"^mshelp:", re.IGNORECASE)):
        kind = tag.name.split(":", 1)[1].lower()
        if kind == "rltitle":
            values["RLTitle"] = tag.get("title", "")
        elif kind == "toctitle":
            values["TOCTitle"] = tag.get("title")
        elif kind == "keyword" and tag.get("index") and tag.get("term"):
            values["Keywords"].append({"Index": tag["index"], "Term": tag["term"]})
        elif kind == "attr" and tag.get("name"):
            name, value = tag["name"], tag.get("value", "")
            if name == "AssetID":
                values["AssetID"] = value
            else:
                values["Attrs"].append({"Name": name, "Value": value})
    if "RLTitle" not in values and soup.title and soup.title.string:
        values["RLTitle"] = soup.title.string
    try:
        return TopicMetadata.model_validate(values)
    except ValidationError:
        return None


def first_heading(text: str) -> str | None:
    """Return the first ATX or setext heading of a Markdown document."""
    lines = text.splitlines()
    for position, line in enumerate(lines):
        match = _ATX_HEADING_RE.match(line)
        if match:
            return match.group("title").strip()
        if (
            line.strip()
            and position + 1 < len(lines)
            and _SETEXT_RE.match(lines[position + 1])
        ):
            return line.strip()
    return None


def derive_toc_title(title: str) -> str | None:
    """Return the short TOC title for member and grouping pages.

    ``Widget.Resize(Int32) Method`` becomes ``Resize(Int32)`` and
    ``Widget Properties`` becomes ``Properties``. Other titles have none.
    """
    head, _, last = title.strip().rpartition(" ")
    word = last.lower()
    if head and word in MEMBER_WORDS:
        dot = head.find(".")
        paren = head.find("(")
        if dot != -1 and paren != -1 and dot < paren:
            return head[dot + 1 :]
        return head
    if word in GROUPING_WORDS:
        return last
    return None


def classify_topic(text: str) -> str:
    return SYNTAX_TOPIC if _SYNTAX_RE.search(text) else ORIENTATION_TOPIC


def strip_comment_block(text: str) -> str:
    """Remove a trailing metadata comment block from Markdown content."""
    match = _trailing_comment(text)
    if match is None:
        return text
    return text[: match.start()].rstrip() + "\n"


def _trailing_comment(text: str) -> re.Match[str] | None:
    last: re.Match[str] | None = None
    for match in _COMMENT_RE.finditer(text):
        last = match
    if last is None or text[last.end() :].strip():
        return None
    if not any(_ENTRY_RE.match(line) for line in last.group("body").splitlines()):
        return None
    return last


def parse_comment_block(text: str) -> tuple[TopicMetadata | None, dict[str, str]]:
    """Recover metadata from a trailing ``<!-- key : value -->`` block.

    Returns the record (``None`` when the block lacks an asset id) and the
    standard global attributes found in the block.
    """
    match = _trailing_comment(text)
    if match is None:
        return None, {}
    entries: list[tuple[str, str]] = []
    for line in match.group("body").splitlines():
        entry = _ENTRY_RE.match(line)
        if entry:
            entries.append((entry.group("key"), entry.group("value")))
    if len(entries) < 2:
        return None, {}

    values: dict[str, Any] = {"Keywords": [], "Attrs": []}
    found_globals: dict[str, str] = {}
    for key, value in entries:
        keyword = _KEYWORD_KEY_RE.match(key)
        if key in {"RLTitle", "TOCTitle", "AssetID"}:
            values[key] = value
        elif keyword:
            values["Keywords"].append({"Index": keyword.group("index"), "Term": value})
        elif key in STANDARD_GLOBAL_NAMES:
            found_globals[key] = value
        else:
            values["Attrs"].append({"Name": key, "Value": value})
    if not values.get("AssetID"):
        return None, found_globals
    values.setdefault("RLTitle", first_heading(text[: match.start()]) or "")
    try:
        return TopicMetadata.model_validate(values), found_globals
    except ValidationError:
        return None, found_globals


def synthesize_metadata(text: str, *, fallback_title: str, asset_id: str | None = None) -> TopicMetadata:
    """Mint a fresh record from Markdown content."""
    identifier = asset_id or str(uuid.uuid4())
    title = first_heading(text) or fallback_title
    return TopicMetadata(
        rl_title=title,
        toc_title=derive_toc_title(title),
        asset_id=identifier,
        keywords=[Keyword(index="A", term=identifier)],
        attrs=[Attribute(name=TOPIC_TYPE, value=classify_topic(text))],
    )


class GlobalState(Enum):
    UNSET = "unset"
    SET = "set"


class GlobalAttributes:
    """Docset-wide attribute set, promoted once and persisted once.

    The set starts ``UNSET``. The first topic exposing any standard attribute
    moves it to ``SET`` with that topic's values; a persisted record loaded
    from disk does the same. Once set, the values never change during a run
    and every topic drops them from its local attributes.
    """

    def __init__(
        self,
        path: Path,
        *,
        names: Iterable[str] = STANDARD_GLOBAL_NAMES,
        emitter: DiagnosticEmitter | None = None,
    ) -> None:
        self.path = path
        self.names = tuple(names)
        self.values: dict[str, str] = {}
        self.state = GlobalState.UNSET
        self.dirty = False
        self._emitter = ensure_emitter(emitter)

    @property
    def is_set(self) -> bool:
        return self.state is GlobalState.SET

    def load(self) -> bool:
        """Read the persisted record, returning whether one was found."""
        if not self.path.exists():
            return False
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise MetadataFormatError(
                f"Global metadata file '{self.path}' cannot be read: {exc}"
            ) from exc
        if not isinstance(payload, Mapping):
            raise MetadataFormatError(f"Global metadata file '{self.path}' must hold an object.")
        values = {str(key): str(value) for key, value in payload.items() if value is not None}
        if not values:
            return False
        self.values = values
        self.state = GlobalState.SET
        return True

    def promote(self, candidates: Mapping[str, str]) -> list[str]:
        """Adopt standard attributes from ``candidates`` if still unset."""
        if self.is_set:
            return []
        found = {name: candidates[name] for name in self.names if candidates.get(name)}
        if not found:
            return []
        self.values = found
        self.state = GlobalState.SET
        self.dirty = True
        promoted = list(found)
        self._emitter.event("globals_promoted", {"names": promoted, "path": str(self.path)})
        return promoted

    def localize(self, metadata: TopicMetadata) -> TopicMetadata:
        """Drop every attribute ``metadata`` shares with the global set."""
        if not self.values:
            return metadata
        return metadata.without(self.values)

    def to_json(self) -> str:
        return json.dumps(self.values, indent=2, ensure_ascii=False) + "\n"

    def flush(self, *, attempts: int = 3) -> bool:
        """Persist newly promoted values, returning whether a write happened."""
        if not self.dirty:
            return False
        write_text(self.path, self.to_json(), attempts=attempts)
        self.dirty = False
        return True


class MetadataStore:
    """Resolve, cache and stage per-topic metadata records.

    Records live under ``meta_root`` at the Markdown path of their topic with a
    ``.json`` suffix. Resolution prefers the persisted record, then a trailing
    comment block in the topic source, then synthesis. New or recovered
    records are staged and only written by :meth:`flush`.
    """

    def __init__(
        self,
        meta_root: Path,
        *,
        source_root: Path | None = None,
        global_path: Path | None = None,
        config: SyncConfig | None = None,
        prompter: Prompter | None = None,
        emitter: DiagnosticEmitter | None = None,
    ) -> None:
        self.meta_root = meta_root
        self.source_root = source_root
        self.config = config or SyncConfig()
        self.prompter = prompter or QuietPrompter()
        self._emitter = ensure_emitter(emitter)
        self.globals = GlobalAttributes(
            global_path or meta_root / GLOBAL_FILENAME, emitter=self._emitter
        )
        self.globals.load()
        self._cache: dict[str, TopicMetadata] = {}
        self._pending: dict[str, TopicMetadata] = {}
        self._generate_all = self.config.generate_metadata
        self._warned = False
        self._bound_ids: dict[str, str] = {}

    def path_for(self, key: str) -> Path:
        return self.meta_root / PurePosixPath(key).with_suffix(".json")

    def bind_asset_id(self, key: str, asset_id: str) -> None:
        """Pin the asset id the canonical tree records for ``key``.

        Resolution never mints or keeps a different id for a bound topic.
        """
        self._bound_ids[key.casefold()] = asset_id
        self._cache.pop(key, None)

    def load(self, key: str) -> TopicMetadata | None:
        """Return the persisted record for ``key`` when it is usable."""
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise MetadataFormatError(f"Metadata file '{path}' cannot be read: {exc}") from exc
        try:
            return TopicMetadata.model_validate_json(text)
        except ValidationError as exc:
            self._emitter.warning(f"Ignoring invalid metadata file '{path}'.", exc)
            return None

    def resolve(self, key: str, text: str | None = None) -> TopicMetadata:
        """Return the metadata of the Markdown topic ``key``.

        ``text`` is the topic content; it is read from ``source_root`` when
        omitted and the persisted record is unusable.
        """
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        bound = self._bound_ids.get(key.casefold())
        metadata = self.load(key)
        if metadata is None:
            content = text if text is not None else self._read_source(key)
            metadata, found_globals = parse_comment_block(content)
            if found_globals:
                self.globals.promote(found_globals)
            if metadata is not None:
                logger.debug("Recovered metadata for %s from its comment block", key)
            else:
                metadata = self._synthesize(key, content, asset_id=bound)
            self._pending[key] = metadata
        else:
            self._promote_from(metadata)

        if bound is not None and metadata.asset_id != bound:
            self._emitter.warning(
                f"Metadata for '{key}' carries AssetID '{metadata.asset_id}' but the TOC "
                f"records '{bound}'; keeping '{bound}'."
            )
            keywords = [
                keyword.model_copy(update={"term": bound})
                if keyword.index == "A" and keyword.term == metadata.asset_id
                else keyword
                for keyword in metadata.keywords
            ]
            metadata = metadata.model_copy(update={"asset_id": bound, "keywords": keywords})
            self._pending[key] = metadata

        localized = self.globals.localize(metadata)
        if localized is not metadata:
            self._pending[key] = localized
        self._cache[key] = localized
        return localized

    def record(self, key: str, metadata: TopicMetadata) -> TopicMetadata:
        """Adopt metadata read from a compiled topic and stage it."""
        self._promote_from(metadata)
        localized = self.globals.localize(metadata)
        existing = self.load(key)
        if existing is None or existing != localized:
            self._pending[key] = localized
        self._cache[key] = localized
        return localized

    def _promote_from(self, metadata: TopicMetadata) -> None:
        if self.globals.is_set:
            return
        candidates = {attr.name: attr.value for attr in metadata.attrs}
        self.globals.promote(candidates)

    def _read_source(self, key: str) -> str:
        if self.source_root is None:
            return ""
        path = self.source_root / PurePosixPath(key)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.debug("Unable to read %s: %s", path, exc)
            return ""

    def _synthesize(self, key: str, text: str, *, asset_id: str | None = None) -> TopicMetadata:
        if not self._generate_all:
            self._authorize(key)
        metadata = synthesize_metadata(
            text, fallback_title=PurePosixPath(key).stem, asset_id=asset_id
        )
        self._emitter.event("metadata_generated", {"key": key, "asset_id": metadata.asset_id})
        if not self.globals.is_set:
            self._ask_globals()
        return metadata

    def _authorize(self, key: str) -> None:
        if not self.prompter.interactive:
            raise MetadataMissingError(key)
        if not self._warned:
            self._emitter.warning(
                "Topics without metadata were found. Generating new metadata mints new "
                "asset ids; if a topic was published before, restore its metadata instead."
            )
            self._warned = True
        answer = self.prompter.choose(
            f"Generate new metadata for '{key}'?", ["y", "n", "all"], default="n"
        )
        if answer == "all":
            self._generate_all = True
        elif answer != "y":
            raise OperationCancelled(f"Metadata generation declined for '{key}'.")

    def _ask_globals(self) -> None:
        if not self.prompter.interactive:
            self._emitter.warning(
                f"No global metadata available; create '{self.globals.path}' to set "
                "docset attributes."
            )
            return
        answers = {
            name: self.prompter.ask(f"Value for global attribute '{name}'", default="")
            for name in self.globals.names
        }
        self.globals.promote({name: value.strip() for name, value in answers.items()})

    @property
    def pending(self) -> list[str]:
        return sorted(self._pending)

    def flush(self) -> list[WriteFailedError]:
        """Write staged records, returning the failures of single items."""
        failures: list[WriteFailedError] = []
        attempts = self.config.write_attempts
        try:
            self.globals.flush(attempts=attempts)
        except WriteFailedError as exc:
            self._emitter.warning(str(exc), exc)
            failures.append(exc)
        for key in sorted(self._pending):
            try:
                write_text(self.path_for(key), self._pending[key].to_json(), attempts=attempts)
            except WriteFailedError as exc:
                self._emitter.warning(str(exc), exc)
                failures.append(exc)
        self._pending.clear()
        return failures


__all__ = [
    "GLOBAL_FILENAME",
    "MSHELP_NAMESPACE",
    "ORIENTATION_TOPIC",
    "STANDARD_GLOBAL_NAMES",
    "SYNTAX_TOPIC",
    "TOPIC_TYPE",
    "Attribute",
    "GlobalAttributes",
    "GlobalState",
    "Keyword",
    "MetadataStore",
    "TopicMetadata",
    "classify_topic",
    "derive_toc_title",
    "first_heading",
    "parse_comment_block",
    "parse_help_metadata",
    "strip_comment_block",
    "synthesize_metadata",
]
