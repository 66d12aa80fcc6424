"""Source hierarchies the synchronizer can walk.

Both adapters expose the same small capability set (``list_topics``,
``read_title``, ``parent_of``, ``asset_id_of``) plus the record layout that
binds their topics to the persisted canonical tree.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from pathlib import Path, PurePosixPath
from typing import Protocol
import uuid
import xml.etree.ElementTree as ET

from .diagnostics import DiagnosticEmitter, ensure_emitter
from .exceptions import TreeFormatError
from .metadata import MetadataStore, TopicMetadata, parse_help_metadata
from .naming import fallback_title
from .prompts import Prompter, QuietPrompter
from .toc import ASSET_ID, MD_PATH, NODE_TAG, ROOT_TAG, URL, TocNode


logger = logging.getLogger(__name__)

MARKDOWN_SUFFIX = ".md"
HTML_SUFFIX = ".htm"
RESOURCES_DIR = "resources"


@dataclass(frozen=True, slots=True)
class SourceTopic:
    """A topic found in a source hierarchy, in document order."""

    key: str
    parent_key: str | None


class TocSource(Protocol):
    """Capabilities the synchronizer needs from a source hierarchy."""

    def list_topics(self) -> list[SourceTopic]: ...

    def read_title(self, key: str) -> str | None: ...

    def parent_of(self, key: str) -> str | None: ...

    def asset_id_of(self, key: str) -> str: ...

    def output_path(self, node: TocNode, ancestors: tuple[TocNode, ...]) -> str: ...

    def decode(self, record: Mapping[str, str]) -> tuple[str, str]: ...

    def encode(self, node: TocNode, ancestors: tuple[TocNode, ...]) -> dict[str, str]: ...


def _posix(value: str) -> str:
    return value.replace("\\", "/")


def _stem(path: str) -> str:
    return PurePosixPath(_posix(path)).stem


class HelpTocSource:
    """Topics of a decompiled help archive, ordered by its ``.hxt`` TOC.

    Source keys are the TOC ``Url`` values. Topics become a nested Markdown
    tree: the children of ``Name.md`` live in the ``Name/`` directory.
    """

    def __init__(
        self,
        html_root: Path,
        toc_path: Path,
        *,
        prompter: Prompter | None = None,
        emitter: DiagnosticEmitter | None = None,
    ) -> None:
        self.html_root = html_root
        self.toc_path = toc_path
        self.prompter = prompter or QuietPrompter()
        self._emitter = ensure_emitter(emitter)
        self._topics: list[SourceTopic] | None = None
        self._parents: dict[str, str | None] = {}
        self._paths: dict[str, Path] = {}
        self._metadata: dict[str, TopicMetadata | None] = {}
        self._minted: dict[str, str] = {}

    def list_topics(self) -> list[SourceTopic]:
        if self._topics is None:
            self._topics = self._scan()
        return self._topics

    def _scan(self) -> list[SourceTopic]:
        try:
            root = ET.parse(self.toc_path).getroot()
        except (ET.ParseError, OSError) as exc:
            raise TreeFormatError(f"Unable to parse TOC '{self.toc_path}': {exc}") from exc
        if root.tag != ROOT_TAG:
            raise TreeFormatError(f"Expected a <{ROOT_TAG}> document in '{self.toc_path}'.")

        topics: list[SourceTopic] = []

        def visit(element: ET.Element, parent_key: str | None) -> None:
            url = element.get(URL)
            if not url:
                raise TreeFormatError(
                    f"TOC entry '{element.get('Title', '?')}' in '{self.toc_path}' has no Url."
                )
            if url in self._parents:
                self._emitter.warning(f"Skipping repeated TOC entry for '{url}'.")
                return
            path = self._locate(url)
            if path is None:
                self._emitter.warning(
                    f"Topic file '{url}' was not found; skipping it and its children."
                )
                return
            self._paths[url] = path
            self._parents[url] = parent_key
            topics.append(SourceTopic(url, parent_key))
            for child in element.findall(NODE_TAG):
                visit(child, url)

        for element in root.findall(NODE_TAG):
            visit(element, None)
        return topics

    def _locate(self, url: str) -> Path | None:
        candidate = self.html_root / _posix(url)
        if candidate.is_file():
            return candidate
        if not self.prompter.interactive:
            return None
        answer = self.prompter.ask(
            f"Topic file '{url}' was not found. Enter its path, or leave empty to skip it",
            default="",
        ).strip()
        if answer and Path(answer).is_file():
            return Path(answer)
        return None

    def path_of(self, key: str) -> Path:
        self.list_topics()
        return self._paths[key]

    def metadata_of(self, key: str) -> TopicMetadata | None:
        """Return the metadata island of a topic page, if it has one."""
        if key not in self._metadata:
            try:
                html = self.path_of(key).read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.debug("Unable to read %s: %s", key, exc)
                html = ""
            self._metadata[key] = parse_help_metadata(html) if html else None
        return self._metadata[key]

    def read_title(self, key: str) -> str | None:
        metadata = self.metadata_of(key)
        if metadata is not None:
            return metadata.display_title
        return fallback_title(key)

    def parent_of(self, key: str) -> str | None:
        self.list_topics()
        return self._parents.get(key)

    def asset_id_of(self, key: str) -> str:
        metadata = self.metadata_of(key)
        if metadata is not None:
            return metadata.asset_id
        return self._minted.setdefault(key, str(uuid.uuid4()))

    def output_path(self, node: TocNode, ancestors: tuple[TocNode, ...]) -> str:
        names = [ancestor.output_name for ancestor in ancestors]
        names.append(node.output_name)
        return "/".join(names) + MARKDOWN_SUFFIX

    def decode(self, record: Mapping[str, str]) -> tuple[str, str]:
        md_path = record.get(MD_PATH, "")
        return record[URL], _stem(md_path) if md_path else ""

    def encode(self, node: TocNode, ancestors: tuple[TocNode, ...]) -> dict[str, str]:
        return {URL: node.source_key, MD_PATH: self.output_path(node, ancestors)}


class MarkdownTreeSource:
    """Topics of a Markdown tree where ``Name/`` holds the children of ``Name.md``.

    Source keys are POSIX paths relative to the tree root. Output names are
    flat ``.htm`` page names.
    """

    def __init__(
        self,
        md_root: Path,
        store: MetadataStore,
        *,
        allow_rootless: bool = False,
        emitter: DiagnosticEmitter | None = None,
    ) -> None:
        self.md_root = md_root
        self.store = store
        self.allow_rootless = allow_rootless
        self._emitter = ensure_emitter(emitter)
        self._topics: list[SourceTopic] | None = None
        self._parents: dict[str, str | None] = {}

    def _excluded(self, directory: Path) -> bool:
        relative = directory.relative_to(self.md_root)
        return any(part == RESOURCES_DIR or part.startswith(".") for part in relative.parts)

    def unmatched_directories(self) -> list[Path]:
        """Return directories holding Markdown files but no sibling ``<dir>.md``."""
        unmatched: list[Path] = []
        for directory in sorted(self.md_root.rglob("*")):
            if not directory.is_dir() or self._excluded(directory):
                continue
            has_markdown = any(directory.glob(f"*{MARKDOWN_SUFFIX}"))
            sibling = directory.parent / f"{directory.name}{MARKDOWN_SUFFIX}"
            if has_markdown and not sibling.is_file():
                unmatched.append(directory)
        return unmatched

    def validate(self) -> list[str]:
        """Check the tree layout, returning non-fatal problems.

        Raises :class:`TreeFormatError` when the top level does not hold
        exactly one topic and rootless trees are not allowed.
        """
        problems = [
            f"Directory '{directory.relative_to(self.md_root).as_posix()}' has no matching "
            f"'{directory.name}{MARKDOWN_SUFFIX}'; its topics are ignored."
            for directory in self.unmatched_directories()
        ]
        top_level = self._markdown_files(self.md_root)
        if not top_level:
            raise TreeFormatError(f"No Markdown topics found in '{self.md_root}'.")
        if len(top_level) > 1 and not self.allow_rootless:
            names = ", ".join(path.name for path in top_level)
            raise TreeFormatError(
                f"'{self.md_root}' holds {len(top_level)} top-level topics ({names}); "
                "keep exactly one or allow rootless TOCs."
            )
        return problems

    @staticmethod
    def _markdown_files(directory: Path) -> list[Path]:
        files = [path for path in directory.glob(f"*{MARKDOWN_SUFFIX}") if path.is_file()]
        return sorted(files, key=lambda path: path.name.casefold())

    def list_topics(self) -> list[SourceTopic]:
        if self._topics is None:
            for problem in self.validate():
                self._emitter.warning(problem)
            self._topics = []
            self._visit(self.md_root, None)
        return self._topics

    def _visit(self, directory: Path, parent_key: str | None) -> None:
        assert self._topics is not None
        for path in self._markdown_files(directory):
            key = path.relative_to(self.md_root).as_posix()
            self._topics.append(SourceTopic(key, parent_key))
            self._parents[key] = parent_key
            children = directory / path.stem
            if children.is_dir() and not self._excluded(children):
                self._visit(children, key)

    def read_title(self, key: str) -> str | None:
        return self.store.resolve(key).display_title

    def parent_of(self, key: str) -> str | None:
        self.list_topics()
        return self._parents.get(key)

    def asset_id_of(self, key: str) -> str:
        return self.store.resolve(key).asset_id

    def output_path(self, node: TocNode, ancestors: tuple[TocNode, ...]) -> str:
        return f"{node.output_name}{HTML_SUFFIX}"

    def decode(self, record: Mapping[str, str]) -> tuple[str, str]:
        md_path = _posix(record[MD_PATH])
        url = _posix(record.get(URL, ""))
        if url.lower().endswith(HTML_SUFFIX):
            url = url[: -len(HTML_SUFFIX)]
        asset_id = record.get(ASSET_ID)
        if asset_id:
            # Resolved metadata must carry the id the tree already published.
            self.store.bind_asset_id(md_path, asset_id)
        return md_path, url

    def encode(self, node: TocNode, ancestors: tuple[TocNode, ...]) -> dict[str, str]:
        return {URL: f"{node.output_name}{HTML_SUFFIX}", MD_PATH: node.source_key}


__all__ = [
    "HTML_SUFFIX",
    "MARKDOWN_SUFFIX",
    "RESOURCES_DIR",
    "HelpTocSource",
    "MarkdownTreeSource",
    "SourceTopic",
    "TocSource",
]
