"""Canonical TOC tree model and its persisted XML form."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Protocol
import xml.etree.ElementTree as ET

from .exceptions import DuplicateAssetIdError, DuplicateOutputNameError, TreeFormatError
from .io import DEFAULT_ATTEMPTS, backup, replace_text


logger = logging.getLogger(__name__)

ROOT_TAG = "HelpTOC"
NODE_TAG = "HelpTOCNode"
DTD_VERSION = "1.0"
DOCTYPE = '<!DOCTYPE HelpTOC SYSTEM "ms-help://hx/resources/HelpTOC.DTD">'
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'

URL = "Url"
TITLE = "Title"
MD_PATH = "MDPath"
ASSET_ID = "AssetID"
# Bookkeeping fields the help compiler does not understand.
EPHEMERAL_FIELDS = (MD_PATH, ASSET_ID)
KNOWN_FIELDS = (URL, TITLE, MD_PATH, ASSET_ID)


@dataclass(eq=False)
class TocNode:
    """One topic of the canonical tree."""

    source_key: str
    output_name: str
    title: str
    asset_id: str | None = None
    children: list[TocNode] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)

    def add(self, child: TocNode) -> TocNode:
        self.children.append(child)
        return child

    def walk(self) -> Iterator[TocNode]:
        yield self
        for child in self.children:
            yield from child.walk()


class RecordLayout(Protocol):
    """Maps tree nodes to persisted records for one conversion direction."""

    def decode(self, record: Mapping[str, str]) -> tuple[str, str]:
        """Return ``(source_key, output_name)`` for a persisted record."""
        ...

    def encode(self, node: TocNode, ancestors: tuple[TocNode, ...]) -> dict[str, str]:
        """Return the ``Url`` and ``MDPath`` fields for ``node``."""
        ...


def _key(value: str) -> str:
    return value.casefold()


class CanonicalTree:
    """Ordered forest of :class:`TocNode` objects.

    A tree normally has one top-level node; more are accepted only when
    ``allow_rootless`` is set.
    """

    def __init__(self, roots: list[TocNode] | None = None, *, allow_rootless: bool = False) -> None:
        self.roots: list[TocNode] = list(roots or [])
        self.allow_rootless = allow_rootless

    def __len__(self) -> int:
        return sum(1 for _ in self.nodes())

    def __bool__(self) -> bool:
        return bool(self.roots)

    def nodes(self) -> Iterator[TocNode]:
        for root in self.roots:
            yield from root.walk()

    def walk(self) -> Iterator[tuple[TocNode, tuple[TocNode, ...]]]:
        """Yield every node depth-first with its ancestors, outermost first."""
        stack: list[tuple[TocNode, tuple[TocNode, ...]]] = [
            (root, ()) for root in reversed(self.roots)
        ]
        while stack:
            node, ancestors = stack.pop()
            yield node, ancestors
            chain = (*ancestors, node)
            stack.extend((child, chain) for child in reversed(node.children))

    def index(self) -> dict[str, TocNode]:
        """Return nodes keyed by case-folded source key."""
        mapping: dict[str, TocNode] = {}
        for node in self.nodes():
            key = _key(node.source_key)
            if key in mapping:
                raise TreeFormatError(
                    f"Source '{node.source_key}' appears more than once in the TOC."
                )
            mapping[key] = node
        return mapping

    def add_root(self, node: TocNode) -> TocNode:
        self.roots.append(node)
        return node

    def check_root(self) -> None:
        if len(self.roots) > 1 and not self.allow_rootless:
            titles = ", ".join(root.title for root in self.roots)
            raise TreeFormatError(
                f"The TOC has {len(self.roots)} top-level topics ({titles}) but rootless "
                "TOCs are not allowed."
            )

    def _duplicates(self, value_of: Callable[[TocNode], str | None]) -> list[tuple[str, list[str]]]:
        owners: dict[str, list[TocNode]] = defaultdict(list)
        for node in self.nodes():
            value = value_of(node)
            if value:
                owners[_key(value)].append(node)
        return [
            (value_of(nodes[0]) or "", [node.source_key for node in nodes])
            for nodes in owners.values()
            if len(nodes) > 1
        ]

    def duplicate_asset_ids(self) -> list[tuple[str, list[str]]]:
        return self._duplicates(lambda node: node.asset_id)

    def duplicate_names(self) -> list[tuple[str, list[str]]]:
        return self._duplicates(lambda node: node.output_name)

    def check_unique_asset_ids(self) -> None:
        duplicates = self.duplicate_asset_ids()
        if duplicates:
            raise DuplicateAssetIdError(*duplicates[0])

    def check_unique_names(self) -> None:
        duplicates = self.duplicate_names()
        if duplicates:
            raise DuplicateOutputNameError(*duplicates[0])

    def validate(self) -> None:
        """Raise on any violated tree invariant."""
        self.check_root()
        self.check_unique_asset_ids()
        self.check_unique_names()


def _node_from_element(element: ET.Element, layout: RecordLayout) -> TocNode:
    record = dict(element.attrib)
    try:
        source_key, output_name = layout.decode(record)
    except KeyError as exc:
        raise TreeFormatError(
            f"TOC entry '{record.get(TITLE, '?')}' lacks the {exc.args[0]} attribute."
        ) from exc
    node = TocNode(
        source_key=source_key,
        output_name=output_name,
        title=record.get(TITLE, output_name),
        asset_id=record.get(ASSET_ID) or None,
        attributes={key: value for key, value in record.items() if key not in KNOWN_FIELDS},
    )
    for child in element.findall(NODE_TAG):
        node.add(_node_from_element(child, layout))
    return node


def parse_tree(source: Path | str, layout: RecordLayout, *, allow_rootless: bool = False) -> CanonicalTree:
    """Read a persisted tree from a file path or XML text."""
    try:
        if isinstance(source, Path):
            root = ET.parse(source).getroot()
        else:
            root = ET.fromstring(source)
    except (ET.ParseError, OSError) as exc:
        raise TreeFormatError(f"Unable to parse TOC '{source}': {exc}") from exc
    if root.tag != ROOT_TAG:
        raise TreeFormatError(f"Expected a <{ROOT_TAG}> document, found <{root.tag}>.")
    roots = [_node_from_element(element, layout) for element in root.findall(NODE_TAG)]
    return CanonicalTree(roots, allow_rootless=allow_rootless)


def render_tree(tree: CanonicalTree, layout: RecordLayout, *, clean: bool = False) -> str:
    """Serialize ``tree`` deterministically.

    The clean variant omits the bookkeeping fields and is what the help
    compiler consumes.
    """
    root = ET.Element(ROOT_TAG, {"DTDVersion": DTD_VERSION})
    parents: dict[int, ET.Element] = {}
    for node, ancestors in tree.walk():
        container = parents[id(ancestors[-1])] if ancestors else root
        fields = layout.encode(node, ancestors)
        attrib = {URL: fields[URL], TITLE: node.title, MD_PATH: fields.get(MD_PATH, "")}
        if node.asset_id:
            attrib[ASSET_ID] = node.asset_id
        attrib.update(sorted(node.attributes.items()))
        if clean:
            for name in EPHEMERAL_FIELDS:
                attrib.pop(name, None)
        parents[id(node)] = ET.SubElement(container, NODE_TAG, attrib)
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return f"{XML_DECLARATION}\n{DOCTYPE}\n{body}\n"


def write_tree(path: Path, content: str, *, attempts: int = DEFAULT_ATTEMPTS) -> bool:
    """Persist ``content`` at ``path`` unless it is already current.

    A replaced file is first copied to its next ``.bkp.N`` slot. Returns
    whether the file was written.
    """
    if path.exists():
        try:
            if path.read_text(encoding="utf-8") == content:
                logger.debug("TOC %s is unchanged", path)
                return False
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Unable to compare %s: %s", path, exc)
        backup(path)
    replace_text(path, content, attempts=attempts)
    return True


__all__ = [
    "ASSET_ID",
    "DOCTYPE",
    "EPHEMERAL_FIELDS",
    "MD_PATH",
    "NODE_TAG",
    "ROOT_TAG",
    "TITLE",
    "URL",
    "CanonicalTree",
    "RecordLayout",
    "TocNode",
    "parse_tree",
    "render_tree",
    "write_tree",
]
