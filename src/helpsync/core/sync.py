"""Synchronize a source hierarchy with the persisted canonical TOC tree.

The synchronizer moves through ``UNINITIALIZED -> LOADED | EMPTY ->
RECONCILED -> PERSISTED``. Reconciliation keeps every existing node's asset id
and output name, appends nodes for new topics, and runs inside the path budget
loop so a tighter segment budget rebuilds the whole tree from the loaded
state.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
import logging
from pathlib import Path

from .budget import PathBudget, fit_to_ceiling
from .config import SyncConfig
from .dedup import NameRegistry
from .diagnostics import DiagnosticEmitter, ensure_emitter
from .exceptions import (
    DocsetError,
    DuplicateAssetIdError,
    DuplicateOutputNameError,
    MovedNodeError,
    OrphanedNodeError,
)
from .io import replace_text
from .naming import adjust_for_context, derive_name
from .sources import TocSource
from .toc import CanonicalTree, TocNode, parse_tree, render_tree, write_tree


logger = logging.getLogger(__name__)


class SyncState(Enum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    EMPTY = "empty"
    RECONCILED = "reconciled"
    PERSISTED = "persisted"


class StateError(DocsetError):
    """Raised when a synchronizer step is called out of order."""


@dataclass(slots=True)
class Reconciliation:
    """Tree produced by one build together with what changed."""

    tree: CanonicalTree
    added: list[TocNode] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    renamed: list[tuple[str, str, str]] = field(default_factory=list)
    kept_missing: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PersistResult:
    tree_path: Path
    written: bool
    clean_path: Path | None = None


class TocSynchronizer:
    """Bring the canonical tree at ``tree_path`` in line with ``source``."""

    def __init__(
        self,
        source: TocSource,
        tree_path: Path,
        *,
        config: SyncConfig | None = None,
        offset: int | None = None,
        root_name: str | None = None,
        emitter: DiagnosticEmitter | None = None,
    ) -> None:
        self.source = source
        self.tree_path = tree_path
        self.config = config or SyncConfig()
        self.offset = self.config.path_offset if offset is None else offset
        self.root_name = root_name
        self._emitter = ensure_emitter(emitter)
        self.state = SyncState.UNINITIALIZED
        self._loaded: CanonicalTree | None = None
        self.result: Reconciliation | None = None
        self.segment_length: int | None = None

    @property
    def tree(self) -> CanonicalTree:
        if self.result is not None:
            return self.result.tree
        if self._loaded is not None:
            return self._loaded
        raise StateError("The canonical tree has not been loaded.")

    def _require(self, *states: SyncState) -> None:
        if self.state not in states:
            expected = " or ".join(state.value for state in states)
            raise StateError(f"Synchronizer is {self.state.value}; expected {expected}.")

    def load(self) -> CanonicalTree:
        """Read the persisted tree, or start an empty one."""
        self._require(SyncState.UNINITIALIZED)
        allow_rootless = self.config.allow_rootless
        if self.tree_path.exists():
            tree = parse_tree(self.tree_path, self.source, allow_rootless=allow_rootless)
            tree.index()
            tree.check_unique_asset_ids()
            self.state = SyncState.LOADED
            logger.debug("Loaded %s topics from %s", len(tree), self.tree_path)
        else:
            tree = CanonicalTree(allow_rootless=allow_rootless)
            self.state = SyncState.EMPTY
            logger.debug("No canonical tree at %s; starting empty", self.tree_path)
        self._loaded = tree
        return tree

    def reconcile(self) -> Reconciliation:
        """Merge the current source topics into the loaded tree."""
        self._require(SyncState.LOADED, SyncState.EMPTY)
        top_level = [topic for topic in self.source.list_topics() if topic.parent_key is None]
        if self.root_name and len(top_level) > 1:
            self._emitter.warning(
                f"Ignoring root collection name '{self.root_name}' for a rootless TOC."
            )
            self.root_name = None
        budget = PathBudget(
            segment_length=self.config.max_segment_length,
            offset=self.offset,
            ceiling=self.config.path_ceiling,
            minimum=self.config.min_segment_length,
        )
        outcome = fit_to_ceiling(
            self._build,
            self._output_paths,
            budget,
            max_iterations=self.config.max_budget_iterations,
            emitter=self._emitter,
        )
        result = outcome.result
        result.tree.validate()
        self.result = result
        self.segment_length = outcome.segment_length
        self.state = SyncState.RECONCILED
        self._report(result)
        return result

    def _output_paths(self, result: Reconciliation) -> list[str]:
        return [self.source.output_path(node, ancestors) for node, ancestors in result.tree.walk()]

    def _build(self, segment_length: int) -> Reconciliation:
        assert self._loaded is not None
        tree = copy.deepcopy(self._loaded)
        result = Reconciliation(tree=tree)
        index = tree.index()
        chains = {id(node): ancestors for node, ancestors in tree.walk()}
        registry = NameRegistry(node.output_name for node in tree.nodes() if node.output_name)
        present: set[str] = set()

        for topic in self.source.list_topics():
            folded = topic.key.casefold()
            present.add(folded)
            node = index.get(folded)
            if node is not None:
                chain = chains[id(node)]
                recorded = chain[-1].source_key if chain else None
                current = topic.parent_key
                if (recorded or "").casefold() != (current or "").casefold():
                    raise MovedNodeError(topic.key, recorded, current)
                self._refresh(node, chain, registry, segment_length, result)
                continue

            parent: TocNode | None = None
            ancestors: tuple[TocNode, ...] = ()
            if topic.parent_key is not None:
                parent = index.get(topic.parent_key.casefold())
                if parent is None:
                    raise OrphanedNodeError(topic.key, topic.parent_key)
                ancestors = (*chains[id(parent)], parent)

            title = self.source.read_title(topic.key)
            node = TocNode(
                source_key=topic.key,
                output_name="",
                title=title or "",
                asset_id=self.source.asset_id_of(topic.key),
            )
            if parent is None and not tree.roots and self.root_name:
                node.output_name = registry.claim(derive_name(self.root_name, segment_length))
            else:
                node.output_name = self._assign_name(
                    node, ancestors, registry, segment_length, result
                )
            if not node.title:
                node.title = node.output_name
            if parent is None:
                tree.add_root(node)
            else:
                parent.add(node)
            index[folded] = node
            chains[id(node)] = ancestors
            result.added.append(node)

        self._handle_missing(tree, present, result)
        return result

    def _refresh(
        self,
        node: TocNode,
        ancestors: tuple[TocNode, ...],
        registry: NameRegistry,
        segment_length: int,
        result: Reconciliation,
    ) -> None:
        title = self.source.read_title(node.source_key)
        if title:
            node.title = title
        if not node.asset_id:
            node.asset_id = self.source.asset_id_of(node.source_key)
        if not node.output_name:
            node.output_name = self._assign_name(
                node, ancestors, registry, segment_length, result
            )

    def _assign_name(
        self,
        node: TocNode,
        ancestors: tuple[TocNode, ...],
        registry: NameRegistry,
        segment_length: int,
        result: Reconciliation,
    ) -> str:
        candidate = derive_name(node.title, segment_length, source_name=node.source_key)
        ancestor_names = [ancestor.output_name for ancestor in ancestors]
        candidate = adjust_for_context(candidate, ancestor_names)
        # Directories below the top-level topic, nearest first.
        context = list(reversed(ancestor_names[1:]))
        resolved = registry.claim(candidate, context)
        if resolved != candidate:
            result.renamed.append((node.source_key, candidate, resolved))
        return resolved

    def _handle_missing(
        self, tree: CanonicalTree, present: set[str], result: Reconciliation
    ) -> None:
        def sweep(node: TocNode) -> bool:
            """Prune missing descendants, returning whether ``node`` survives."""
            node.children = [child for child in node.children if sweep(child)]
            if node.source_key.casefold() in present:
                return True
            if self.config.prune_missing and not node.children:
                result.pruned.append(node.source_key)
                return False
            result.kept_missing.append(node.source_key)
            return True

        tree.roots = [root for root in tree.roots if sweep(root)]

    def _report(self, result: Reconciliation) -> None:
        for key, candidate, resolved in result.renamed:
            self._emitter.event(
                "name_deduplicated", {"key": key, "candidate": candidate, "resolved": resolved}
            )
        for node in result.added:
            self._emitter.event(
                "node_added", {"key": node.source_key, "output_name": node.output_name}
            )
        for key in result.pruned:
            self._emitter.event("node_pruned", {"key": key})
        if result.kept_missing:
            detail = "kept (descendants still exist)" if self.config.prune_missing else "kept"
            for key in result.kept_missing:
                self._emitter.warning(f"Source for TOC entry '{key}' is missing; entry {detail}.")

    def persist(self, *, clean_path: Path | None = None) -> PersistResult:
        """Validate and write the reconciled tree and its clean variant.

        Nothing is written when an invariant is violated, so the previous
        tree stays valid.
        """
        self._require(SyncState.RECONCILED)
        tree = self.tree
        tree.validate()
        content = render_tree(tree, self.source)
        clean = render_tree(tree, self.source, clean=True) if clean_path is not None else None

        attempts = self.config.write_attempts
        written = write_tree(self.tree_path, content, attempts=attempts)
        if clean_path is not None and clean is not None:
            replace_text(clean_path, clean, attempts=attempts)
        self.state = SyncState.PERSISTED
        if written:
            self._emitter.event(
                "tree_persisted", {"path": str(self.tree_path), "nodes": len(tree)}
            )
        return PersistResult(tree_path=self.tree_path, written=written, clean_path=clean_path)

    def run(self, *, clean_path: Path | None = None) -> PersistResult:
        self.load()
        self.reconcile()
        return self.persist(clean_path=clean_path)

    def output_paths(self) -> dict[str, str]:
        """Map each source key of the reconciled tree to its output path."""
        return {
            node.source_key: self.source.output_path(node, ancestors)
            for node, ancestors in self.tree.walk()
        }


def audit_tree(tree: CanonicalTree, source: TocSource) -> list[str]:
    """Return every consistency problem of ``tree`` without raising."""
    problems: list[str] = []
    try:
        tree.check_root()
    except DocsetError as exc:
        problems.append(str(exc))
    for asset_id, keys in tree.duplicate_asset_ids():
        problems.append(str(DuplicateAssetIdError(asset_id, keys)))
    for name, keys in tree.duplicate_names():
        problems.append(str(DuplicateOutputNameError(name, keys)))
    known = {topic.key.casefold() for topic in source.list_topics()}
    for node in tree.nodes():
        if node.source_key.casefold() not in known:
            problems.append(f"TOC entry '{node.source_key}' has no source topic.")
    return problems


__all__ = [
    "PersistResult",
    "Reconciliation",
    "StateError",
    "SyncState",
    "TocSynchronizer",
    "audit_tree",
]
