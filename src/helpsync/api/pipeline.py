"""End-to-end conversions between compiled help archives and Markdown trees.

Architecture
: `HelpToMarkdown` decompiles an archive (or reads an already decompiled
  directory), synchronizes the canonical tree against the archive TOC, writes
  one Markdown file per topic into a nested tree and records each topic's
  metadata as JSON.
: `MarkdownToHelp` walks a Markdown tree, synchronizes the same canonical tree
  format, resolves metadata for every topic, renders flat HTML pages carrying
  the metadata island and compiles them with the project descriptors.
: `ConversionReport` collects what was written and every per-topic failure so
  callers decide how to surface partial success.

Implementation Rationale
: Both directions share one synchronizer and only differ by their source
  adapter, so identity and naming rules cannot drift apart.
: Canonical state (the tree, then metadata records) is written last. A fatal
  consistency error raised while reconciling leaves every previous file intact.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path, PurePosixPath
import shutil

from helpsync.adapters.html import (
    finish_markdown,
    prepare_help_page,
    prepare_markdown,
    render_help_page,
)
from helpsync.adapters.hxcomp import HxCompRunner, write_project_files
from helpsync.adapters.pandoc import PandocRunner
from helpsync.core.config import SyncConfig
from helpsync.core.diagnostics import DiagnosticEmitter, ensure_emitter
from helpsync.core.exceptions import (
    ConfigError,
    ToolExecutionError,
    TreeFormatError,
    WriteFailedError,
)
from helpsync.core.io import replace_with_clean, write_text
from helpsync.core.metadata import Keyword, MetadataStore, TopicMetadata
from helpsync.core.prompts import Prompter, QuietPrompter
from helpsync.core.sources import (
    MARKDOWN_SUFFIX,
    RESOURCES_DIR,
    HelpTocSource,
    MarkdownTreeSource,
)
from helpsync.core.sync import TocSynchronizer, audit_tree
from helpsync.core.toc import parse_tree


logger = logging.getLogger(__name__)

TREE_SUFFIX = ".hxtx"
HELP_TOC_SUFFIX = ".hxt"
ARCHIVE_SUFFIX = ".hxs"
# Files produced by the decompiler that are not topic resources.
HELP_PROJECT_SUFFIXES = frozenset({".htm", ".html", ".hxt", ".hxc", ".hxf", ".hxk", ".hxtx"})


@dataclass(slots=True)
class ConversionReport:
    """Summary of one conversion run."""

    tree_path: Path
    tree_written: bool = False
    segment_length: int | None = None
    converted: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    output: Path | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


def path_offset(directory: Path, config: SyncConfig) -> int:
    """Return the destination length reserved in front of generated paths."""
    return max(len(str(directory.resolve())) + 1, config.path_offset)


def _find_help_toc(html_root: Path, stem: str) -> Path:
    candidates = sorted(html_root.glob(f"*{HELP_TOC_SUFFIX}"))
    for candidate in candidates:
        if candidate.stem.casefold() == stem.casefold():
            return candidate
    if candidates:
        return candidates[0]
    raise TreeFormatError(f"No {HELP_TOC_SUFFIX} TOC found in '{html_root}'.")


def _copy_files(files: Iterable[tuple[Path, Path]]) -> int:
    count = 0
    for source, target in files:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        count += 1
    return count


def locate_tree(md_root: Path, name: str) -> Path:
    """Return the canonical tree of a Markdown root.

    ``<name>.hxtx`` wins; otherwise a single tree found at the root is used so
    a tree written by the other direction is picked up.
    """
    preferred = md_root / f"{name}{TREE_SUFFIX}"
    if preferred.exists():
        return preferred
    candidates = sorted(md_root.glob(f"*{TREE_SUFFIX}"))
    if len(candidates) == 1:
        return candidates[0]
    return preferred


def _asset_files(md_root: Path) -> list[Path]:
    """Return non-topic files of a Markdown tree that pages may reference."""
    assets: list[Path] = []
    for path in sorted(md_root.rglob("*")):
        relative = path.relative_to(md_root)
        if not path.is_file() or any(part.startswith(".") for part in relative.parts):
            continue
        if path.suffix.lower() in {MARKDOWN_SUFFIX, TREE_SUFFIX} or ".bkp." in path.name:
            continue
        assets.append(path)
    return assets


class HelpToMarkdown:
    """Convert a compiled help archive into a Markdown tree."""

    def __init__(
        self,
        source: Path,
        md_root: Path | None = None,
        *,
        meta_root: Path | None = None,
        tree_path: Path | None = None,
        root_name: str | None = None,
        decompile: bool = True,
        config: SyncConfig | None = None,
        prompter: Prompter | None = None,
        emitter: DiagnosticEmitter | None = None,
        pandoc: PandocRunner | None = None,
        hxcomp: HxCompRunner | None = None,
    ) -> None:
        self.source = source
        self.config = config or SyncConfig()
        base = source.parent
        self.md_root = md_root or base / "md"
        self.meta_root = meta_root or base / "meta"
        self.name = source.stem if source.suffix.lower() == ARCHIVE_SUFFIX else source.name
        self.tree_path = tree_path or self.md_root / f"{self.name}{TREE_SUFFIX}"
        self.root_name = root_name
        self.decompile = decompile
        self.prompter = prompter or QuietPrompter()
        self._emitter = ensure_emitter(emitter)
        self.pandoc = pandoc or PandocRunner(self.config.pandoc_path)
        self.hxcomp = hxcomp or HxCompRunner(self.config.hxcomp_path)

    @property
    def html_root(self) -> Path:
        if self.source.is_dir():
            return self.source
        return self.source.with_name(f"{self.source.name}_files")

    def run(self) -> ConversionReport:
        html_root = self.html_root
        if self.source.is_file() and self.decompile:
            logger.info("Decompiling %s", self.source)
            self.hxcomp.decompile(self.source, html_root)

        toc_path = _find_help_toc(html_root, self.name)
        source = HelpTocSource(
            html_root, toc_path, prompter=self.prompter, emitter=self._emitter
        )
        config = self.config.with_overrides(allow_rootless=True)
        sync = TocSynchronizer(
            source,
            self.tree_path,
            config=config,
            offset=path_offset(self.md_root, config),
            root_name=self.root_name or config.root_collection_name,
            emitter=self._emitter,
        )
        sync.load()
        result = sync.reconcile()
        store = MetadataStore(self.meta_root, config=config, emitter=self._emitter)

        report = ConversionReport(tree_path=self.tree_path, segment_length=sync.segment_length)
        md_paths = sync.output_paths()
        page_map = {url.casefold(): md_path for url, md_path in md_paths.items()}
        present = {topic.key for topic in source.list_topics()}

        for node in result.tree.nodes():
            if node.source_key not in present:
                continue
            md_path = md_paths[node.source_key]
            asset_id = node.asset_id or source.asset_id_of(node.source_key)
            metadata = source.metadata_of(node.source_key) or TopicMetadata(
                rl_title=node.title,
                asset_id=asset_id,
                keywords=[Keyword(index="A", term=asset_id)],
            )
            if metadata.asset_id != asset_id:
                metadata = metadata.model_copy(update={"asset_id": asset_id})
            store.record(md_path, metadata)
            try:
                html = source.path_of(node.source_key).read_text(
                    encoding="utf-8", errors="replace"
                )
                prepared = prepare_help_page(html, page_key=node.source_key, md_paths=page_map)
                markdown = self.pandoc.html_to_markdown(prepared.html)
                write_text(
                    self.md_root / PurePosixPath(md_path),
                    finish_markdown(markdown, prepared.stored_links),
                    attempts=config.write_attempts,
                )
            except (ToolExecutionError, WriteFailedError, OSError) as exc:
                self._emitter.error(f"Could not create '{md_path}' from '{node.source_key}'.", exc)
                report.failures.append(node.source_key)
                continue
            report.converted.append(md_path)

        copied = _copy_files(
            (path, self.md_root / RESOURCES_DIR / path.name)
            for path in sorted(html_root.rglob("*"))
            if path.is_file() and path.suffix.lower() not in HELP_PROJECT_SUFFIXES
        )
        logger.debug("Copied %s resource file(s)", copied)

        report.tree_written = sync.persist().written
        for failure in store.flush():
            report.failures.append(failure.path)
        return report


class MarkdownToHelp:
    """Compile a Markdown tree into a help archive."""

    def __init__(
        self,
        md_root: Path,
        output: Path | None = None,
        *,
        meta_root: Path | None = None,
        global_path: Path | None = None,
        tree_path: Path | None = None,
        log_path: Path | None = None,
        compile_archive: bool = True,
        config: SyncConfig | None = None,
        prompter: Prompter | None = None,
        emitter: DiagnosticEmitter | None = None,
        pandoc: PandocRunner | None = None,
        hxcomp: HxCompRunner | None = None,
    ) -> None:
        self.md_root = md_root
        self.config = config or SyncConfig()
        if output is None:
            trees = sorted(md_root.glob(f"*{TREE_SUFFIX}"))
            stem = trees[0].stem if len(trees) == 1 else md_root.name
            output = md_root.parent / f"{stem}{ARCHIVE_SUFFIX}"
        self.output = output
        self.name = output.stem
        self.meta_root = meta_root or self.output.parent / "meta"
        self.global_path = global_path
        self.tree_path = tree_path or locate_tree(md_root, self.name)
        self.log_path = log_path or self.output.with_suffix(".log")
        self.compile_archive = compile_archive
        self.prompter = prompter or QuietPrompter()
        self._emitter = ensure_emitter(emitter)
        self.pandoc = pandoc or PandocRunner(self.config.pandoc_path)
        self.hxcomp = hxcomp or HxCompRunner(self.config.hxcomp_path)

    @property
    def html_root(self) -> Path:
        return self.output.with_name(f"{self.output.name}_files")

    def run(self) -> ConversionReport:
        config = self.config
        html_root = self.html_root
        if self.md_root.resolve().is_relative_to(html_root.resolve()):
            raise ConfigError(
                f"Output directory '{html_root}' contains the Markdown tree '{self.md_root}'; "
                "choose another output archive."
            )
        store = MetadataStore(
            self.meta_root,
            source_root=self.md_root,
            global_path=self.global_path,
            config=config,
            prompter=self.prompter,
            emitter=self._emitter,
        )
        source = MarkdownTreeSource(
            self.md_root, store, allow_rootless=config.allow_rootless, emitter=self._emitter
        )
        sync = TocSynchronizer(
            source,
            self.tree_path,
            config=config,
            offset=path_offset(html_root, config),
            emitter=self._emitter,
        )
        sync.load()
        result = sync.reconcile()

        report = ConversionReport(
            tree_path=self.tree_path, segment_length=sync.segment_length, output=self.output
        )
        urls = sync.output_paths()
        page_urls = {key.casefold(): url for key, url in urls.items()}
        present = {topic.key for topic in source.list_topics()}

        # Pages of topics removed since the last build must not be compiled.
        replace_with_clean(html_root, attempts=config.write_attempts)
        for node in result.tree.nodes():
            if node.source_key not in present:
                continue
            url = urls[node.source_key]
            metadata = store.resolve(node.source_key)
            try:
                text = (self.md_root / PurePosixPath(node.source_key)).read_text(encoding="utf-8")
                body = self.pandoc.markdown_to_html(
                    prepare_markdown(text), flavor=config.markdown_flavor
                )
                page = render_help_page(
                    body,
                    title=metadata.rl_title,
                    metadata_island=metadata.to_help_xml(store.globals.values),
                    page_key=node.source_key,
                    page_urls=page_urls,
                )
                write_text(html_root / PurePosixPath(url), page, attempts=config.write_attempts)
            except (ToolExecutionError, WriteFailedError, OSError) as exc:
                self._emitter.error(f"Could not create '{url}' from '{node.source_key}'.", exc)
                report.failures.append(node.source_key)
                continue
            report.converted.append(url)

        copied = _copy_files(
            (path, html_root / path.relative_to(self.md_root))
            for path in _asset_files(self.md_root)
        )
        logger.debug("Copied %s asset file(s)", copied)

        roots = result.tree.roots
        title = roots[0].title if len(roots) == 1 else self.name
        project = write_project_files(
            html_root, self.name, title=title, attempts=config.write_attempts
        )
        report.tree_written = sync.persist(clean_path=project.toc).written
        for failure in store.flush():
            report.failures.append(failure.path)

        if self.compile_archive:
            # The previous archive is only replaced once the compiler succeeds.
            staged = self.output.with_name(f"{self.output.stem}.partial{self.output.suffix}")
            if staged.exists():
                staged.unlink()
            try:
                self.hxcomp.compile(project.project, html_root, staged, self.log_path)
                os.replace(staged, self.output)
            finally:
                if staged.exists():
                    staged.unlink()
        return report


def check_markdown_tree(
    md_root: Path,
    tree_path: Path | None = None,
    *,
    config: SyncConfig | None = None,
    emitter: DiagnosticEmitter | None = None,
) -> list[str]:
    """Report consistency problems of a Markdown tree and its canonical tree.

    Nothing is written and no metadata is resolved.
    """
    config = config or SyncConfig()
    tree_path = tree_path or locate_tree(md_root, md_root.name)
    store = MetadataStore(md_root, config=config.with_overrides(quiet=True), emitter=emitter)
    source = MarkdownTreeSource(md_root, store, allow_rootless=config.allow_rootless)
    problems = source.validate()
    if not tree_path.exists():
        problems.append(f"No canonical tree found at '{tree_path}'.")
        return problems
    tree = parse_tree(tree_path, source, allow_rootless=config.allow_rootless)
    problems.extend(audit_tree(tree, source))
    return problems


__all__ = [
    "ConversionReport",
    "HelpToMarkdown",
    "MarkdownToHelp",
    "check_markdown_tree",
    "locate_tree",
    "path_offset",
]
