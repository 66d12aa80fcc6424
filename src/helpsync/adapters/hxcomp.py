"""Help archive compiler invocation and project descriptor files."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging
from pathlib import Path
import re
import shutil
import subprocess
import xml.etree.ElementTree as ET

from helpsync.core.exceptions import ToolExecutionError
from helpsync.core.io import DEFAULT_ATTEMPTS, write_text


logger = logging.getLogger(__name__)

LANGUAGE_ID = "1033"
INDEX_NAMES = (("K", "Yes"), ("A", "No"), ("F", "No"))
_FATAL_RE = re.compile(r"Fatal Error", re.IGNORECASE)


@dataclass(slots=True)
class CompileResult:
    """Outcome of an archive compiler invocation."""

    returncode: int
    stdout: str
    stderr: str
    log: str = ""

    @property
    def fatal(self) -> bool:
        return self.returncode != 0 or bool(_FATAL_RE.search(self.stderr))


@dataclass(slots=True)
class ProjectFiles:
    """Descriptor files written next to the generated pages."""

    project: Path
    file_list: Path
    toc: Path
    indexes: tuple[Path, ...]


def _document(doctype: str, root: ET.Element) -> str:
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="utf-8"?>\n{doctype}\n{body}\n'


def render_project(name: str, title: str) -> str:
    root = ET.Element(
        "HelpCollection",
        {"DTDVersion": "1.0", "LangId": LANGUAGE_ID, "Title": title},
    )
    options = ET.SubElement(
        root, "CompilerOptions", {"CreateFullTextIndex": "Yes", "CompileResult": "Hxs"}
    )
    ET.SubElement(options, "IncludeFile", {"File": f"{name}.HxF"})
    ET.SubElement(root, "TOCDef", {"File": f"{name}.HxT"})
    for index, _visible in INDEX_NAMES:
        ET.SubElement(root, "KeywordIndexDef", {"File": f"{name}{index}Index.HxK"})
    ET.SubElement(
        root,
        "ItemMoniker",
        {"Name": "!DefaultToc", "ProgId": "HxDs.HxHierarchy", "InitData": ""},
    )
    return _document(
        '<!DOCTYPE HelpCollection SYSTEM "ms-help://hx/resources/HelpCollection.DTD">', root
    )


def render_file_list() -> str:
    root = ET.Element("HelpFileList", {"DTDVersion": "1.0"})
    ET.SubElement(root, "File", {"Url": "*.*"})
    return _document('<!DOCTYPE HelpFileList SYSTEM "ms-help://hx/resources/HelpFileList.DTD">', root)


def render_index(index: str, visible: str) -> str:
    root = ET.Element(
        "HelpIndex",
        {
            "DTDVersion": "1.0",
            "Name": index,
            "Title": f"{index}-Keyword Index",
            "Visible": visible,
            "LangId": LANGUAGE_ID,
        },
    )
    return _document('<!DOCTYPE HelpIndex SYSTEM "ms-help://hx/resources/HelpIndex.DTD">', root)


def write_project_files(
    directory: Path,
    name: str,
    *,
    title: str | None = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> ProjectFiles:
    """Write the collection, file list and index descriptors for ``name``.

    The TOC itself (``<name>.HxT``) is the clean canonical tree and is written
    by the synchronizer.
    """
    project = directory / f"{name}.HxC"
    file_list = directory / f"{name}.HxF"
    write_text(project, render_project(name, title or name), attempts=attempts)
    write_text(file_list, render_file_list(), attempts=attempts)
    indexes: list[Path] = []
    for index, visible in INDEX_NAMES:
        path = directory / f"{name}{index}Index.HxK"
        write_text(path, render_index(index, visible), attempts=attempts)
        indexes.append(path)
    return ProjectFiles(
        project=project,
        file_list=file_list,
        toc=directory / f"{name}.HxT",
        indexes=tuple(indexes),
    )


class HxCompRunner:
    """Wrapper around the help compiler executable."""

    def __init__(self, executable: str | None = None) -> None:
        self._explicit_executable = executable
        self._cached_executable: str | None = None

    def is_available(self) -> bool:
        try:
            return self._resolve_executable(optional=True) is not None
        except ToolExecutionError:
            return False

    def _invoke(self, args: Sequence[str]) -> CompileResult:
        executable = self._resolve_executable(optional=False)
        assert executable is not None
        command = [executable, *args]
        logger.debug("Running %s", " ".join(command))
        try:
            result = subprocess.run(command, check=False, capture_output=True, text=True)
        except FileNotFoundError as exc:
            self._cached_executable = None
            raise ToolExecutionError("hxcomp", "executable could not be located.") from exc
        except OSError as exc:
            raise ToolExecutionError("hxcomp", f"failed to start: {exc}") from exc
        return CompileResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    def decompile(self, archive: Path, destination: Path) -> CompileResult:
        """Extract ``archive`` into ``destination``."""
        destination.mkdir(parents=True, exist_ok=True)
        result = self._invoke(["-u", str(archive), "-d", str(destination)])
        if result.fatal:
            raise ToolExecutionError(
                "hxcomp",
                f"unable to decompile '{archive}': {result.stderr.strip() or result.stdout.strip()}",
                stderr=result.stderr,
                returncode=result.returncode,
            )
        return result

    def compile(self, project: Path, root: Path, output: Path, log_path: Path) -> CompileResult:
        """Compile the pages under ``root`` into ``output``.

        The compiler overwrites its log, so its content is returned and then
        appended to the run log at ``log_path``.
        """
        compiler_log = log_path.with_name(f"{log_path.stem}.hxcomp{log_path.suffix or '.log'}")
        result = self._invoke(
            ["-p", str(project), "-r", str(root), "-l", str(compiler_log), "-o", str(output)]
        )
        if compiler_log.exists():
            result.log = compiler_log.read_text(encoding="utf-8", errors="replace")
            write_text(log_path, result.log, append=True)
            compiler_log.unlink()
        if result.fatal:
            raise ToolExecutionError(
                "hxcomp",
                f"compilation of '{output}' failed: {result.stderr.strip() or 'see the log'}",
                stderr=result.stderr,
                returncode=result.returncode,
            )
        return result

    def _resolve_executable(self, *, optional: bool) -> str | None:
        if self._cached_executable:
            return self._cached_executable

        candidate = self._explicit_executable or "hxcomp"
        try:
            executable = shutil.which(candidate)
        except (OSError, ValueError):
            executable = None

        if executable:
            self._cached_executable = executable
            return executable

        if optional:
            return None

        raise ToolExecutionError("hxcomp", f"'{candidate}' is required but was not found on PATH.")


__all__ = [
    "CompileResult",
    "HxCompRunner",
    "ProjectFiles",
    "render_file_list",
    "render_index",
    "render_project",
    "write_project_files",
]
