"""Invoke pandoc to convert topic bodies between Markdown and HTML."""

from __future__ import annotations

from collections.abc import Sequence
import shutil
import subprocess

from helpsync.core.exceptions import ToolExecutionError


HTML_FORMAT = "html"
MARKDOWN_OUTPUT_FORMAT = "gfm"


class PandocRunner:
    """Thin wrapper around the pandoc executable."""

    def __init__(self, executable: str | None = None) -> None:
        self._explicit_executable = executable
        self._cached_executable: str | None = None

    def is_available(self) -> bool:
        try:
            return self._resolve_executable(optional=True) is not None
        except ToolExecutionError:
            return False

    def run(self, args: Sequence[str], *, input_text: str) -> str:
        """Run pandoc on ``input_text`` and return its standard output.

        A non-zero exit status or anything written to standard error is
        reported as :class:`ToolExecutionError`.
        """
        executable = self._resolve_executable(optional=False)
        assert executable is not None
        command = [executable, *args]
        try:
            result = subprocess.run(
                command,
                input=input_text,
                check=False,
                capture_output=True,
                text=True,
                encoding="utf-8",
            )
        except FileNotFoundError as exc:
            self._cached_executable = None
            raise ToolExecutionError("pandoc", "executable could not be located.") from exc
        except OSError as exc:
            raise ToolExecutionError("pandoc", f"failed to start: {exc}") from exc

        stderr = (result.stderr or "").strip()
        if result.returncode != 0 or stderr:
            message = f"conversion {' '.join(args)} failed with exit code {result.returncode}"
            if stderr:
                message = f"{message}: {stderr}"
            raise ToolExecutionError(
                "pandoc", message, stderr=stderr, returncode=result.returncode
            )
        return result.stdout or ""

    def markdown_to_html(self, text: str, *, flavor: str) -> str:
        return self.run(["-f", flavor, "-t", HTML_FORMAT], input_text=text)

    def html_to_markdown(self, html: str) -> str:
        return self.run(["-f", HTML_FORMAT, "-t", MARKDOWN_OUTPUT_FORMAT], input_text=html)

    def _resolve_executable(self, *, optional: bool) -> str | None:
        if self._cached_executable:
            return self._cached_executable

        candidate = self._explicit_executable or "pandoc"
        try:
            executable = shutil.which(candidate)
        except (OSError, ValueError):
            executable = None

        if executable:
            self._cached_executable = executable
            return executable

        if optional:
            return None

        raise ToolExecutionError("pandoc", f"'{candidate}' is required but was not found on PATH.")


__all__ = ["HTML_FORMAT", "MARKDOWN_OUTPUT_FORMAT", "PandocRunner"]
