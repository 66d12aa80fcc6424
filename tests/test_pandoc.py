from __future__ import annotations

from typing import Any

import pytest

from helpsync.adapters import pandoc as pandoc_mod
from helpsync.core.exceptions import ToolExecutionError


class _StubResult:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_markdown_to_html_builds_command(monkeypatch: pytest.MonkeyPatch) -> None:
    recorded: dict[str, Any] = {}

    monkeypatch.setattr(pandoc_mod.shutil, "which", lambda _: "/usr/bin/pandoc")

    def fake_run(cmd: list[str], **kwargs: Any) -> _StubResult:
        recorded["command"] = cmd
        recorded["input"] = kwargs["input"]
        assert kwargs["capture_output"] is True
        assert kwargs["text"] is True
        return _StubResult(stdout="<h1>Widget</h1>\n")

    monkeypatch.setattr(pandoc_mod.subprocess, "run", fake_run)

    html = pandoc_mod.PandocRunner().markdown_to_html("# Widget\n", flavor="markdown_strict")

    assert html == "<h1>Widget</h1>\n"
    assert recorded["command"] == ["/usr/bin/pandoc", "-f", "markdown_strict", "-t", "html"]
    assert recorded["input"] == "# Widget\n"


def test_html_to_markdown_targets_gfm(monkeypatch: pytest.MonkeyPatch) -> None:
    recorded: dict[str, list[str]] = {}

    monkeypatch.setattr(pandoc_mod.shutil, "which", lambda _: "/opt/pandoc")

    def fake_run(cmd: list[str], **kwargs: Any) -> _StubResult:
        recorded["command"] = cmd
        return _StubResult(stdout="# Widget\n")

    monkeypatch.setattr(pandoc_mod.subprocess, "run", fake_run)

    runner = pandoc_mod.PandocRunner("/opt/pandoc")
    assert runner.html_to_markdown("<h1>Widget</h1>") == "# Widget\n"
    assert recorded["command"][1:] == ["-f", "html", "-t", "gfm"]


def test_stderr_output_is_an_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pandoc_mod.shutil, "which", lambda _: "/usr/bin/pandoc")
    monkeypatch.setattr(
        pandoc_mod.subprocess,
        "run",
        lambda cmd, **kwargs: _StubResult(stdout="partial", stderr="[WARNING] odd input"),
    )

    with pytest.raises(ToolExecutionError) as excinfo:
        pandoc_mod.PandocRunner().html_to_markdown("<p>")

    assert "odd input" in str(excinfo.value)
    assert excinfo.value.returncode == 0


def test_missing_executable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pandoc_mod.shutil, "which", lambda _: None)

    runner = pandoc_mod.PandocRunner()
    assert runner.is_available() is False
    with pytest.raises(ToolExecutionError, match="not found on PATH"):
        runner.html_to_markdown("<p>")
