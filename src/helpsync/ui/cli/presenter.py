"""Rich-aware presenters for CLI output."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from rich import box
from rich.table import Table
import typer

from helpsync.api import ConversionReport

from .state import CLIState


def _format_path(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except (OSError, ValueError):
        return str(path)


def _summary_rows(report: ConversionReport) -> list[tuple[str, str]]:
    rows = [
        ("Topics converted", str(len(report.converted))),
        ("Failures", str(len(report.failures))),
        (
            "TOC tree",
            f"{_format_path(report.tree_path)}"
            f"{'' if report.tree_written else ' (unchanged)'}",
        ),
    ]
    if report.segment_length is not None:
        rows.append(("Segment budget", str(report.segment_length)))
    if report.output is not None:
        rows.append(("Output", _format_path(report.output)))
    return rows


def present_report(state: CLIState, report: ConversionReport, *, title: str) -> None:
    """Display what a conversion produced and which topics failed."""
    rows = _summary_rows(report)
    console = state.console
    if console.is_terminal:
        table = Table(title=title, box=box.SQUARE, header_style="bold cyan")
        table.add_column("Item", style="cyan")
        table.add_column("Value")
        for item, value in rows:
            table.add_row(item, value)
        console.print(table)
    else:
        typer.echo(title)
        for item, value in rows:
            typer.echo(f"  * {item}: {value}")
    for failure in report.failures:
        typer.echo(f"failed: {failure}", err=True)


def present_problems(state: CLIState, problems: Sequence[str]) -> None:
    if not problems:
        typer.echo("No problems found.")
        return
    console = state.console
    if console.is_terminal:
        table = Table(title="Problems", box=box.SQUARE, header_style="bold red")
        table.add_column("#", justify="right", style="red")
        table.add_column("Problem")
        for number, problem in enumerate(problems, start=1):
            table.add_row(str(number), problem)
        console.print(table)
        return
    for problem in problems:
        typer.echo(f"  * {problem}")


__all__ = ["present_problems", "present_report"]
