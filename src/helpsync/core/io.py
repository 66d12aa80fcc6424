"""File helpers with bounded retries and all-or-nothing replacement."""

from __future__ import annotations

from collections.abc import Callable
import logging
import os
from pathlib import Path
import shutil
import time

from .exceptions import WriteFailedError


logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3


def _retry(
    path: Path,
    action: Callable[[], None],
    attempts: int,
    delay: float,
) -> None:
    last_error: OSError | None = None
    for attempt in range(1, attempts + 1):
        try:
            action()
            return
        except OSError as exc:
            last_error = exc
            logger.debug("Write attempt %s/%s for %s failed: %s", attempt, attempts, path, exc)
            if attempt < attempts and delay > 0:
                time.sleep(delay)
    raise WriteFailedError(str(path), attempts, last_error) from last_error


def write_text(
    path: Path,
    content: str,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    append: bool = False,
    delay: float = 0.05,
) -> None:
    """Write ``content`` to ``path``, creating parents and retrying on failure."""

    def action() -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = "a" if append else "w"
        with path.open(mode, encoding="utf-8", newline="\n") as handle:
            handle.write(content)

    _retry(path, action, attempts, delay)


def replace_text(
    path: Path,
    content: str,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = 0.05,
) -> None:
    """Atomically replace ``path`` so readers never see a partial file."""
    tmp_path = path.with_name(f".{path.name}.tmp")

    def action() -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(content, encoding="utf-8", newline="\n")
        os.replace(tmp_path, path)

    try:
        _retry(path, action, attempts, delay)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def next_backup_path(path: Path) -> Path:
    """Return the first unused ``<name>.bkp.<n>`` sibling of ``path``."""
    index = 0
    while True:
        candidate = path.with_name(f"{path.name}.bkp.{index}")
        if not candidate.exists():
            return candidate
        index += 1


def backup(path: Path) -> Path | None:
    """Copy ``path`` to its next backup slot, returning the backup location."""
    if not path.exists():
        return None
    target = next_backup_path(path)
    shutil.copy2(path, target)
    logger.debug("Backed up %s to %s", path, target)
    return target


def replace_with_clean(directory: Path, *, attempts: int = DEFAULT_ATTEMPTS) -> None:
    """Delete ``directory`` and recreate it empty."""

    def action() -> None:
        if directory.exists():
            shutil.rmtree(directory)
        directory.mkdir(parents=True, exist_ok=True)

    _retry(directory, action, attempts, 0.1)


__all__ = [
    "DEFAULT_ATTEMPTS",
    "backup",
    "next_backup_path",
    "replace_text",
    "replace_with_clean",
    "write_text",
]
