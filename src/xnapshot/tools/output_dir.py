"""Output directory lifecycle: create before validation, clear before a run."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def ensure_output_directory(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def reset_output_directory(path: Path) -> int:
    """Delete every entry directly inside ``path``. Returns the number removed."""
    ensure_output_directory(path)
    removed = 0
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    if removed:
        logger.info("Cleared %d entries from %s", removed, path)
    return removed
