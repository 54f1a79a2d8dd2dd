"""
Object store sharing between a superproject and its submodules.

Every submodule git dir gets an ``objects/info/alternates`` file naming the
superproject's object store, so any commit the parent already holds can be
checked out in the submodule without a fetch.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from .models import SetupError


logger = logging.getLogger(__name__)


ALTERNATES_RELPATH = Path("objects") / "info" / "alternates"


def alternates_path(module_git_dir: Path) -> Path:
    return Path(module_git_dir) / ALTERNATES_RELPATH


def write_alternates(module_git_dir: Path, objects_dir: Path) -> Path:
    """Point ``module_git_dir`` at ``objects_dir``, replacing whatever was there."""
    target = alternates_path(module_git_dir)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f"{Path(objects_dir).resolve()}\n", encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to write {target}: {e}")
        raise SetupError(f"Failed to write alternates for {module_git_dir}: {e}") from e
    logger.debug(f"Wrote {target} -> {objects_dir}")
    return target


def wire_alternates(module_git_dirs: Iterable[Path], objects_dir: Path) -> List[Path]:
    """Write alternates for every submodule git dir; returns the files written."""
    written = [write_alternates(d, objects_dir) for d in module_git_dirs]
    logger.info(f"Wired alternates for {len(written)} submodule(s) to {objects_dir}")
    return written
