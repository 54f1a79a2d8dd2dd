"""
Submodule discovery: turns git's status and index listings into records.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from .git_manager import GitManager
from .models import ConflictRecord, SubmoduleRecord, SubmoduleStatus, UnmergedEntry


logger = logging.getLogger(__name__)


# " 1234abcd path/to/sub (v1.0-3-g1234abc)"; the marker column is one of ' ', '-', '+', 'U'
STATUS_LINE_RE = re.compile(
    r"^(?P<marker>[ +\-U]?)(?P<commit>[0-9a-fA-F]{4,})\s+(?P<path>.+?)(?:\s+\((?P<describe>[^()]*)\))?$"
)


def strip_status_marker(commit: str) -> str:
    """Drop the leading state marker git prints in front of a submodule commit id."""
    if commit[:1] in ("-", "+", "U"):
        return commit[1:]
    return commit


def parse_submodule_status(output: str) -> List[SubmoduleRecord]:
    """Parse `git submodule status` output into records."""
    records: List[SubmoduleRecord] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        m = STATUS_LINE_RE.match(line.rstrip())
        if not m:
            logger.warning(f"Ignoring unrecognized submodule status line: {line!r}")
            continue
        marker = m.group("marker") or " "
        records.append(
            SubmoduleRecord(
                path=m.group("path"),
                commit=strip_status_marker(m.group("commit")),
                status=SubmoduleStatus.from_marker(marker),
                describe=m.group("describe"),
            )
        )
    return records


def parse_unmerged(output: str) -> List[UnmergedEntry]:
    """Parse `git ls-files --unmerged` output ("<mode> <sha> <stage>\\t<path>")."""
    entries: List[UnmergedEntry] = []
    for line in output.splitlines():
        meta, sep, path = line.partition("\t")
        parts = meta.split()
        if not sep or len(parts) < 3:
            continue
        try:
            stage = int(parts[2])
        except ValueError:
            continue
        entries.append(UnmergedEntry(mode=parts[0], commit=parts[1], stage=stage, path=path))
    return entries


def _is_git_dir(path: Path) -> bool:
    return (path / "config").is_file() and (path / "HEAD").is_file() and (path / "objects").is_dir()


def _collect_git_dirs(directory: Path) -> List[Path]:
    # Submodule names may contain "/", so plain directories are walked through too
    found: List[Path] = []
    for child in sorted(directory.iterdir()):
        if not child.is_dir() or child.is_symlink():
            continue
        if _is_git_dir(child):
            found.append(child)
            nested = child / "modules"
            if nested.is_dir():
                found.extend(_collect_git_dirs(nested))
        else:
            found.extend(_collect_git_dirs(child))
    return found


class SubmoduleMapper:
    """Lists a superproject's submodules and hands out managers for their checkouts."""

    def __init__(self, git_manager: GitManager) -> None:
        self.git_manager = git_manager
        self.root_path = git_manager.working_dir
        self._managers: Dict[str, GitManager] = {}

    def list_submodules(self, cached: bool = False) -> List[SubmoduleRecord]:
        """Return every submodule known to the superproject.

        With ``cached`` the commit is the one recorded in the superproject index
        rather than the one checked out.
        """
        records = parse_submodule_status(self.git_manager.submodule_status(cached=cached))
        logger.info(f"Found {len(records)} submodule(s){' (cached)' if cached else ''}")
        return records

    def get_conflict(self, path: str) -> ConflictRecord:
        """Return the unmerged stages recorded for ``path`` in the superproject index."""
        entries = [e for e in parse_unmerged(self.git_manager.list_unmerged(path)) if e.path == path]
        return ConflictRecord.from_entries(path, entries)

    def get_submodule_manager(self, path: str) -> Optional[GitManager]:
        """Return a manager bound to the submodule checkout at ``path``.

        Returns None when the directory is not (yet) a working tree of its own.
        """
        if path in self._managers:
            return self._managers[path]

        sub_path = self.root_path / path
        if not (sub_path / ".git").exists():
            logger.warning(f"Submodule {path} at {sub_path} is not checked out")
            return None
        gm = GitManager(sub_path, search_parents=False)
        self._managers[path] = gm
        return gm

    def iter_module_git_dirs(self) -> List[Path]:
        """Return the private git dirs of initialized submodules, nested ones included.

        Only a git dir's own ``modules/`` is descended into, so object stores and
        refs are never walked.
        """
        modules_dir = self.git_manager.modules_dir
        if not modules_dir.is_dir():
            return []
        return sorted(_collect_git_dirs(modules_dir))
