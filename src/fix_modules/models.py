"""
Data models for the submodule fixer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    # For type checkers only; avoids runtime circular import
    from .git_manager import GitManager


class SubmoduleStatus(Enum):
    """State marker printed in front of each `git submodule status` line."""

    CURRENT = " "
    UNINITIALIZED = "-"
    OUT_OF_SYNC = "+"
    CONFLICTED = "U"

    @classmethod
    def from_marker(cls, marker: str) -> SubmoduleStatus:
        for status in cls:
            if status.value == marker:
                return status
        return cls.CURRENT


@dataclass
class SubmoduleRecord:
    """One submodule as reported by the superproject."""

    path: str
    commit: str
    status: SubmoduleStatus = SubmoduleStatus.CURRENT
    describe: Optional[str] = None

    @property
    def is_initialized(self) -> bool:
        return self.status is not SubmoduleStatus.UNINITIALIZED


@dataclass
class UnmergedEntry:
    """A single line of `git ls-files --unmerged`."""

    mode: str
    commit: str
    stage: int
    path: str


@dataclass
class ConflictRecord:
    """Candidate commits for a submodule path left unmerged by a superproject merge."""

    path: str
    base: Optional[str] = None
    ours: Optional[str] = None
    theirs: Optional[str] = None

    @classmethod
    def from_entries(cls, path: str, entries: List[UnmergedEntry]) -> ConflictRecord:
        record = cls(path=path)
        for entry in entries:
            if entry.stage == 1:
                record.base = entry.commit
            elif entry.stage == 2:
                record.ours = entry.commit
            elif entry.stage == 3:
                record.theirs = entry.commit
        return record

    @property
    def is_conflicted(self) -> bool:
        return self.ours is not None or self.theirs is not None


@dataclass
class SubmoduleResult:
    """Outcome of the repair pass for one submodule."""

    path: str
    target: str
    head: Optional[str] = None
    checked_out_ours: Optional[bool] = None
    merged_theirs: Optional[bool] = None
    marked_resolved: bool = False
    renamed_branch: Optional[str] = None
    diagnostic: Optional[str] = None

    @property
    def in_sync(self) -> bool:
        return self.head is not None and self.head == self.target


@dataclass
class SyncReport:
    """Summary of a complete run."""

    initialized: List[str] = field(default_factory=list)
    overridden_urls: List[str] = field(default_factory=list)
    alternates: List[Path] = field(default_factory=list)
    results: List[SubmoduleResult] = field(default_factory=list)

    @property
    def diagnostics(self) -> List[SubmoduleResult]:
        return [r for r in self.results if r.diagnostic]


@dataclass
class SyncOptions:
    """Tunables for a run. Defaults reproduce the stock behaviour."""

    placeholder_url: str = "."
    guarded_branch: str = "main"
    broken_suffix: str = ".probably-broken"
    recursive: bool = True

    @property
    def broken_branch(self) -> str:
        return f"{self.guarded_branch}{self.broken_suffix}"


@dataclass
class SyncContext:
    """Everything a run needs: the superproject root and a handle to operate on it."""

    root_path: Path
    git_manager: "GitManager"
    options: SyncOptions = field(default_factory=SyncOptions)

    def __post_init__(self) -> None:
        """Ensure path is absolute."""
        self.root_path = Path(self.root_path).resolve()


class FixModulesError(Exception):
    """Base exception for submodule fixing."""

    pass


class GitRepositoryError(FixModulesError):
    """Exception raised for Git repository related errors."""

    pass


class SetupError(FixModulesError):
    """Exception raised when a setup step fails and the run must abort."""

    pass


class ConflictResolutionError(FixModulesError):
    """Exception raised when the conflict resolver is misused."""

    pass
