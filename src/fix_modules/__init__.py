"""
git-fix-modules - bring git submodules back in sync without fetching.

This package initializes submodules from objects the superproject already
holds, restores their upstream URLs, and repairs submodule pointer conflicts
left behind by superproject merges.
"""

__version__ = "0.1.0"

from .sync_orchestrator import SyncOrchestrator
from .models import (
    ConflictRecord,
    SubmoduleRecord,
    SubmoduleResult,
    SubmoduleStatus,
    SyncContext,
    SyncOptions,
    SyncReport,
)
from .git_manager import GitManager
from .submodule_mapper import SubmoduleMapper
from .conflict_resolver import ConflictResolver

__all__ = [
    "SyncOrchestrator",
    "ConflictRecord",
    "SubmoduleRecord",
    "SubmoduleResult",
    "SubmoduleStatus",
    "SyncContext",
    "SyncOptions",
    "SyncReport",
    "GitManager",
    "SubmoduleMapper",
    "ConflictResolver",
]
