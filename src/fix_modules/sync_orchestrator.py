"""
Sequencing of a full submodule sync run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .alternates import wire_alternates
from .conflict_resolver import ConflictResolver
from .git_manager import GitManager
from .models import (
    GitRepositoryError,
    SetupError,
    SubmoduleResult,
    SyncContext,
    SyncOptions,
    SyncReport,
)
from .submodule_mapper import SubmoduleMapper


logger = logging.getLogger(__name__)


SUBMODULE_URL_PATTERN = r"^submodule\..*\.url$"


class SyncOrchestrator:
    """Brings every submodule of a superproject back in sync without fetching.

    Setup steps are fail-fast and raise SetupError. The repair pass that
    follows never aborts; its outcome is reported per submodule.
    """

    def __init__(self, root_path: Optional[Path] = None, options: Optional[SyncOptions] = None) -> None:
        """Initialize the orchestrator, locating the enclosing working tree."""
        git_manager = GitManager(root_path or Path.cwd())
        try:
            working_dir = git_manager.working_dir
        except GitRepositoryError as e:
            raise SetupError(str(e)) from e

        self.context = SyncContext(
            root_path=working_dir,
            git_manager=git_manager,
            options=options or SyncOptions(),
        )
        self.submodule_mapper = SubmoduleMapper(git_manager)
        self.conflict_resolver = ConflictResolver(self.context, self.submodule_mapper)
        logger.info(f"Initialized sync orchestrator for {self.root_path}")

    @property
    def root_path(self) -> Path:
        return self.context.root_path

    @property
    def git_manager(self) -> GitManager:
        return self.context.git_manager

    def run(self) -> SyncReport:
        """Run every step in order and return what happened."""
        report = SyncReport()
        report.initialized = self.initialize_submodules()
        report.overridden_urls = self.override_urls()
        report.alternates = self.wire_alternates()
        self.checkout()
        self.restore_urls()
        report.results = self.repair()
        return report

    def initialize_submodules(self) -> List[str]:
        """Register every submodule the superproject knows about."""
        try:
            records = self.submodule_mapper.list_submodules()
            for record in records:
                self.git_manager.submodule_init(record.path)
        except GitRepositoryError as e:
            raise SetupError(f"Submodule initialization failed: {e}") from e
        fresh = [r.path for r in records if not r.is_initialized]
        if fresh:
            logger.info(f"Registered {len(fresh)} new submodule(s): {', '.join(fresh)}")
        return [r.path for r in records]

    def override_urls(self) -> List[str]:
        """Point every submodule URL at the placeholder.

        The initial `submodule update` ignores --no-fetch and tries to talk to
        the origin; a local placeholder URL keeps it from doing so.
        """
        placeholder = self.context.options.placeholder_url
        try:
            keys = [key for key, _ in self.git_manager.get_config_regexp(SUBMODULE_URL_PATTERN)]
            for key in keys:
                self.git_manager.set_config(key, placeholder)
        except GitRepositoryError as e:
            raise SetupError(f"Could not override submodule URLs: {e}") from e
        logger.info(f"Overrode {len(keys)} submodule URL(s) with {placeholder!r}")
        return keys

    def wire_alternates(self) -> List[Path]:
        """Let every initialized submodule read objects from the superproject."""
        try:
            module_dirs = self.submodule_mapper.iter_module_git_dirs()
            objects_dir = self.git_manager.objects_dir
        except (GitRepositoryError, OSError) as e:
            raise SetupError(f"Could not locate submodule git dirs: {e}") from e
        return wire_alternates(module_dirs, objects_dir)

    def checkout(self) -> None:
        """Check out every submodule, using the superproject as object reference."""
        # TODO: --merge cannot roll a submodule backwards when an older superproject
        # revision is checked out; rewinding needs a separate, explicitly destructive command.
        try:
            self.git_manager.submodule_update(self.root_path, recursive=self.context.options.recursive)
        except GitRepositoryError as e:
            raise SetupError(f"Recursive submodule checkout failed: {e}") from e

    def restore_urls(self) -> None:
        """Put the upstream URLs from .gitmodules back in place."""
        try:
            self.git_manager.submodule_sync(recursive=self.context.options.recursive)
        except GitRepositoryError as e:
            raise SetupError(f"Could not restore submodule URLs: {e}") from e

    def repair(self) -> List[SubmoduleResult]:
        """Resolve superproject conflicts and check every submodule landed where recorded."""
        try:
            records = self.submodule_mapper.list_submodules(cached=True)
        except GitRepositoryError as e:
            raise SetupError(f"Could not list submodules: {e}") from e
        return self.conflict_resolver.resolve_all(records)
