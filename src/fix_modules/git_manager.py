"""
Git repository management and operations.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union
from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import GitCommandError

from .models import GitRepositoryError


logger = logging.getLogger(__name__)


class GitManager:
    """Runs the git operations needed to bring submodules back in sync.

    One instance is bound to one working tree: the superproject, or a single
    submodule checkout.
    """

    def __init__(self, repo_path: Optional[Path] = None, search_parents: bool = True) -> None:
        """Initialize Git manager with optional repository path.

        With ``search_parents`` disabled the path must itself be the top of a
        working tree; this keeps an uninitialized submodule directory from
        silently resolving to its superproject.
        """
        self.repo_path = (repo_path or Path.cwd()).resolve()
        self.search_parents = search_parents
        self._repo: Optional[Repo] = None

    # --- Path normalization helpers ---
    def _to_repo_relative_str(self, p: Union[str, Path]) -> str:
        """Return a POSIX-style path relative to repo root for any given path.

        If `p` is absolute and inside the repository working directory, it is
        converted to a relative path. If `p` is already relative, it is
        normalized to POSIX separators. If `p` is outside the repo, the POSIX
        string form is returned as-is.
        """
        base = self.working_dir
        pp = Path(p)
        if not pp.is_absolute():
            return pp.as_posix()
        try:
            return pp.resolve().relative_to(base).as_posix()
        except ValueError:
            s = pp.as_posix()
            logger.debug(f"Path '{s}' not under repo root '{base}'; passing as-is")
            return s

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            self._repo = self._discover_repository()
        return self._repo

    def _discover_repository(self) -> Repo:
        """Discover the Git repository from current or specified path."""
        search_path = self.repo_path

        logger.debug(f"Discovering repository in: {search_path}")
        if not self.search_parents:
            try:
                repo = Repo(search_path)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise GitRepositoryError(f"No Git repository at {search_path}") from e
            if repo.working_tree_dir is None or Path(repo.working_tree_dir).resolve() != search_path:
                raise GitRepositoryError(
                    f"{search_path} is not the top of a working tree (found {repo.working_tree_dir})"
                )
            return repo

        # Walk up the directory tree to find a Git repository
        while search_path != search_path.parent:
            try:
                repo = Repo(search_path)
                logger.info(f"Found Git repository at: {search_path}")
                return repo
            except (InvalidGitRepositoryError, NoSuchPathError):
                search_path = search_path.parent

        raise GitRepositoryError(
            f"No Git repository found at {self.repo_path} or any parent directory"
        )

    @property
    def working_dir(self) -> Path:
        """Absolute path of the working tree root."""
        if self.repo.working_tree_dir is None:
            raise GitRepositoryError(f"Repository at {self.repo_path} has no working tree")
        return Path(self.repo.working_tree_dir).resolve()

    @property
    def git_dir(self) -> Path:
        return Path(self.repo.git_dir).resolve()

    @property
    def objects_dir(self) -> Path:
        """Object store shared by every worktree of this repository."""
        return Path(self.repo.common_dir).resolve() / "objects"

    @property
    def modules_dir(self) -> Path:
        """Where git keeps the private git dirs of this repository's submodules."""
        return Path(self.repo.common_dir).resolve() / "modules"

    # --- Submodule plumbing ---
    def submodule_status(self, cached: bool = False) -> str:
        """Return raw `git submodule status` output."""
        args = ["status"]
        if cached:
            args.append("--cached")
        try:
            return self.repo.git.submodule(*args)
        except GitCommandError as e:
            logger.error(f"Error listing submodule status in {self.working_dir}: {e}")
            raise GitRepositoryError(f"Failed to list submodule status: {e}") from e

    def submodule_init(self, path: Union[str, Path]) -> None:
        """Register a submodule in the local configuration."""
        rel = self._to_repo_relative_str(path)
        try:
            self.repo.git.submodule("init", "--", rel)
            logger.debug(f"Initialized submodule {rel}")
        except GitCommandError as e:
            logger.error(f"Error initializing submodule {rel}: {e}")
            raise GitRepositoryError(f"Failed to initialize submodule {rel}: {e}") from e

    def submodule_update(self, reference: Path, recursive: bool = True) -> None:
        """Check out every submodule without fetching, borrowing objects from ``reference``."""
        args = ["update", "--init", "--no-fetch", f"--reference={reference}"]
        if recursive:
            args.append("--recursive")
        args.append("--merge")
        try:
            self.repo.git.submodule(*args)
            logger.info("Submodule update completed")
        except GitCommandError as e:
            logger.error(f"Submodule update failed: {e}")
            raise GitRepositoryError(f"Submodule update failed: {e}") from e

    def submodule_sync(self, recursive: bool = True) -> None:
        """Copy submodule URLs from .gitmodules back into the local configuration."""
        args = ["--quiet", "sync"]
        if recursive:
            args.append("--recursive")
        try:
            self.repo.git.submodule(*args)
            logger.info("Submodule URLs synchronized from .gitmodules")
        except GitCommandError as e:
            logger.error(f"Submodule sync failed: {e}")
            raise GitRepositoryError(f"Submodule sync failed: {e}") from e

    # --- Configuration ---
    def get_config_regexp(self, pattern: str) -> List[Tuple[str, str]]:
        """Return (key, value) pairs of local config keys matching ``pattern``.

        git exits with status 1 when nothing matches; that is reported as an
        empty list.
        """
        try:
            output = self.repo.git.config("--local", "--get-regexp", pattern)
        except GitCommandError as e:
            if e.status == 1:
                return []
            logger.error(f"Error reading config keys matching {pattern}: {e}")
            raise GitRepositoryError(f"Failed to read config: {e}") from e

        pairs: List[Tuple[str, str]] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            key, _, value = line.partition(" ")
            pairs.append((key, value))
        return pairs

    def set_config(self, key: str, value: str) -> None:
        try:
            self.repo.git.config(key, value)
            logger.debug(f"Set {key} = {value}")
        except GitCommandError as e:
            logger.error(f"Error setting {key}: {e}")
            raise GitRepositoryError(f"Failed to set {key}: {e}") from e

    # --- Index inspection ---
    def list_unmerged(self, path: Union[str, Path]) -> str:
        """Return raw `git ls-files --unmerged -- <path>` output."""
        rel = self._to_repo_relative_str(path)
        try:
            return self.repo.git.ls_files("--unmerged", "--", rel)
        except GitCommandError as e:
            logger.error(f"Error listing unmerged entries for {rel}: {e}")
            raise GitRepositoryError(f"Failed to list unmerged entries for {rel}: {e}") from e

    def get_index_commit(self, path: Union[str, Path]) -> Optional[str]:
        """Return the stage 0 gitlink recorded in the index for ``path``, if any."""
        rel = self._to_repo_relative_str(path)
        try:
            output = self.repo.git.ls_files("--stage", "--", rel)
        except GitCommandError as e:
            logger.error(f"Error reading index entry for {rel}: {e}")
            raise GitRepositoryError(f"Failed to read index entry for {rel}: {e}") from e

        # Expected format: "160000 <sha> 0\t<path>"
        for line in output.splitlines():
            meta, _, entry_path = line.partition("\t")
            parts = meta.split()
            if len(parts) == 3 and parts[2] == "0" and entry_path == rel:
                return parts[1]
        return None

    def add_paths(self, paths: List[Union[str, Path]]) -> None:
        """Stage the given paths (files or gitlinks)."""
        try:
            for p in paths:
                # The '--' ensures pathspec is not interpreted as an option
                self.repo.git.add("--", self._to_repo_relative_str(p))
        except GitCommandError as e:
            logger.error(f"Failed to add paths {paths} in {self.working_dir}: {e}")
            raise GitRepositoryError(f"Failed to stage paths: {e}") from e

    # --- Commits and branches ---
    def checkout_commit(self, commitish: str) -> None:
        """Checkout a commit-ish in this working tree."""
        try:
            self.repo.git.checkout(commitish, "--")
            logger.info(f"Checked out {commitish[:12]} in {self.working_dir}")
        except GitCommandError as e:
            logger.error(f"Failed to checkout {commitish} in {self.working_dir}: {e}")
            raise GitRepositoryError(f"Failed to checkout {commitish}: {e}") from e

    def merge_commit(self, commitish: str) -> None:
        """Merge a commit-ish into the current checkout."""
        try:
            self.repo.git.merge(commitish, "--")
            logger.info(f"Merged {commitish[:12]} in {self.working_dir}")
        except GitCommandError as e:
            logger.error(f"Failed to merge {commitish} in {self.working_dir}: {e}")
            raise GitRepositoryError(f"Failed to merge {commitish}: {e}") from e

    def rev_parse(self, ref: str) -> Optional[str]:
        """Return the full sha for ``ref``, or None if it does not resolve."""
        try:
            value = self.repo.git.rev_parse("--verify", "--quiet", ref).strip()
        except GitCommandError:
            return None
        return value or None

    def head_commit(self) -> str:
        """Return the sha HEAD points at."""
        try:
            return self.repo.git.rev_parse("--verify", "HEAD").strip()
        except GitCommandError as e:
            logger.error(f"Cannot resolve HEAD in {self.working_dir}: {e}")
            raise GitRepositoryError(f"Cannot resolve HEAD in {self.working_dir}: {e}") from e

    def merge_base(self, first: str, second: str) -> Optional[str]:
        """Return a common ancestor of two commits, or None if there is none."""
        try:
            value = self.repo.git.merge_base(first, second).strip()
        except GitCommandError as e:
            logger.debug(f"No merge base for {first} and {second}: {e}")
            return None
        return value or None

    def rename_branch(self, old_name: str, new_name: str) -> None:
        """Rename a local branch, replacing ``new_name`` if it exists."""
        try:
            self.repo.git.branch("-f", "-m", old_name, new_name)
            logger.info(f"Renamed branch {old_name} -> {new_name} in {self.working_dir}")
        except GitCommandError as e:
            logger.error(f"Error renaming branch {old_name}: {e}")
            raise GitRepositoryError(f"Failed to rename branch {old_name} to {new_name}: {e}") from e
