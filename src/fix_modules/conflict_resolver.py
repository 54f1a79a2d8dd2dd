"""
Repair of submodule pointers left conflicted by a superproject merge.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .git_manager import GitManager
from .models import (
    ConflictRecord,
    GitRepositoryError,
    SubmoduleRecord,
    SubmoduleResult,
    SyncContext,
)
from .submodule_mapper import SubmoduleMapper


logger = logging.getLogger(__name__)


def is_null_commit(commit: Optional[str]) -> bool:
    """True for the all-zero id git prints for an unmerged gitlink."""
    return bool(commit) and set(commit) == {"0"}


def format_diagnostic(path: str, target: str, *reasons: str) -> str:
    """Build the operator-facing message for a submodule that is not at its target."""
    lines = [f"{path}:"]
    lines.extend(f"  {reason}" for reason in reasons if reason)
    lines.extend(
        [
            "  Couldn't checkout non-destructively.",
            "  You can try to fix it by hand, or",
            f"  check out {target[:12]} inside {path} if you want to force it.",
        ]
    )
    return "\n".join(lines)


class ConflictResolver:
    """Handles submodule pointer conflicts after the bulk checkout.

    Two commits changing the same submodule in incompatible ways leave the
    gitlink unmerged. We check out the first ("ours", stage 2) and try to merge
    the second ("theirs", stage 3) on top, then stage whatever came out.
    Every step is best effort: failures are recorded on the result and the
    next submodule is processed regardless.
    """

    def __init__(self, context: SyncContext, mapper: SubmoduleMapper) -> None:
        self.context = context
        self.mapper = mapper
        self.git_manager: GitManager = context.git_manager

    def resolve_all(self, records: List[SubmoduleRecord]) -> List[SubmoduleResult]:
        results = [self.resolve(record) for record in records]
        unresolved = [r for r in results if r.diagnostic]
        logger.info(
            f"Checked {len(results)} submodule(s); {len(unresolved)} need attention"
        )
        return results

    def resolve(self, record: SubmoduleRecord) -> SubmoduleResult:
        """Repair one submodule and report where it ended up.

        A diagnostic is attached whenever the submodule was left short of a
        clean state: a failed checkout or merge, a gitlink the superproject
        still records as unmerged, or a HEAD that differs from the target.
        """
        result = SubmoduleResult(path=record.path, target=record.commit)

        try:
            conflict = self.mapper.get_conflict(record.path)
        except GitRepositoryError as e:
            logger.warning(f"Could not read index entries for {record.path}: {e}")
            conflict = ConflictRecord(path=record.path)

        try:
            gm_sub = self.mapper.get_submodule_manager(record.path)
        except GitRepositoryError as e:
            logger.warning(f"Could not open submodule {record.path}: {e}")
            gm_sub = None
        if gm_sub is None:
            result.diagnostic = format_diagnostic(
                record.path, result.target, "Submodule working tree is missing."
            )
            logger.warning(f"Submodule {record.path} has no working tree")
            return result

        problems: List[str] = []
        if conflict.is_conflicted:
            problems.extend(self._apply_conflict(conflict, gm_sub, result))

        try:
            result.head = gm_sub.head_commit()
        except GitRepositoryError as e:
            result.diagnostic = format_diagnostic(
                record.path, result.target, *problems, f"Cannot resolve HEAD: {e}"
            )
            return result

        unmerged = is_null_commit(result.target) or (
            conflict.is_conflicted and not result.marked_resolved
        )
        if unmerged:
            # No single target commit exists to compare the guarded branch against
            problems.append(
                f"Superproject still records {record.path} as unmerged; "
                f"stage it with 'git add {record.path}' once it is correct."
            )
            logger.warning(f"Submodule {record.path} is still unmerged in the superproject")
        else:
            result.renamed_branch = self._move_unrelated_branch(gm_sub, result)

        # update --merge can only move forward; anything else is left to the operator
        if not unmerged and not result.in_sync:
            logger.warning(
                f"Submodule {record.path} is at {result.head[:12]}, expected {result.target[:12]}"
            )
        if problems or not result.in_sync:
            result.diagnostic = format_diagnostic(record.path, result.target, *problems)
        return result

    def _apply_conflict(
        self, conflict: ConflictRecord, gm_sub: GitManager, result: SubmoduleResult
    ) -> List[str]:
        """Check out ours, merge theirs, stage the outcome. Returns what went wrong."""
        logger.info(
            f"Resolving conflicted submodule {conflict.path}: "
            f"ours={conflict.ours and conflict.ours[:12]} theirs={conflict.theirs and conflict.theirs[:12]}"
        )
        problems: List[str] = []
        if conflict.ours:
            try:
                gm_sub.checkout_commit(conflict.ours)
                result.checked_out_ours = True
            except GitRepositoryError as e:
                logger.warning(f"Checkout of {conflict.ours[:12]} in {conflict.path} failed: {e}")
                result.checked_out_ours = False
                problems.append(f"Checkout of {conflict.ours[:12]} did not complete.")

        if conflict.theirs:
            try:
                gm_sub.merge_commit(conflict.theirs)
                result.merged_theirs = True
            except GitRepositoryError as e:
                logger.warning(f"Merge of {conflict.theirs[:12]} in {conflict.path} failed: {e}")
                result.merged_theirs = False
                problems.append(f"Merge of {conflict.theirs[:12]} did not complete.")

            try:
                self.git_manager.add_paths([conflict.path])
                result.marked_resolved = True
            except GitRepositoryError as e:
                logger.warning(f"Could not mark {conflict.path} resolved: {e}")

        if result.marked_resolved:
            # The gitlink now records whatever the submodule ended up at
            try:
                recorded = self.git_manager.get_index_commit(conflict.path)
            except GitRepositoryError as e:
                logger.warning(f"Could not re-read index entry for {conflict.path}: {e}")
                recorded = None
            if recorded:
                result.target = recorded
        return problems

    def _move_unrelated_branch(self, gm_sub: GitManager, result: SubmoduleResult) -> Optional[str]:
        """Rename the guarded branch aside if it shares no history with the target."""
        options = self.context.options
        branch = options.guarded_branch
        if gm_sub.rev_parse(branch) is None:
            return None
        if gm_sub.merge_base(branch, result.target) is not None:
            return None

        logger.warning(
            f"Branch {branch} in {result.path} has no history in common with {result.target[:12]}"
        )
        try:
            gm_sub.rename_branch(branch, options.broken_branch)
        except GitRepositoryError as e:
            logger.warning(f"Could not move {branch} aside in {result.path}: {e}")
            return None
        return options.broken_branch
