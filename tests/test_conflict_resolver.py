"""
Tests for the submodule conflict resolver.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fix_modules.conflict_resolver import ConflictResolver, format_diagnostic, is_null_commit
from fix_modules.git_manager import GitManager
from fix_modules.models import (
    ConflictRecord,
    GitRepositoryError,
    SubmoduleRecord,
    SyncContext,
    SyncOptions,
)
from fix_modules.submodule_mapper import SubmoduleMapper


TARGET = "1" * 40
OURS = "2" * 40
THEIRS = "3" * 40
MERGED = "4" * 40
NEWER = "5" * 40
MAIN_TIP = "6" * 40


@pytest.fixture()
def parent_gm() -> MagicMock:
    return MagicMock(spec=GitManager)


@pytest.fixture()
def sub_gm() -> MagicMock:
    gm = MagicMock(spec=GitManager)
    gm.head_commit.return_value = TARGET
    gm.rev_parse.return_value = None
    return gm


@pytest.fixture()
def mapper(sub_gm) -> MagicMock:
    mapper = MagicMock(spec=SubmoduleMapper)
    mapper.get_conflict.side_effect = lambda path: ConflictRecord(path=path)
    mapper.get_submodule_manager.return_value = sub_gm
    return mapper


@pytest.fixture()
def resolver(tmp_path: Path, parent_gm, mapper) -> ConflictResolver:
    context = SyncContext(root_path=tmp_path, git_manager=parent_gm)
    return ConflictResolver(context, mapper)


def record(path: str = "libs/a", commit: str = TARGET) -> SubmoduleRecord:
    return SubmoduleRecord(path=path, commit=commit)


class TestCleanSubmodule:
    def test_in_sync_needs_nothing(self, resolver, sub_gm, parent_gm):
        result = resolver.resolve(record())

        assert result.in_sync
        assert result.diagnostic is None
        assert result.renamed_branch is None
        sub_gm.checkout_commit.assert_not_called()
        sub_gm.merge_commit.assert_not_called()
        parent_gm.add_paths.assert_not_called()

    def test_newer_head_is_not_rewound(self, resolver, sub_gm):
        sub_gm.head_commit.return_value = NEWER

        result = resolver.resolve(record())

        assert result.head == NEWER
        assert not result.in_sync
        assert "libs/a:" in result.diagnostic
        assert "Couldn't checkout non-destructively." in result.diagnostic
        sub_gm.checkout_commit.assert_not_called()

    def test_missing_working_tree(self, resolver, mapper):
        mapper.get_submodule_manager.return_value = None

        result = resolver.resolve(record())

        assert result.head is None
        assert "missing" in result.diagnostic

    def test_unresolvable_head(self, resolver, sub_gm):
        sub_gm.head_commit.side_effect = GitRepositoryError("no HEAD")

        result = resolver.resolve(record())

        assert result.head is None
        assert "Cannot resolve HEAD" in result.diagnostic

    def test_unreadable_index_is_treated_as_clean(self, resolver, mapper, sub_gm):
        mapper.get_conflict.side_effect = GitRepositoryError("index locked")

        result = resolver.resolve(record())

        assert result.in_sync
        sub_gm.checkout_commit.assert_not_called()


class TestConflictedSubmodule:
    @pytest.fixture(autouse=True)
    def conflicted(self, mapper, parent_gm, sub_gm):
        mapper.get_conflict.side_effect = lambda path: ConflictRecord(path=path, ours=OURS, theirs=THEIRS)
        parent_gm.get_index_commit.return_value = MERGED
        sub_gm.head_commit.return_value = MERGED

    def test_checkout_ours_merge_theirs_and_stage(self, resolver, sub_gm, parent_gm):
        result = resolver.resolve(record(commit="0" * 40))

        sub_gm.checkout_commit.assert_called_once_with(OURS)
        sub_gm.merge_commit.assert_called_once_with(THEIRS)
        parent_gm.add_paths.assert_called_once_with(["libs/a"])
        assert result.checked_out_ours is True
        assert result.merged_theirs is True
        assert result.marked_resolved is True
        assert result.target == MERGED
        assert result.in_sync
        assert result.diagnostic is None

    def test_failed_merge_is_reported_even_when_staged(self, resolver, sub_gm, parent_gm):
        sub_gm.merge_commit.side_effect = GitRepositoryError("conflict")
        sub_gm.head_commit.return_value = OURS
        parent_gm.get_index_commit.return_value = OURS

        result = resolver.resolve(record(commit="0" * 40))

        assert result.merged_theirs is False
        assert result.marked_resolved is True
        parent_gm.add_paths.assert_called_once_with(["libs/a"])
        assert result.target == OURS
        # HEAD matches the staged gitlink, but the merge still has to be finished by hand
        assert result.in_sync
        assert result.diagnostic is not None
        assert f"Merge of {THEIRS[:12]} did not complete." in result.diagnostic
        assert OURS[:12] in result.diagnostic

    def test_failed_checkout_still_tries_merge(self, resolver, sub_gm):
        sub_gm.checkout_commit.side_effect = GitRepositoryError("dirty tree")

        result = resolver.resolve(record(commit="0" * 40))

        assert result.checked_out_ours is False
        sub_gm.merge_commit.assert_called_once_with(THEIRS)
        assert result.in_sync
        assert f"Checkout of {OURS[:12]} did not complete." in result.diagnostic

    def test_failed_staging_keeps_recorded_target(self, resolver, parent_gm, sub_gm):
        parent_gm.add_paths.side_effect = GitRepositoryError("index locked")

        result = resolver.resolve(record(commit=TARGET))

        assert result.marked_resolved is False
        assert result.target == TARGET
        parent_gm.get_index_commit.assert_not_called()
        assert "still records libs/a as unmerged" in result.diagnostic
        sub_gm.rev_parse.assert_not_called()

    def test_ours_only_stays_unmerged(self, resolver, mapper, sub_gm, parent_gm):
        mapper.get_conflict.side_effect = lambda path: ConflictRecord(path=path, ours=OURS)
        sub_gm.head_commit.return_value = OURS
        sub_gm.rev_parse.return_value = MAIN_TIP
        sub_gm.merge_base.return_value = None

        result = resolver.resolve(record(commit="0" * 40))

        sub_gm.checkout_commit.assert_called_once_with(OURS)
        sub_gm.merge_commit.assert_not_called()
        parent_gm.add_paths.assert_not_called()
        # The all-zero id is not a commit; main must not be judged against it
        sub_gm.merge_base.assert_not_called()
        sub_gm.rename_branch.assert_not_called()
        assert result.renamed_branch is None
        assert "still records libs/a as unmerged" in result.diagnostic


class TestGuardedBranch:
    def test_unrelated_main_is_moved_aside(self, resolver, sub_gm):
        sub_gm.rev_parse.return_value = MAIN_TIP
        sub_gm.merge_base.return_value = None

        result = resolver.resolve(record())

        sub_gm.rev_parse.assert_called_once_with("main")
        sub_gm.merge_base.assert_called_once_with("main", TARGET)
        sub_gm.rename_branch.assert_called_once_with("main", "main.probably-broken")
        assert result.renamed_branch == "main.probably-broken"

    def test_related_main_is_left_alone(self, resolver, sub_gm):
        sub_gm.rev_parse.return_value = MAIN_TIP
        sub_gm.merge_base.return_value = TARGET

        result = resolver.resolve(record())

        sub_gm.rename_branch.assert_not_called()
        assert result.renamed_branch is None

    def test_no_main_branch(self, resolver, sub_gm):
        resolver.resolve(record())
        sub_gm.merge_base.assert_not_called()
        sub_gm.rename_branch.assert_not_called()

    def test_rename_failure_is_tolerated(self, resolver, sub_gm):
        sub_gm.rev_parse.return_value = MAIN_TIP
        sub_gm.merge_base.return_value = None
        sub_gm.rename_branch.side_effect = GitRepositoryError("locked")

        result = resolver.resolve(record())

        assert result.renamed_branch is None
        assert result.in_sync

    def test_custom_guarded_branch(self, tmp_path, parent_gm, mapper, sub_gm):
        options = SyncOptions(guarded_branch="master", broken_suffix=".old")
        context = SyncContext(root_path=tmp_path, git_manager=parent_gm, options=options)
        sub_gm.rev_parse.return_value = MAIN_TIP
        sub_gm.merge_base.return_value = None

        result = ConflictResolver(context, mapper).resolve(record())

        sub_gm.rename_branch.assert_called_once_with("master", "master.old")
        assert result.renamed_branch == "master.old"


class TestResolveAll:
    def test_keeps_going_after_problems(self, resolver, mapper, sub_gm):
        other = MagicMock(spec=GitManager)
        other.head_commit.return_value = TARGET
        other.rev_parse.return_value = None
        managers = {"libs/a": None, "libs/b": sub_gm, "libs/c": other}
        mapper.get_submodule_manager.side_effect = managers.get
        sub_gm.head_commit.return_value = NEWER

        results = resolver.resolve_all([record("libs/a"), record("libs/b"), record("libs/c")])

        assert [r.path for r in results] == ["libs/a", "libs/b", "libs/c"]
        assert [r.diagnostic is not None for r in results] == [True, True, False]


def test_format_diagnostic():
    text = format_diagnostic("libs/a", TARGET, "Submodule working tree is missing.")
    lines = text.splitlines()

    assert lines[0] == "libs/a:"
    assert lines[1] == "  Submodule working tree is missing."
    assert "  Couldn't checkout non-destructively." in lines
    assert TARGET[:12] in lines[-1]


def test_format_diagnostic_lists_every_reason():
    text = format_diagnostic("libs/a", TARGET, "Checkout failed.", "", "Merge failed.")
    lines = text.splitlines()

    assert lines[:3] == ["libs/a:", "  Checkout failed.", "  Merge failed."]


def test_is_null_commit():
    assert is_null_commit("0" * 40)
    assert is_null_commit("0" * 64)
    assert not is_null_commit(TARGET)
    assert not is_null_commit("")
    assert not is_null_commit(None)
