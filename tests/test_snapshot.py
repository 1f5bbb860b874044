"""Tests for retime.snapshot and the git helpers it relies on."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from helpers import BASE_TS, DAY, commit_at, git, snapshot_tree
from retime.errors import NotARepositoryError, OutputExistsError, SnapshotError
from retime.git import delete_backup_refs, discard_worktree_changes, list_commits
from retime.progress import NullProgress
from retime.snapshot import (
    backup_output,
    check_output_target,
    count_files,
    ensure_repository,
    finalize_output,
    repository_snapshot,
)


class _Recorder(NullProgress):
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def start(self, total: int, label: str = "") -> None:
        self.calls.append(("start", total, label))

    def advance(self, step: int = 1) -> None:
        self.calls.append(("advance", step))

    def finish(self) -> None:
        self.calls.append(("finish",))


def _refs(repo: Path) -> list[str]:
    return sorted(git(repo, "for-each-ref", "--format=%(refname)").split())


class TestEnsureRepository:
    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(NotARepositoryError, match="does not exist"):
            ensure_repository(tmp_path / "missing")

    def test_plain_directory(self, tmp_path: Path) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(NotARepositoryError, match="No git repository found"):
            ensure_repository(plain)

    def test_repository(self, make_repo) -> None:
        repo = make_repo()
        assert ensure_repository(repo) == repo.resolve()


class TestCheckOutputTarget:
    def test_absent_output(self, tmp_path: Path) -> None:
        check_output_target(tmp_path / "out", force=False)

    def test_existing_output_refused(self, tmp_path: Path) -> None:
        (tmp_path / "out").mkdir()
        with pytest.raises(OutputExistsError, match="Use --force to overwrite"):
            check_output_target(tmp_path / "out", force=False)

    def test_existing_output_forced(self, tmp_path: Path) -> None:
        (tmp_path / "out").mkdir()
        check_output_target(tmp_path / "out", force=True)


class TestBackupOutput:
    def test_copies_contents(self, tmp_path: Path) -> None:
        output = tmp_path / "out"
        (output / "sub").mkdir(parents=True)
        (output / "a.txt").write_text("a")
        (output / "sub" / "b.txt").write_text("b")
        before = snapshot_tree(output)
        recorder = _Recorder()

        backup = backup_output(output, recorder, now=datetime(2025, 6, 18, 9, 30, 5))

        assert backup == tmp_path / "out_backup_20250618-093005"
        assert snapshot_tree(backup) == before
        assert snapshot_tree(output) == before
        assert recorder.calls[0] == ("start", 2, "Creating backup")
        assert recorder.calls.count(("advance", 1)) == 2
        assert recorder.calls[-1] == ("finish",)

    def test_name_collision_gets_suffix(self, tmp_path: Path) -> None:
        output = tmp_path / "out"
        output.mkdir()
        now = datetime(2025, 6, 18, 9, 30, 5)
        first = backup_output(output, now=now)
        second = backup_output(output, now=now)
        assert first != second
        assert second.name == "out_backup_20250618-093005_1"

    def test_failure_raises_snapshot_error(self, tmp_path: Path) -> None:
        with pytest.raises(SnapshotError, match="Backup of"):
            backup_output(tmp_path / "missing")

    def test_count_files(self, tmp_path: Path) -> None:
        (tmp_path / "d").mkdir()
        (tmp_path / "d" / "x").write_text("")
        (tmp_path / "y").write_text("")
        assert count_files(tmp_path) == 2


class TestRepositorySnapshot:
    def test_clone_has_every_branch_and_tag(self, make_repo, tmp_path: Path) -> None:
        source = make_repo((0, 1))
        git(source, "tag", "v1.0")
        git(source, "checkout", "-q", "-b", "feature")
        commit_at(source, BASE_TS + 2 * DAY, "feature work")
        git(source, "checkout", "-q", "main")
        parent = tmp_path / "scratch"
        parent.mkdir()

        with repository_snapshot(source, parent=parent) as snap:
            assert snap.repo.parent == snap.root
            assert snap.root.parent == parent
            refs = _refs(snap.repo)
            assert refs == ["refs/heads/feature", "refs/heads/main", "refs/tags/v1.0"]
            assert git(snap.repo, "remote").strip() == ""
            assert len(list_commits(snap.repo)) == 3

        assert list(parent.iterdir()) == []

    def test_removed_on_error(self, make_repo, tmp_path: Path) -> None:
        source = make_repo((0,))
        parent = tmp_path / "scratch"
        parent.mkdir()
        with pytest.raises(RuntimeError):
            with repository_snapshot(source, parent=parent):
                raise RuntimeError("boom")
        assert list(parent.iterdir()) == []

    def test_source_untouched(
        self, make_repo, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # No global identity: the snapshot clone has no user.name/user.email
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
        monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "no-gitconfig"))
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        source = make_repo()
        before = snapshot_tree(source)
        with repository_snapshot(source, parent=tmp_path) as snap:
            commit_at(snap.repo, BASE_TS + 90 * DAY, "only in the snapshot")
        assert snapshot_tree(source) == before

    def test_clone_failure(self, tmp_path: Path) -> None:
        parent = tmp_path / "scratch"
        parent.mkdir()
        with pytest.raises(SnapshotError, match="Could not clone"):
            with repository_snapshot(tmp_path / "nowhere", parent=parent):
                pass
        assert list(parent.iterdir()) == []


class TestFinalizeOutput:
    def test_materializes_repository(self, make_repo, tmp_path: Path) -> None:
        source = make_repo((0, 5))
        git(source, "tag", "release")
        output = tmp_path / "final" / "out"
        with repository_snapshot(source, parent=tmp_path) as snap:
            result = finalize_output(snap.repo, output)
        assert result == output.resolve()
        assert _refs(output) == ["refs/heads/main", "refs/tags/release"]
        assert (output / "commit_0.txt").read_text() == "commit 0\n"
        assert not (output.parent / ".out.retime-staging").exists()

    def test_replaces_existing_output(self, make_repo, tmp_path: Path) -> None:
        source = make_repo((0,))
        output = tmp_path / "out"
        output.mkdir()
        (output / "stale.txt").write_text("old")
        with repository_snapshot(source, parent=tmp_path) as snap:
            finalize_output(snap.repo, output)
        assert not (output / "stale.txt").exists()
        assert len(list_commits(output)) == 1


class TestGitHelpers:
    def test_list_commits_oldest_first(self, make_repo) -> None:
        repo = make_repo((0, 1, 3))
        commits = list_commits(repo)
        assert [c.message for c in commits] == ["commit 0", "commit 1", "commit 2"]
        assert [c.timestamp for c in commits] == [BASE_TS, BASE_TS + DAY, BASE_TS + 3 * DAY]
        assert commits[0].author == "Alice"
        assert commits[0].email == "alice@example.com"
        assert len(commits[0].hash) == 40

    def test_list_commits_empty_repository(self, tmp_path: Path) -> None:
        repo = tmp_path / "empty"
        repo.mkdir()
        git(repo, "init", "-q")
        assert list_commits(repo) == []

    def test_discard_worktree_changes(self, make_repo) -> None:
        repo = make_repo((0,))
        (repo / "commit_0.txt").write_text("edited\n")
        (repo / "untracked.txt").write_text("x")
        discard_worktree_changes(repo)
        assert (repo / "commit_0.txt").read_text() == "commit 0\n"
        assert not (repo / "untracked.txt").exists()

    def test_delete_backup_refs(self, make_repo) -> None:
        repo = make_repo((0,))
        head = git(repo, "rev-parse", "HEAD").strip()
        git(repo, "update-ref", "refs/original/refs/heads/main", head)
        assert delete_backup_refs(repo) == 1
        assert _refs(repo) == ["refs/heads/main"]
