"""Tests for retime.environment."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from retime.environment import find_filter_repo, check_tool, validate_environment
from retime.errors import MissingToolError


def _completed(cmd, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


class TestCheckTool:
    def test_git_on_path(self) -> None:
        with patch("retime.environment.shutil.which", return_value="/usr/bin/git"), patch(
            "retime.environment.subprocess.run",
            return_value=_completed(["git"], stdout="git version 2.43.0\n"),
        ):
            assert check_tool("git") == "git version 2.43.0"

    def test_git_missing(self) -> None:
        with patch("retime.environment.shutil.which", return_value=None):
            with pytest.raises(MissingToolError, match="Required dependency not found: git"):
                check_tool("git")

    def test_filter_repo_missing(self) -> None:
        with patch("retime.environment.shutil.which", return_value="/usr/bin/git"), patch(
            "retime.environment.subprocess.run",
            return_value=_completed(["git"], returncode=1, stderr="git: 'filter-repo' is not a git command."),
        ):
            with pytest.raises(MissingToolError, match="git-filter-repo"):
                check_tool("git-filter-repo")

    def test_filter_branch_usage_exit_is_ok(self) -> None:
        with patch("retime.environment.shutil.which", return_value="/usr/bin/git"), patch(
            "retime.environment.subprocess.run",
            return_value=_completed(["git"], returncode=129, stderr="usage: git filter-branch [--setup <command>]\n"),
        ):
            assert check_tool("git-filter-branch").startswith("usage: git filter-branch")

    def test_check_oserror(self) -> None:
        with patch("retime.environment.shutil.which", return_value="/usr/bin/git"), patch(
            "retime.environment.subprocess.run", side_effect=OSError("exec format error")
        ):
            with pytest.raises(MissingToolError, match="Could not run"):
                check_tool("git")

    def test_unknown_tool(self) -> None:
        with pytest.raises(MissingToolError, match="Unknown tool"):
            check_tool("svn")


class TestValidateEnvironment:
    def test_returns_versions_in_order(self) -> None:
        with patch("retime.environment.check_tool", side_effect=lambda name: f"{name} 1.0") as check:
            found = validate_environment(["git", "git-filter-repo", "git"])
        assert list(found) == ["git", "git-filter-repo"]
        assert found["git"] == "git 1.0"
        assert check.call_count == 2

    def test_stops_at_first_missing(self) -> None:
        def _check(name: str) -> str:
            if name == "git-filter-repo":
                raise MissingToolError("Required dependency not found: git-filter-repo.")
            return "ok"

        with patch("retime.environment.check_tool", side_effect=_check):
            with pytest.raises(MissingToolError, match="git-filter-repo"):
                validate_environment(["git", "git-filter-repo"])

    def test_real_git_is_available(self) -> None:
        assert validate_environment(["git"])["git"].startswith("git version")


class TestFindFilterRepo:
    def test_prefers_path(self) -> None:
        with patch("retime.environment.shutil.which", return_value="/usr/local/bin/git-filter-repo"):
            assert find_filter_repo() == "/usr/local/bin/git-filter-repo"

    def test_falls_back_to_interpreter_dir(self, tmp_path: Path) -> None:
        script = tmp_path / "git-filter-repo"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o755)
        with patch("retime.environment.shutil.which", return_value=None), patch(
            "retime.environment.sys.executable", str(tmp_path / "python")
        ):
            assert find_filter_repo() == str(script)

    def test_not_installed(self, tmp_path: Path) -> None:
        with patch("retime.environment.shutil.which", return_value=None), patch(
            "retime.environment.sys.executable", str(tmp_path / "python")
        ):
            assert find_filter_repo() is None
            with pytest.raises(MissingToolError, match="git-filter-repo"):
                check_tool("git-filter-repo")

    def test_check_runs_resolved_script(self, tmp_path: Path) -> None:
        with patch("retime.environment.find_filter_repo", return_value="/venv/bin/git-filter-repo"), patch(
            "retime.environment.subprocess.run",
            return_value=_completed(["git-filter-repo"], stdout="a40bce548d2c\n"),
        ) as run:
            assert check_tool("git-filter-repo") == "a40bce548d2c"
        assert run.call_args[0][0] == ["/venv/bin/git-filter-repo", "--version"]
