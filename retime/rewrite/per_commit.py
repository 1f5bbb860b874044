"""Per-commit rewrite: one ``git filter-branch`` pass per commit.

Each pass rewrites the whole history with an env-filter whose predicate
matches a single commit id. A pass also gives every descendant of that
commit a new id, so commits are visited children-first: when a commit's
turn comes, nothing rewritten so far is one of its ancestors and its
original id is still valid.

Slow (one full pass per commit) but a failing commit only costs that
commit: the error is counted and the loop moves on.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Sequence

from retime.errors import CommitRewriteError
from retime.git import delete_backup_refs, discard_worktree_changes
from retime.mapper import CommitRewrite
from retime.progress import ProgressReporter
from retime.rewrite.base import RewriteStrategy, format_git_date
from retime.state import RunState

log = logging.getLogger(__name__)


def build_env_filter(rewrite: CommitRewrite) -> str:
    """Shell snippet for ``--env-filter`` that retimes one commit."""
    date = shlex.quote("@" + format_git_date(rewrite.new_timestamp))
    lines = [
        f'if [ "$GIT_COMMIT" = {shlex.quote(rewrite.commit.hash)} ]; then',
        f"    export GIT_AUTHOR_DATE={date}",
        f"    export GIT_COMMITTER_DATE={date}",
    ]
    if rewrite.identity is not None:
        name = shlex.quote(rewrite.identity.name)
        email = shlex.quote(rewrite.identity.email)
        lines += [
            f"    export GIT_AUTHOR_NAME={name}",
            f"    export GIT_AUTHOR_EMAIL={email}",
            f"    export GIT_COMMITTER_NAME={name}",
            f"    export GIT_COMMITTER_EMAIL={email}",
        ]
    lines.append("fi")
    return "\n".join(lines)


class PerCommitStrategy(RewriteStrategy):
    """Sequential filter-branch loop with non-fatal per-commit failures."""

    name = "per-commit"
    required_tools = ("git", "git-filter-branch")

    def _rewrite_commit(self, repo: Path, rewrite: CommitRewrite) -> None:
        """Run one filter-branch pass. Raises CommitRewriteError on failure."""
        cmd = [
            "git", "filter-branch", "-f",
            "--env-filter", build_env_filter(rewrite),
            "--tag-name-filter", "cat",
            "--", "--all",
        ]
        env = os.environ.copy()
        env["FILTER_BRANCH_SQUELCH_WARNING"] = "1"
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=str(repo),
                env=env,
            )
        except OSError as exc:
            raise CommitRewriteError(rewrite.commit.hash, str(exc)) from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()[-500:]
            raise CommitRewriteError(
                rewrite.commit.hash,
                f"filter-branch exited {result.returncode}: {detail}",
            )

    def rewrite(
        self,
        repo: Path,
        plan: Sequence[CommitRewrite],
        state: RunState,
        progress: ProgressReporter,
        scratch_dir: Path | None = None,
    ) -> None:
        discard_worktree_changes(repo)

        progress.start(len(plan), "Adjusting commit dates")
        try:
            for i, rewrite in enumerate(reversed(plan), start=1):
                log.debug(
                    "Processing commit %d/%d: %s -> %d",
                    i, len(plan), rewrite.commit.hash[:8], rewrite.new_timestamp,
                )
                try:
                    self._rewrite_commit(repo, rewrite)
                except CommitRewriteError as exc:
                    log.warning("Could not adjust commit %s", exc)
                    state.record_failure(exc)
                else:
                    state.record_success()
                progress.advance()
        finally:
            progress.finish()

        removed = delete_backup_refs(repo)
        if removed:
            log.debug("Deleted %d filter-branch backup ref(s)", removed)
