"""Batch rewrite: a single ``git filter-repo`` pass over the whole history.

The rewrite plan is written to a JSON file keyed by original commit id and
a commit callback, rendered from ``templates/commit_callback.py.j2``, looks
each commit up in it. filter-repo either completes the pass or fails it as
a whole, so any non-zero exit aborts the run.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader

from retime.environment import find_filter_repo
from retime.errors import BatchRewriteError
from retime.git import discard_worktree_changes
from retime.mapper import CommitRewrite
from retime.progress import ProgressReporter
from retime.rewrite.base import RewriteStrategy, format_git_date
from retime.rewrite.stream import StreamedProcess
from retime.state import RunState

log = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

PLAN_FILENAME = "rewrite_plan.json"


def _get_env() -> Environment:
    """Create a Jinja2 environment loading from retime/templates/."""
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def plan_to_mapping(plan: Sequence[CommitRewrite]) -> dict[str, dict[str, str]]:
    """Serializable ``{original id: {date, [name, email]}}`` lookup table."""
    mapping: dict[str, dict[str, str]] = {}
    for rewrite in plan:
        entry = {"date": format_git_date(rewrite.new_timestamp)}
        if rewrite.identity is not None:
            entry["name"] = rewrite.identity.name
            entry["email"] = rewrite.identity.email
        mapping[rewrite.commit.hash.lower()] = entry
    return mapping


def render_commit_callback(plan_path: Path, progress_interval: int = 100) -> str:
    """Render the filter-repo commit callback body."""
    template = _get_env().get_template("commit_callback.py.j2")
    return template.render(
        plan_path=str(plan_path),
        progress_interval=progress_interval,
    )


class BatchStrategy(RewriteStrategy):
    """One filter-repo pass; all-or-nothing.

    Parameters
    ----------
    progress_interval:
        The callback reports progress every this many commits.
    """

    name = "batch"
    required_tools = ("git", "git-filter-repo")

    def __init__(self, progress_interval: int = 100) -> None:
        self.progress_interval = progress_interval

    def _command(self, callback: str) -> list[str]:
        executable = find_filter_repo() or "git-filter-repo"
        return [executable, "--force", "--commit-callback", callback]

    def rewrite(
        self,
        repo: Path,
        plan: Sequence[CommitRewrite],
        state: RunState,
        progress: ProgressReporter,
        scratch_dir: Path | None = None,
    ) -> None:
        discard_worktree_changes(repo)

        with tempfile.TemporaryDirectory(prefix="retime-plan-", dir=scratch_dir) as tmp:
            plan_path = Path(tmp) / PLAN_FILENAME
            plan_path.write_text(json.dumps(plan_to_mapping(plan)), encoding="utf-8")
            callback = render_commit_callback(plan_path, self.progress_interval)

            log.info("Rewriting commit history (%d commits)...", len(plan))
            process = StreamedProcess(self._command(callback), cwd=repo)
            progress.start(len(plan), "Rewriting history")
            try:
                rc = process.run(on_marker=progress.update)
                if rc == 0:
                    progress.update(len(plan))
            finally:
                progress.finish()

        if rc != 0:
            log.error("History rewrite failed (rc=%d): %s", rc, process.stderr_tail[-500:])
            raise BatchRewriteError(rc, process.stderr_tail[-2000:])

        state.processed_commits = len(plan)
        if process.dropped_markers:
            log.debug("Coalesced %d progress markers", process.dropped_markers)
