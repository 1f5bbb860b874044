"""Thin wrappers over the git command line used by the engine."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from retime.mapper import CommitRecord

log = logging.getLogger(__name__)

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = _FIELD_SEP.join(["%H", "%at", "%an", "%ae", "%s"]) + _RECORD_SEP


class GitCommandError(Exception):
    """Raised when a git invocation exits non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        detail = stderr.strip()[:500]
        super().__init__(f"git {' '.join(args)} failed (rc={returncode}): {detail}")
        self.returncode = returncode
        self.stderr = stderr


def run_git(
    repo: Path | None,
    args: list[str],
    check: bool = True,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess:
    """Run ``git <args>`` in *repo* and capture text output."""
    result = subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=str(repo) if repo is not None else None,
        env=env,
    )
    if check and result.returncode != 0:
        raise GitCommandError(args, result.returncode, result.stderr)
    return result


def is_repository(path: Path) -> bool:
    """Return True if *path* is the top of a work tree or a bare repository."""
    if not Path(path).is_dir():
        return False
    result = run_git(path, ["rev-parse", "--git-dir"], check=False)
    return result.returncode == 0


def is_bare(repo: Path) -> bool:
    result = run_git(repo, ["rev-parse", "--is-bare-repository"], check=False)
    return result.stdout.strip() == "true"


def has_refs(repo: Path) -> bool:
    result = run_git(repo, ["for-each-ref", "--count=1", "refs/heads", "refs/tags"])
    return bool(result.stdout.strip())


def list_commits(repo: Path) -> list[CommitRecord]:
    """Enumerate every commit reachable from any ref, oldest first.

    Order is ``--topo-order`` reversed, so parents always precede children.
    """
    if not has_refs(repo):
        return []
    result = run_git(repo, ["log", "--all", "--reverse", "--topo-order", f"--format={_LOG_FORMAT}"])
    commits: list[CommitRecord] = []
    for record in result.stdout.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record:
            continue
        parts = record.split(_FIELD_SEP)
        if len(parts) < 5:
            log.debug("Skipping malformed log record: %r", record[:80])
            continue
        chash, ts, author, email = parts[:4]
        commits.append(CommitRecord(
            hash=chash,
            timestamp=int(ts),
            author=author,
            email=email,
            message=_FIELD_SEP.join(parts[4:]),
        ))
    return commits


def localize_branches(repo: Path, remote: str = "origin") -> None:
    """Turn every branch and tag of *remote* into a local ref, then drop the remote.

    After a plain clone only the default branch is local; the rewrite tools
    operate on local refs, and the remote points at a directory that is
    about to disappear.
    """
    run_git(repo, [
        "fetch", "--update-head-ok", "--no-tags", remote,
        "+refs/heads/*:refs/heads/*",
        "+refs/tags/*:refs/tags/*",
    ])
    run_git(repo, ["remote", "remove", remote])


def discard_worktree_changes(repo: Path) -> None:
    """Forcibly drop uncommitted changes and untracked files.

    No-op for a bare repository.
    """
    if is_bare(repo):
        return
    if not has_refs(repo):
        return
    run_git(repo, ["reset", "--hard", "--quiet"])
    run_git(repo, ["clean", "-fdxq"])


def delete_backup_refs(repo: Path, namespace: str = "refs/original/") -> int:
    """Delete refs left behind by ``git filter-branch``. Returns the count."""
    result = run_git(repo, ["for-each-ref", "--format=%(refname)", namespace])
    refs = [line for line in result.stdout.splitlines() if line.strip()]
    for ref in refs:
        run_git(repo, ["update-ref", "-d", ref])
    return len(refs)
