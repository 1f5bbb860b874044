"""Git helpers shared by the tests: throwaway repositories with controlled dates."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

DAY = 86_400

# 2023-11-14T22:13:20Z
BASE_TS = 1_700_000_000

AUTHOR_NAME = "Alice"
AUTHOR_EMAIL = "alice@example.com"


def git(repo: Path, *args: str, env: dict[str, str] | None = None) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=str(repo),
        capture_output=True,
        text=True,
        check=True,
        env=env,
    )
    return result.stdout


def commit_at(repo: Path, timestamp: int, message: str, filename: str | None = None) -> None:
    """Create a commit whose author and committer dates are *timestamp*.

    The identity comes from the environment, so this works in clones that
    have no ``user.name``/``user.email`` configured.
    """
    name = filename or f"{message.replace(' ', '_')}.txt"
    (repo / name).write_text(f"{message}\n")
    git(repo, "add", name)
    env = os.environ.copy()
    env.update({
        "GIT_AUTHOR_NAME": AUTHOR_NAME,
        "GIT_AUTHOR_EMAIL": AUTHOR_EMAIL,
        "GIT_COMMITTER_NAME": AUTHOR_NAME,
        "GIT_COMMITTER_EMAIL": AUTHOR_EMAIL,
        "GIT_AUTHOR_DATE": f"{timestamp} +0000",
        "GIT_COMMITTER_DATE": f"{timestamp} +0000",
    })
    git(repo, "-c", "commit.gpgsign=false", "commit", "-q", "-m", message, env=env)


def init_repo(repo: Path) -> Path:
    repo.mkdir(parents=True, exist_ok=True)
    git(repo, "init", "-q", "-b", "main")
    git(repo, "config", "user.email", AUTHOR_EMAIL)
    git(repo, "config", "user.name", AUTHOR_NAME)
    return repo


def log_entries(repo: Path) -> list[tuple[str, int, int, str, str, str]]:
    """(subject, author ts, committer ts, author, email, committer email), oldest first."""
    out = git(
        repo, "log", "--all", "--reverse", "--topo-order",
        "--format=%s%x1f%at%x1f%ct%x1f%an%x1f%ae%x1f%ce",
    )
    entries = []
    for line in out.splitlines():
        subject, at, ct, an, ae, ce = line.split("\x1f")
        entries.append((subject, int(at), int(ct), an, ae, ce))
    return entries


def snapshot_tree(root: Path) -> dict[str, bytes]:
    """Every file under *root* with its bytes, for before/after comparisons."""
    files: dict[str, bytes] = {}
    for path in sorted(root.rglob("*")):
        if path.is_file():
            files[str(path.relative_to(root))] = path.read_bytes()
    return files
