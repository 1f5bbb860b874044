"""Disposable repository snapshots, output backups and final materialization.

The source repository is only ever read: every rewrite happens in a fresh
clone under a unique temporary directory that is removed when the run
ends, whether it succeeded or not. The output location is touched last,
after the rewrite has completed.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

from retime.errors import NotARepositoryError, OutputExistsError, SnapshotError
from retime.git import GitCommandError, is_repository, localize_branches, run_git
from retime.progress import NullProgress, ProgressReporter

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """A temporary clone. *root* holds *repo* plus scratch files."""

    root: Path
    repo: Path

    def scratch_path(self, name: str) -> Path:
        return self.root / name


def ensure_repository(source: Path) -> Path:
    """Return the resolved *source*, or raise if it has no git history."""
    path = Path(source).expanduser().resolve()
    if not path.exists():
        raise NotARepositoryError(f"Source directory '{source}' does not exist.")
    if not is_repository(path):
        raise NotARepositoryError(
            f"No git repository found at '{source}'. Cannot compress git history."
        )
    return path


def check_output_target(output: Path, force: bool) -> None:
    """Refuse to continue when *output* exists and *force* is off."""
    if Path(output).exists() and not force:
        raise OutputExistsError(
            f"Output directory '{output}' already exists. Use --force to overwrite."
        )


def count_files(root: Path) -> int:
    """Count regular files (and symlinks) under *root*."""
    total = 0
    for _dirpath, _dirnames, filenames in os.walk(root):
        total += len(filenames)
    return total


def _backup_path_for(output: Path, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    candidate = output.with_name(f"{output.name}_backup_{stamp}")
    n = 1
    while candidate.exists():
        candidate = output.with_name(f"{output.name}_backup_{stamp}_{n}")
        n += 1
    return candidate


def backup_output(
    output: Path,
    progress: ProgressReporter | None = None,
    now: datetime | None = None,
) -> Path:
    """Copy the existing *output* to a timestamped sibling directory.

    Must run before anything overwrites *output*. Any copy failure raises
    :class:`SnapshotError`; the partial backup is removed.
    """
    output = Path(output)
    progress = progress or NullProgress()
    backup = _backup_path_for(output, now)
    log.info("Creating backup at: %s", backup)

    def _copy(src: str, dst: str) -> str:
        result = shutil.copy2(src, dst)
        progress.advance()
        return result

    progress.start(count_files(output), "Creating backup")
    try:
        shutil.copytree(output, backup, symlinks=True, copy_function=_copy)
    except (OSError, shutil.Error) as exc:
        shutil.rmtree(backup, ignore_errors=True)
        raise SnapshotError(f"Backup of '{output}' failed: {exc}") from exc
    finally:
        progress.finish()
    return backup


@contextmanager
def repository_snapshot(source: Path, parent: Path | None = None) -> Iterator[Snapshot]:
    """Clone *source* into a unique temp directory; remove it on exit.

    The clone is complete (no filtering, no hardlinks into the source's
    object store) and carries every source branch and tag as a local ref.
    """
    root = Path(tempfile.mkdtemp(prefix="retime-", dir=str(parent) if parent else None))
    repo = root / "repo"
    try:
        log.info("Creating temporary repository at %s", repo)
        try:
            run_git(None, ["clone", "--quiet", "--no-hardlinks", str(source), str(repo)])
            localize_branches(repo)
        except GitCommandError as exc:
            raise SnapshotError(f"Could not clone '{source}': {exc}") from exc
        yield Snapshot(root=root, repo=repo)
    finally:
        shutil.rmtree(root, ignore_errors=True)
        log.info("Removed temporary repository %s", root)


def finalize_output(snapshot_repo: Path, output: Path) -> Path:
    """Materialize the rewritten snapshot at *output*.

    Clones into a staging sibling first, so an existing *output* is only
    replaced once a complete copy is ready.
    """
    output = Path(output).resolve()
    staging = output.with_name(f".{output.name}.retime-staging")
    if staging.exists():
        shutil.rmtree(staging)
    output.parent.mkdir(parents=True, exist_ok=True)

    log.info("Creating final repository at %s", output)
    try:
        run_git(None, ["clone", "--quiet", "--no-hardlinks", str(snapshot_repo), str(staging)])
        localize_branches(staging)
    except GitCommandError as exc:
        shutil.rmtree(staging, ignore_errors=True)
        raise SnapshotError(f"Could not create output repository: {exc}") from exc

    if output.exists():
        shutil.rmtree(output)
    staging.rename(output)
    return output
