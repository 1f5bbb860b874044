"""Per-run mutable counters and the end-of-run summary."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path

from retime.errors import CommitRewriteError


@dataclass
class RunState:
    """Counters for one run. Created at run start, never persisted."""

    strategy: str
    total_commits: int = 0
    processed_commits: int = 0
    error_count: int = 0
    failures: list[CommitRewriteError] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    def record_success(self) -> None:
        self.processed_commits += 1

    def record_failure(self, error: CommitRewriteError) -> None:
        self.processed_commits += 1
        self.error_count += 1
        self.failures.append(error)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


@dataclass(frozen=True)
class RunSummary:
    """What the CLI prints when a run ends."""

    total_commits: int
    processed_commits: int
    error_count: int
    duration_seconds: float
    compression_ratio: float
    strategy: str
    source: Path
    output: Path
    original_days: float = 0.0
    target_days: float = 0.0
    dry_run: bool = False
    backup_path: Path | None = None
    failures: tuple[str, ...] = ()

    @classmethod
    def from_state(
        cls,
        state: RunState,
        *,
        compression_ratio: float,
        source: Path,
        output: Path,
        original_days: float = 0.0,
        target_days: float = 0.0,
        dry_run: bool = False,
        backup_path: Path | None = None,
    ) -> RunSummary:
        return cls(
            total_commits=state.total_commits,
            processed_commits=state.processed_commits,
            error_count=state.error_count,
            duration_seconds=state.elapsed,
            compression_ratio=compression_ratio,
            strategy=state.strategy,
            source=source,
            output=output,
            original_days=original_days,
            target_days=target_days,
            dry_run=dry_run,
            backup_path=backup_path,
            failures=tuple(str(f) for f in state.failures),
        )
