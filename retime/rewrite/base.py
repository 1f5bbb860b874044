"""Common interface of the rewrite strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from retime.mapper import CommitRewrite
from retime.progress import ProgressReporter
from retime.state import RunState


class RewriteStrategy(ABC):
    """Apply a rewrite plan to every commit of a snapshot repository."""

    name: str = ""
    required_tools: tuple[str, ...] = ("git",)

    @abstractmethod
    def rewrite(
        self,
        repo: Path,
        plan: Sequence[CommitRewrite],
        state: RunState,
        progress: ProgressReporter,
        scratch_dir: Path | None = None,
    ) -> None:
        """Rewrite *repo* in place according to *plan* (ancestry order).

        *scratch_dir* is a directory outside the repository the strategy
        may write temporary files to.
        """


def format_git_date(timestamp: int) -> str:
    """Raw git date (``<seconds> +0000``) for a UTC timestamp."""
    return f"{int(timestamp)} +0000"
