"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import pytest

from helpers import BASE_TS, DAY, commit_at, init_repo


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[..., Path]:
    """Factory: ``make_repo(offsets_in_days, name="source")`` -> repo path."""

    def _make(
        offsets_days: Sequence[float] = (0, 1, 3, 10, 25),
        name: str = "source",
        base: int = BASE_TS,
    ) -> Path:
        repo = init_repo(tmp_path / name)
        for i, offset in enumerate(offsets_days):
            commit_at(repo, base + int(offset * DAY), f"commit {i}")
        return repo

    return _make
