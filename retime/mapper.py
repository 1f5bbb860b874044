"""Timestamp mapping: project original commit times onto a new timeline.

Pure functions, no I/O. The proportional mapping is::

    new_t = start + (t - original_start) / original_duration * target_duration

with ``target_duration = original_duration * compression_ratio``. Output is
floored to whole seconds, the resolution of git timestamps.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Iterable, Sequence

from retime.errors import ConfigurationError

SECONDS_PER_DAY = 86_400

DEFAULT_JITTER_MINUTES = 120


@dataclass(frozen=True)
class CommitRecord:
    """One historical commit, as enumerated from the source history."""

    hash: str
    timestamp: int
    author: str
    email: str
    message: str


@dataclass(frozen=True)
class Identity:
    """Placeholder author/committer written over every rewritten commit."""

    name: str = "Dev Team"
    email: str = "dev@company.com"


@dataclass(frozen=True)
class CommitRewrite:
    """Planned rewrite for a single commit."""

    commit: CommitRecord
    new_timestamp: int
    identity: Identity | None = None


def resolve_compression_ratio(
    ratio: float | None = None,
    original_days: float | None = None,
    target_days: float | None = None,
    allow_expansion: bool = False,
) -> float:
    """Return the compression ratio from an explicit value or a day pair.

    An explicit *ratio* wins. Otherwise the ratio is
    ``target_days / original_days``. Raises :class:`ConfigurationError`
    when neither form is usable, when a day count is non-positive, or when
    an explicit ratio falls outside ``(0, 1]`` and *allow_expansion* is off.
    """
    if ratio is not None:
        if not math.isfinite(ratio):
            raise ConfigurationError(f"Compression ratio must be a finite number, got {ratio}")
        if ratio <= 0:
            raise ConfigurationError(f"Compression ratio must be positive, got {ratio}")
        if ratio > 1 and not allow_expansion:
            raise ConfigurationError(
                f"Compression ratio must be between 0 and 1, got {ratio}. "
                "Enable expansion to stretch the timeline."
            )
        return float(ratio)

    if original_days is None or target_days is None:
        raise ConfigurationError(
            "Unable to calculate compression ratio: provide a compression ratio, "
            "or both original days and target days (or an end date)."
        )
    for label, days in (("Original days", original_days), ("Target days", target_days)):
        if not math.isfinite(days):
            raise ConfigurationError(f"{label} must be a finite number, got {days}")
    if original_days <= 0:
        raise ConfigurationError(f"Original days must be positive, got {original_days}")
    if target_days <= 0:
        raise ConfigurationError(f"Target days must be positive, got {target_days}")
    ratio = target_days / original_days
    if not math.isfinite(ratio):
        raise ConfigurationError(
            f"Compression ratio {target_days} / {original_days} is out of range"
        )
    return ratio


def _floor_seconds(value: float) -> int:
    # Round to microseconds first so 604799.9999999999 floors to 604800.
    return math.floor(round(value, 6))


@dataclass(frozen=True)
class TimelineMapping:
    """Bounds of the original history and the target timeline."""

    original_start: int
    original_end: int
    compression_ratio: float
    start_timestamp: int

    @classmethod
    def from_timestamps(
        cls,
        timestamps: Iterable[int],
        start_timestamp: int,
        compression_ratio: float,
    ) -> TimelineMapping:
        values = list(timestamps)
        if not values:
            raise ValueError("Cannot build a timeline mapping from zero timestamps")
        return cls(
            original_start=min(values),
            original_end=max(values),
            compression_ratio=compression_ratio,
            start_timestamp=start_timestamp,
        )

    @classmethod
    def from_commits(
        cls,
        commits: Sequence[CommitRecord],
        start_timestamp: int,
        compression_ratio: float,
    ) -> TimelineMapping:
        return cls.from_timestamps(
            (c.timestamp for c in commits), start_timestamp, compression_ratio
        )

    @property
    def original_duration(self) -> int:
        return self.original_end - self.original_start

    @property
    def target_duration(self) -> float:
        return self.original_duration * self.compression_ratio

    @property
    def end_timestamp(self) -> int:
        return self.start_timestamp + _floor_seconds(self.target_duration)

    @property
    def original_days(self) -> float:
        return self.original_duration / SECONDS_PER_DAY

    @property
    def target_days(self) -> float:
        return self.target_duration / SECONDS_PER_DAY

    def map(self, timestamp: int) -> int:
        """Map one original timestamp onto the target timeline.

        A zero-duration history (one commit, or all commits at the same
        instant) maps every commit to ``start_timestamp``.
        """
        if self.original_duration == 0:
            return self.start_timestamp
        offset = (timestamp - self.original_start) / self.original_duration
        return self.start_timestamp + _floor_seconds(offset * self.target_duration)


def map_timestamps(
    timestamps: Sequence[int],
    start_timestamp: int,
    compression_ratio: float,
) -> list[int]:
    """Map every timestamp in *timestamps*, preserving input order."""
    if not timestamps:
        return []
    mapping = TimelineMapping.from_timestamps(timestamps, start_timestamp, compression_ratio)
    return [mapping.map(t) for t in timestamps]


def jitter_timestamp(
    timestamp: int,
    window_minutes: int = DEFAULT_JITTER_MINUTES,
    rng: random.Random | None = None,
) -> int:
    """Shift *timestamp* by a random whole number of minutes in ``[-w, +w]``.

    Each call draws independently, so two commits closer together than the
    window may swap order after jitter. Callers get best-effort ordering
    only; this loss is accepted.
    """
    if window_minutes <= 0:
        return timestamp
    rng = rng or random.Random()
    return timestamp + rng.randint(-window_minutes, window_minutes) * 60


def build_rewrite_plan(
    commits: Sequence[CommitRecord],
    mapping: TimelineMapping,
    jitter_minutes: int | None = None,
    identity: Identity | None = None,
    rng: random.Random | None = None,
) -> list[CommitRewrite]:
    """Compute the new timestamp (and identity) of every commit.

    *commits* must be in ancestry order (oldest first); the plan keeps that
    order. Jitter is applied after the proportional mapping when
    *jitter_minutes* is set.
    """
    if jitter_minutes:
        rng = rng or random.Random()
    plan: list[CommitRewrite] = []
    for commit in commits:
        new_ts = mapping.map(commit.timestamp)
        if jitter_minutes:
            new_ts = jitter_timestamp(new_ts, jitter_minutes, rng)
        plan.append(CommitRewrite(commit=commit, new_timestamp=new_ts, identity=identity))
    return plan
