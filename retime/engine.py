"""Run driver: validate → snapshot → map → rewrite → finalize."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from pathlib import Path

from retime.config import RunConfig
from retime.environment import validate_environment
from retime.git import list_commits
from retime.mapper import TimelineMapping, build_rewrite_plan
from retime.progress import NullProgress, ProgressReporter
from retime.rewrite import get_strategy
from retime.rewrite.base import RewriteStrategy
from retime.snapshot import (
    backup_output,
    check_output_target,
    ensure_repository,
    finalize_output,
    repository_snapshot,
)
from retime.state import RunState, RunSummary

log = logging.getLogger(__name__)


def _iso(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _make_strategy(config: RunConfig) -> RewriteStrategy:
    if config.strategy == "batch":
        return get_strategy("batch", progress_interval=config.progress_interval)
    return get_strategy(config.strategy)


def compress_history(
    config: RunConfig,
    progress: ProgressReporter | None = None,
    rng: random.Random | None = None,
    snapshot_parent: Path | None = None,
) -> RunSummary:
    """Compress the timeline of ``config.source`` into ``config.output``.

    Parameters
    ----------
    config:
        Validated run settings (see :func:`retime.config.build_run_config`).
    progress:
        Observer for copy and rewrite progress. Defaults to no output.
    rng:
        Random source for jitter. Defaults to one seeded from
        ``config.jitter_seed``.
    snapshot_parent:
        Directory to create the temporary clone in (default: system temp).

    Returns
    -------
    RunSummary
        Counters and timings for the run. Fatal problems raise a
        :class:`retime.errors.RetimeError` subclass instead.
    """
    progress = progress or NullProgress()
    if rng is None:
        rng = random.Random(config.jitter_seed)

    strategy = _make_strategy(config)
    state = RunState(strategy=strategy.name)

    log.info("Starting git timeline compression")
    log.info("Compression ratio: %.3f", config.compression_ratio)

    validate_environment(("git",) if config.dry_run else strategy.required_tools)
    source = ensure_repository(config.source)
    output = Path(config.output)

    def _summary(mapping: TimelineMapping | None = None, backup: Path | None = None) -> RunSummary:
        return RunSummary.from_state(
            state,
            compression_ratio=config.compression_ratio,
            source=source,
            output=output,
            original_days=mapping.original_days if mapping else 0.0,
            target_days=mapping.target_days if mapping else 0.0,
            dry_run=config.dry_run,
            backup_path=backup,
        )

    if config.dry_run:
        commits = list_commits(source)
        state.total_commits = len(commits)
        if not commits:
            log.warning("No commits found. Nothing to compress.")
            return _summary()
        mapping = TimelineMapping.from_commits(
            commits, config.start_timestamp, config.compression_ratio
        )
        _log_timeline(mapping)
        log.info("DRY RUN: would apply the following changes:")
        log.info("Original timeline: %.2f days", mapping.original_days)
        log.info("Target timeline: %.2f days", mapping.target_days)
        for rewrite in build_rewrite_plan(
            commits, mapping, jitter_minutes=config.jitter_minutes,
            identity=config.identity, rng=rng,
        ):
            log.debug(
                "%s %s -> %s",
                rewrite.commit.hash[:8], _iso(rewrite.commit.timestamp), _iso(rewrite.new_timestamp),
            )
        return _summary(mapping)

    check_output_target(output, config.force)

    backup: Path | None = None
    if config.backup:
        if output.exists():
            backup = backup_output(output, progress)
            log.info("Backup created successfully")
        else:
            log.warning("No output directory to back up (first run)")

    with repository_snapshot(source, parent=snapshot_parent) as snap:
        commits = list_commits(snap.repo)
        state.total_commits = len(commits)
        log.info("Found %d commits to process", len(commits))
        if not commits:
            log.warning("No commits found. Nothing to compress.")
            return _summary(backup=backup)

        mapping = TimelineMapping.from_commits(
            commits, config.start_timestamp, config.compression_ratio
        )
        _log_timeline(mapping)
        plan = build_rewrite_plan(
            commits,
            mapping,
            jitter_minutes=config.jitter_minutes,
            identity=config.identity,
            rng=rng,
        )

        strategy.rewrite(snap.repo, plan, state, progress, scratch_dir=snap.root)
        if state.error_count:
            log.warning(
                "Date compression completed with %d error(s)", state.error_count
            )
        else:
            log.info("Date compression completed")

        finalize_output(snap.repo, output)

    return _summary(mapping, backup)


def _log_timeline(mapping: TimelineMapping) -> None:
    log.info(
        "Original timeline: %s to %s (%.2f days)",
        _iso(mapping.original_start), _iso(mapping.original_end), mapping.original_days,
    )
    log.info(
        "Target timeline: %s to %s (%.2f days)",
        _iso(mapping.start_timestamp), _iso(mapping.end_timestamp),
        mapping.target_days,
    )
