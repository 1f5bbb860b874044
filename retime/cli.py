"""CLI entry point for retime."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import click
from click.core import ParameterSource

from retime import __version__

# Default config template
CONFIG_TEMPLATE = """\
paths:
  source: .
  output: ./compressed-repo

timeline:
  start_date: null  # ISO-8601, e.g. 2025-06-18T09:00:00 (default: now, UTC)
  end_date: null  # Optional; stands in for target_days as start..end
  compression_ratio: null  # 0 < ratio <= 1; wins over the day pair
  original_days: null
  target_days: null
  allow_expansion: false  # Permit compression_ratio > 1

rewrite:
  strategy: batch  # batch (git filter-repo) | per-commit (git filter-branch)
  progress_interval: 100

jitter:
  enabled: false
  window_minutes: 120
  seed: null

anonymize:
  enabled: false
  name: Dev Team
  email: dev@company.com

output:
  force: false
  backup: false
"""

# CLI option name -> path in the config dict
_OVERRIDE_PATHS: dict[str, tuple[str, ...]] = {
    "source": ("paths", "source"),
    "output": ("paths", "output"),
    "start_date": ("timeline", "start_date"),
    "end_date": ("timeline", "end_date"),
    "compression_ratio": ("timeline", "compression_ratio"),
    "original_days": ("timeline", "original_days"),
    "target_days": ("timeline", "target_days"),
    "allow_expansion": ("timeline", "allow_expansion"),
    "strategy": ("rewrite", "strategy"),
    "progress_interval": ("rewrite", "progress_interval"),
    "jitter": ("jitter", "enabled"),
    "jitter_minutes": ("jitter", "window_minutes"),
    "seed": ("jitter", "seed"),
    "anonymize": ("anonymize", "enabled"),
    "author_name": ("anonymize", "name"),
    "author_email": ("anonymize", "email"),
    "force": ("output", "force"),
    "backup": ("output", "backup"),
    "dry_run": ("dry_run",),
    "verbose": ("verbose",),
    "progress": ("progress",),
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _collect_overrides(ctx: click.Context, params: dict[str, Any]) -> dict[str, Any]:
    """Nest every option the user actually supplied (flag or env var)."""
    overrides: dict[str, Any] = {}
    for name, path in _OVERRIDE_PATHS.items():
        source = ctx.get_parameter_source(name)
        if source in (None, ParameterSource.DEFAULT):
            continue
        node = overrides
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = params[name]
    return overrides


@click.group()
@click.version_option(__version__, prog_name="retime")
def cli() -> None:
    """retime: compress a git history onto a new timeline."""


@cli.command()
@click.option(
    "--path",
    "config_path",
    type=click.Path(dir_okay=False, resolve_path=True),
    default=".retime.yaml",
    help="Where to write the config template (default: ./.retime.yaml).",
)
def init(config_path: str) -> None:
    """Write a commented .retime.yaml config template."""
    path = Path(config_path)
    if path.exists():
        click.echo(f"{path.name} already exists at {path}")
        raise SystemExit(1)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CONFIG_TEMPLATE)
    click.echo(f"Created {path}")

    # Load config through the standard path to validate it
    from retime.config import load_config
    load_config(path)

    click.echo("\nEdit the file, then run: retime compress --config " + str(path))


@cli.command()
@click.option(
    "--strategy",
    type=click.Choice(["per-commit", "batch"]),
    default=None,
    help="Only check the tools this strategy needs (default: all).",
)
def check(strategy: str | None) -> None:
    """Verify the external tools needed for a rewrite are installed."""
    from retime.environment import TOOL_CHECKS, validate_environment
    from retime.errors import MissingToolError
    from retime.rewrite import STRATEGIES

    if strategy:
        tools: tuple[str, ...] = STRATEGIES[strategy].required_tools
    else:
        tools = tuple(TOOL_CHECKS)

    try:
        found = validate_environment(tools)
    except MissingToolError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo("Environment: OK")
    for name, version in found.items():
        click.echo(f"  {name}: {version or 'available'}")


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML config file (default: ./.retime.yaml if present).")
@click.option("--source", "-s", envvar="RETIME_SOURCE", type=click.Path(), default=None,
              help="Source repository (default: .).")
@click.option("--output", "-o", envvar="RETIME_OUTPUT", type=click.Path(), default=None,
              help="Output directory (default: ./compressed-repo).")
@click.option("--start-date", envvar="RETIME_START_DATE", default=None,
              help="New timeline start, ISO-8601 (default: now, UTC).")
@click.option("--end-date", envvar="RETIME_END_DATE", default=None,
              help="New timeline end, ISO-8601; implies target days.")
@click.option("--compression-ratio", envvar="RETIME_COMPRESSION_RATIO", type=float, default=None,
              help="Compression ratio between 0 and 1.")
@click.option("--original-days", envvar="RETIME_ORIGINAL_DAYS", type=float, default=None,
              help="Original timeline in days.")
@click.option("--target-days", envvar="RETIME_TARGET_DAYS", type=float, default=None,
              help="Target timeline in days.")
@click.option("--allow-expansion", is_flag=True, default=False,
              help="Accept a compression ratio above 1 (stretch the timeline).")
@click.option("--strategy", type=click.Choice(["per-commit", "batch"]), default=None,
              help="Rewrite strategy (default: batch).")
@click.option("--progress-interval", type=click.IntRange(min=1), default=None,
              help="Batch strategy: report progress every N commits.")
@click.option("--anonymize", is_flag=True, default=False,
              help="Replace author/committer identity on every commit.")
@click.option("--author-name", default=None, help="Placeholder name used by --anonymize.")
@click.option("--author-email", default=None, help="Placeholder email used by --anonymize.")
@click.option("--jitter", is_flag=True, default=False,
              help="Randomly shift each timestamp (may reorder close commits).")
@click.option("--jitter-minutes", type=click.IntRange(min=0), default=None,
              help="Jitter window in minutes (default: 120).")
@click.option("--seed", type=int, default=None, help="Random seed for reproducible jitter.")
@click.option("--backup", envvar="RETIME_BACKUP", is_flag=True, default=False,
              help="Copy an existing output directory aside before overwriting it.")
@click.option("--force", envvar="RETIME_FORCE", is_flag=True, default=False,
              help="Overwrite an existing output directory.")
@click.option("--dry-run", envvar="RETIME_DRY_RUN", is_flag=True, default=False,
              help="Report the mapping without writing anything.")
@click.option("--verbose", "-v", envvar="RETIME_VERBOSE", is_flag=True, default=False,
              help="Enable debug logging.")
@click.option("--progress/--no-progress", default=True,
              help="Show or hide the progress bar.")
@click.pass_context
def compress(ctx: click.Context, config_path: str | None, **params: Any) -> None:
    """Rewrite commit dates onto a compressed timeline.

    The source repository is never modified: history is rewritten in a
    temporary clone and the result is written to the output directory.
    """
    from retime.config import build_run_config, load_config
    from retime.engine import compress_history
    from retime.errors import RetimeError
    from retime.progress import NullProgress, TextProgress

    overrides = _collect_overrides(ctx, params)
    try:
        config = load_config(Path(config_path) if config_path else None, overrides)
        run_config = build_run_config(config)
    except RetimeError as exc:
        raise click.ClickException(str(exc)) from exc

    _configure_logging(run_config.verbose)
    progress = TextProgress() if run_config.progress else NullProgress()

    try:
        summary = compress_history(run_config, progress=progress)
    except RetimeError as exc:
        logging.getLogger(__name__).error("Fatal error: %s", exc)
        raise click.ClickException(str(exc)) from exc

    rule = "=" * 60
    click.echo("\n" + rule)
    click.echo("GIT TIMELINE COMPRESSION - " + ("DRY RUN" if summary.dry_run else "COMPLETED"))
    click.echo(rule)
    click.echo("Statistics:")
    click.echo(f"  Strategy: {summary.strategy}")
    click.echo(f"  Total commits: {summary.total_commits}")
    click.echo(f"  Processed commits: {summary.processed_commits}")
    click.echo(f"  Errors: {summary.error_count}")
    click.echo(f"  Duration: {summary.duration_seconds:.2f} seconds")
    click.echo(f"  Original timeline: {summary.original_days:.2f} days")
    click.echo(f"  Target timeline: {summary.target_days:.2f} days")
    if not summary.dry_run:
        click.echo(f"\nOutput location: {summary.output.resolve()}")
    if summary.backup_path:
        click.echo(f"Backup: {summary.backup_path}")
    click.echo("Configuration:")
    click.echo(f"  Source: {summary.source}")
    click.echo(f"  Compression ratio: {summary.compression_ratio:.3f}")
    click.echo(f"  Start date: {run_config.start_date.isoformat()}")
    if summary.failures:
        click.echo(f"\nFailed commits ({len(summary.failures)}):")
        for failure in summary.failures:
            click.echo(f"  {failure}")
    click.echo(rule)