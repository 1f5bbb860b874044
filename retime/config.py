"""Load and validate run configuration (.retime.yaml + CLI overrides)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from retime.errors import ConfigurationError
from retime.mapper import DEFAULT_JITTER_MINUTES, SECONDS_PER_DAY, Identity, resolve_compression_ratio

CONFIG_FILENAME = ".retime.yaml"

# Default config values
DEFAULTS: dict[str, Any] = {
    "paths": {
        "source": ".",
        "output": "./compressed-repo",
    },
    "timeline": {
        "start_date": None,
        "end_date": None,
        "compression_ratio": None,
        "original_days": None,
        "target_days": None,
        "allow_expansion": False,
    },
    "rewrite": {
        "strategy": "batch",
        "progress_interval": 100,
    },
    "jitter": {
        "enabled": False,
        "window_minutes": DEFAULT_JITTER_MINUTES,
        "seed": None,
    },
    "anonymize": {
        "enabled": False,
        "name": "Dev Team",
        "email": "dev@company.com",
    },
    "output": {
        "force": False,
        "backup": False,
    },
    "dry_run": False,
    "verbose": False,
    "progress": True,
}

STRATEGY_NAMES = ("per-commit", "batch")


@dataclass(frozen=True)
class RunConfig:
    """Validated, fully resolved settings for one compression run."""

    source: Path
    output: Path
    start_timestamp: int
    compression_ratio: float
    strategy: str = "batch"
    progress_interval: int = 100
    jitter_minutes: int | None = None
    jitter_seed: int | None = None
    identity: Identity | None = None
    force: bool = False
    backup: bool = False
    dry_run: bool = False
    verbose: bool = False
    progress: bool = True

    @property
    def start_date(self) -> datetime:
        return datetime.fromtimestamp(self.start_timestamp, tz=timezone.utc)


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base recursively. Override wins on conflicts."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def parse_date(value: str | datetime, field: str = "date") -> datetime:
    """Parse an ISO-8601 date or datetime. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ConfigurationError(
                f"{field} must be a valid ISO-8601 date, got {value!r}"
            ) from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_number(section: dict, key: str) -> float | None:
    val = section.get(key)
    if val is None:
        return None
    if isinstance(val, bool):
        raise ConfigurationError(f"'{key}' must be a number, got {val!r}")
    try:
        number = float(val)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be a number, got {val!r}") from None
    if not math.isfinite(number):
        raise ConfigurationError(f"'{key}' must be a finite number, got {val!r}")
    return number


def _validate(config: dict) -> None:
    """Validate section shapes and enumerated values."""
    for section in ("paths", "timeline", "rewrite", "jitter", "anonymize", "output"):
        if not isinstance(config.get(section), dict):
            raise ConfigurationError(f"'{section}' must be a mapping")

    strategy = config["rewrite"].get("strategy")
    if strategy not in STRATEGY_NAMES:
        raise ConfigurationError(
            f"Unsupported rewrite strategy '{strategy}'. Built-in: {', '.join(STRATEGY_NAMES)}."
        )

    interval = config["rewrite"].get("progress_interval")
    if not isinstance(interval, int) or isinstance(interval, bool) or interval <= 0:
        raise ConfigurationError(f"'progress_interval' must be a positive integer, got {interval!r}")

    window = config["jitter"].get("window_minutes")
    if not isinstance(window, int) or isinstance(window, bool) or window < 0:
        raise ConfigurationError(f"'window_minutes' must be a non-negative integer, got {window!r}")

    anon = config["anonymize"]
    if anon.get("enabled"):
        for key in ("name", "email"):
            if not isinstance(anon.get(key), str) or not anon[key].strip():
                raise ConfigurationError(f"anonymize '{key}' must be a non-empty string")


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> dict:
    """Load config from *config_path* (or ``./.retime.yaml``) and merge layers.

    An explicit *config_path* must exist; the implicit one is optional.
    *overrides* (CLI/environment values) win over the file, which wins
    over DEFAULTS, so callers always get a full config dict.
    """
    raw: dict = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config not found: {path}")
    else:
        path = Path.cwd() / CONFIG_FILENAME

    if path.exists():
        try:
            with open(path) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config is not valid YAML: {path}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                f"Config must be a YAML mapping, got {type(loaded).__name__}"
            )
        raw = loaded

    config = _deep_merge(DEFAULTS, raw)
    if overrides:
        config = _deep_merge(config, overrides)
    _validate(config)
    return config


def build_run_config(config: dict, now: datetime | None = None) -> RunConfig:
    """Resolve a merged config dict into a :class:`RunConfig`.

    All ratio and date checks happen here, before any I/O. A missing start
    date means "now". An end date stands in for ``target_days`` as the
    span between start and end.
    """
    timeline = config["timeline"]

    if timeline.get("start_date"):
        start = parse_date(timeline["start_date"], "start date")
    else:
        start = (now or datetime.now(timezone.utc)).replace(microsecond=0)

    original_days = _optional_number(timeline, "original_days")
    target_days = _optional_number(timeline, "target_days")
    ratio = _optional_number(timeline, "compression_ratio")

    if timeline.get("end_date"):
        end = parse_date(timeline["end_date"], "end date")
        if end <= start:
            raise ConfigurationError("End date must be after start date")
        if target_days is None:
            target_days = (end - start).total_seconds() / SECONDS_PER_DAY

    compression_ratio = resolve_compression_ratio(
        ratio=ratio,
        original_days=original_days,
        target_days=target_days,
        allow_expansion=bool(timeline.get("allow_expansion")),
    )

    jitter = config["jitter"]
    anon = config["anonymize"]
    identity = Identity(name=anon["name"], email=anon["email"]) if anon.get("enabled") else None

    return RunConfig(
        source=Path(config["paths"]["source"]).expanduser(),
        output=Path(config["paths"]["output"]).expanduser(),
        start_timestamp=int(start.timestamp()),
        compression_ratio=compression_ratio,
        strategy=config["rewrite"]["strategy"],
        progress_interval=config["rewrite"]["progress_interval"],
        jitter_minutes=jitter["window_minutes"] if jitter.get("enabled") else None,
        jitter_seed=jitter.get("seed"),
        identity=identity,
        force=bool(config["output"].get("force")),
        backup=bool(config["output"].get("backup")),
        dry_run=bool(config.get("dry_run")),
        verbose=bool(config.get("verbose")),
        progress=bool(config.get("progress", True)),
    )
