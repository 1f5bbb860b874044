"""History rewrite strategies.

Two interchangeable implementations of one contract, selected by name:

- ``per-commit``: one ``git filter-branch`` pass per commit. A failing
  commit is counted and skipped.
- ``batch``: one ``git filter-repo`` pass driven by a generated callback.
  Any failure aborts the run.

Both operate only on a disposable snapshot and first discard uncommitted
changes in it.
"""

from retime.rewrite.base import RewriteStrategy, format_git_date
from retime.rewrite.batch import BatchStrategy
from retime.rewrite.per_commit import PerCommitStrategy

STRATEGIES: dict[str, type[RewriteStrategy]] = {
    PerCommitStrategy.name: PerCommitStrategy,
    BatchStrategy.name: BatchStrategy,
}


def get_strategy(name: str, **kwargs) -> RewriteStrategy:
    """Instantiate the strategy registered under *name*."""
    try:
        cls = STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown rewrite strategy '{name}'. Built-in: {', '.join(sorted(STRATEGIES))}."
        ) from None
    return cls(**kwargs)


__all__ = [
    "BatchStrategy",
    "PerCommitStrategy",
    "RewriteStrategy",
    "STRATEGIES",
    "format_git_date",
    "get_strategy",
]
