"""Error taxonomy for the timeline compression engine.

Everything except :class:`CommitRewriteError` is fatal: it propagates to
the caller and the CLI exits non-zero. ``CommitRewriteError`` is collected
in :class:`retime.state.RunState` and reported in the run summary.
"""

from __future__ import annotations


class RetimeError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(RetimeError):
    """Raised when ratio, day, date or range inputs are invalid or missing."""


class MissingToolError(RetimeError):
    """Raised when a required external executable is not reachable."""


class NotARepositoryError(RetimeError):
    """Raised when the source directory holds no recoverable git history."""


class OutputExistsError(RetimeError):
    """Raised when the output location exists and overwrite was not requested."""


class SnapshotError(RetimeError):
    """Raised when cloning, backing up or materializing a repository fails."""


class CommitRewriteError(RetimeError):
    """A single commit could not be rewritten (per-commit strategy only)."""

    def __init__(self, commit_hash: str, message: str) -> None:
        super().__init__(f"{commit_hash[:8]}: {message}")
        self.commit_hash = commit_hash
        self.detail = message


class BatchRewriteError(RetimeError):
    """The single-pass rewrite process exited non-zero."""

    def __init__(self, returncode: int, stderr: str = "") -> None:
        message = f"History rewrite failed (exit code {returncode})"
        if stderr:
            message += f": {stderr}"
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
