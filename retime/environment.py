"""Check that the external tools a run depends on are reachable."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Iterable

from retime.errors import MissingToolError

log = logging.getLogger(__name__)

# Tool name -> command used to check it
TOOL_CHECKS: dict[str, list[str]] = {
    "git": ["git", "--version"],
    "git-filter-branch": ["git", "filter-branch", "-h"],
    "git-filter-repo": ["git-filter-repo", "--version"],
}

# git filter-branch -h prints usage and exits 129
_CHECK_OK_CODES: dict[str, tuple[int, ...]] = {
    "git-filter-branch": (0, 129),
}


def find_filter_repo() -> str | None:
    """Locate the ``git-filter-repo`` executable.

    Looks on PATH first, then next to the running interpreter, where the
    git-filter-repo distribution installs its script inside a virtualenv
    that is not activated.
    """
    found = shutil.which("git-filter-repo")
    if found:
        return found
    candidate = Path(sys.executable).parent / "git-filter-repo"
    if candidate.is_file() and os.access(candidate, os.X_OK):
        return str(candidate)
    return None


def _resolve_executable(name: str) -> str | None:
    if name == "git-filter-repo":
        return find_filter_repo()
    return shutil.which(name)


def check_tool(name: str) -> str:
    """Run the version check for *name* and return its first line of output.

    Raises :class:`MissingToolError` if the tool cannot be found or the
    check fails.
    """
    cmd = TOOL_CHECKS.get(name)
    if cmd is None:
        raise MissingToolError(f"Unknown tool: {name}")

    executable = _resolve_executable(cmd[0])
    if executable is None:
        raise MissingToolError(
            f"Required dependency not found: {cmd[0]}. "
            "Please install it and ensure it's in your PATH."
        )
    cmd = [executable, *cmd[1:]]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise MissingToolError(f"Could not run {' '.join(cmd)}: {exc}") from exc

    if result.returncode not in _CHECK_OK_CODES.get(name, (0,)):
        raise MissingToolError(
            f"Required dependency not found: {name}. "
            "Please install it and ensure it's in your PATH."
        )
    output = (result.stdout or result.stderr).strip()
    return output.splitlines()[0] if output else ""


def validate_environment(tools: Iterable[str]) -> dict[str, str]:
    """Check every tool in *tools*, in order.

    Returns ``{tool: version line}``. Stops at the first missing tool.
    """
    found: dict[str, str] = {}
    for name in tools:
        if name in found:
            continue
        found[name] = check_tool(name)
        log.debug("Found %s: %s", name, found[name])
    return found
