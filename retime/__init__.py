"""retime: compress or expand the timeline of a git history."""

__version__ = "0.1.0"
