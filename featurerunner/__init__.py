"""Parallel feature runner: isolated git worktrees driven by coding agents."""

__version__ = "1.0.0"
