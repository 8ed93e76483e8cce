"""Canopy - git worktree manager for the macOS menu bar."""

__version__ = "0.1.0"
