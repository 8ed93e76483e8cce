"""Data models for the Canopy application."""

from .config import AppConfig
from .pr_info import CheckConclusion, MergeableStatus, PRInfo, PRState, StatusCheck
from .repository import Repository
from .terminal import Terminal
from .worktree import Worktree

__all__ = [
    "AppConfig",
    "CheckConclusion",
    "MergeableStatus",
    "PRInfo",
    "PRState",
    "Repository",
    "StatusCheck",
    "Terminal",
    "Worktree",
]
