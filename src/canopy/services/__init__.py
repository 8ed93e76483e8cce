"""Service layer wrapping git, gh and child processes."""

from .config_manager import ConfigManager
from .github_service import GitHubService
from .notification_service import NotificationService
from .process_runner import ProcessRunner
from .process_supervisor import ProcessSupervisor, TrackedProcess
from .sleep_guard import IdleSleepGuard
from .terminal_launcher import TerminalLauncher
from .worktree_service import WorktreeService

__all__ = [
    "ConfigManager",
    "GitHubService",
    "IdleSleepGuard",
    "NotificationService",
    "ProcessRunner",
    "ProcessSupervisor",
    "TerminalLauncher",
    "TrackedProcess",
    "WorktreeService",
]
