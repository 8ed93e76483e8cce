"""Custom exceptions for the application."""

from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Error severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for better classification."""

    GIT_OPERATION = "git_operation"
    GITHUB = "github"
    FILE_SYSTEM = "file_system"
    CONFIGURATION = "configuration"
    COMMAND_EXECUTION = "command_execution"
    PROCESS = "process"
    SERVICE = "service"


class CanopyError(Exception):
    """Base exception for Canopy."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SERVICE,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.user_message = user_message or message

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "user_message": self.user_message,
            "type": self.__class__.__name__,
        }


class CommandExecutionError(CanopyError):
    """Exception raised when an external program cannot be run to completion."""

    def __init__(self, message: str, command: str | None = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.COMMAND_EXECUTION)
        super().__init__(message, **kwargs)
        self.command = command
        if command:
            self.details.update({"command": command})


class ProcessExecutionError(CommandExecutionError):
    """Exception raised when an external program exits with a non-zero status."""

    def __init__(
        self,
        exit_code: int,
        stderr: str,
        command: str | None = None,
        stdout: str = "",
    ):
        super().__init__(
            f"Process failed with code {exit_code}: {stderr.strip()}",
            command=command,
        )
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        self.details.update({"exit_code": exit_code, "stderr": stderr})


class WorktreeError(CanopyError):
    """Exception for git worktree failures."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.GIT_OPERATION)
        super().__init__(message, **kwargs)


class WorktreeParseError(WorktreeError):
    """Exception for malformed git input or output."""

    def __init__(self, message: str):
        super().__init__(f"Failed to parse git output: {message}")


class WorktreeNotFoundError(WorktreeError):
    """Exception raised when no worktree is checked out on a branch."""

    def __init__(self, branch: str):
        super().__init__(
            f"Worktree not found for branch: {branch}",
            details={"branch": branch},
        )
        self.branch = branch


class GitHubErrorKind(Enum):
    """Failure classes of the GitHub CLI."""

    NOT_INSTALLED = "not_installed"
    NOT_AUTHENTICATED = "not_authenticated"
    NO_PR_FOR_BRANCH = "no_pr_for_branch"
    RATE_LIMITED = "rate_limited"
    PARSE_ERROR = "parse_error"
    API_ERROR = "api_error"


_GITHUB_USER_MESSAGES = {
    GitHubErrorKind.NOT_INSTALLED: "GitHub CLI not installed. Install via: brew install gh",
    GitHubErrorKind.NOT_AUTHENTICATED: "GitHub CLI not authenticated. Run: gh auth login",
    GitHubErrorKind.NO_PR_FOR_BRANCH: "",
    GitHubErrorKind.RATE_LIMITED: "GitHub API rate limit exceeded. PR info may be stale.",
    GitHubErrorKind.PARSE_ERROR: "Failed to parse GitHub response.",
}


class GitHubError(CanopyError):
    """Exception for GitHub CLI failures."""

    def __init__(self, kind: GitHubErrorKind, detail: str = ""):
        if kind is GitHubErrorKind.API_ERROR:
            user_message = f"GitHub API error: {detail}"
        else:
            user_message = _GITHUB_USER_MESSAGES[kind]
        super().__init__(
            detail or kind.value,
            category=ErrorCategory.GITHUB,
            severity=(
                ErrorSeverity.INFO
                if kind is GitHubErrorKind.NO_PR_FOR_BRANCH
                else ErrorSeverity.WARNING
            ),
            details={"kind": kind.value},
            user_message=user_message,
        )
        self.kind = kind
        self.detail = detail

    @property
    def should_show_banner(self) -> bool:
        """Whether the error is worth surfacing to the user."""
        return self.kind is not GitHubErrorKind.NO_PR_FOR_BRANCH

    def __eq__(self, other) -> bool:
        if not isinstance(other, GitHubError):
            return NotImplemented
        return self.kind is other.kind and self.detail == other.detail

    def __hash__(self) -> int:
        return hash((self.kind, self.detail))

    def __repr__(self) -> str:
        return f"GitHubError(kind={self.kind.name}, detail={self.detail!r})"


class ConfigurationError(CanopyError):
    """Exception for configuration-related errors."""

    def __init__(self, message: str, config_file: str | None = None, **kwargs):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        self.config_file = config_file
        if config_file:
            self.details.update({"config_file": config_file})


class PathError(CanopyError):
    """Exception for path-related errors."""

    def __init__(self, message: str, path: str | None = None, **kwargs):
        super().__init__(message, category=ErrorCategory.FILE_SYSTEM, **kwargs)
        self.path = path
        if path:
            self.details.update({"path": path})


class ProcessSupervisorError(CanopyError):
    """Exception raised when a supervised process cannot be started."""

    def __init__(self, message: str, worktree_path: str | None = None, **kwargs):
        super().__init__(message, category=ErrorCategory.PROCESS, **kwargs)
        self.worktree_path = worktree_path
        if worktree_path:
            self.details.update({"worktree_path": worktree_path})
