"""Worktree data model for Canopy."""

from dataclasses import dataclass
from pathlib import Path

from .pr_info import PRInfo


@dataclass
class Worktree:
    """
    Represents a git worktree checked out on a branch.

    The worktree's identity is its path as reported by ``git worktree list``;
    paths are unique within one repository.

    Attributes:
        path: Absolute filesystem path to the worktree
        branch_name: Branch checked out in the worktree
        is_dirty: Whether there are uncommitted changes
        pr_info: Pull request attached by branch name, if any
    """

    path: str
    branch_name: str
    is_dirty: bool = False
    pr_info: PRInfo | None = None

    @property
    def id(self) -> str:
        return self.path

    def get_directory_name(self) -> str:
        """
        Get the directory name of the worktree.

        Returns:
            str: Directory name
        """
        return Path(self.path).name

    def get_status_display(self) -> str:
        """
        Get a human-readable status display string.

        Returns:
            str: "modified" or "clean", followed by the PR number when one is attached
        """
        status_parts = ["modified" if self.is_dirty else "clean"]

        if self.pr_info is not None:
            status_parts.append(f"#{self.pr_info.number}")

        return " | ".join(status_parts)

    def __str__(self) -> str:
        return f"Worktree(path='{self.get_directory_name()}', branch='{self.branch_name}')"
