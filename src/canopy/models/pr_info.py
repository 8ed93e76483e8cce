"""Pull request data models for Canopy."""

from dataclasses import dataclass, field
from enum import Enum


class CheckConclusion(Enum):
    """Outcome of a single status check."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    PENDING = "PENDING"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"
    NEUTRAL = "NEUTRAL"
    ACTION_REQUIRED = "ACTION_REQUIRED"
    TIMED_OUT = "TIMED_OUT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_string(cls, value: str | None) -> "CheckConclusion":
        """
        Map a GitHub conclusion string onto the enumeration.

        A missing value means the check has not finished yet (PENDING); a value
        GitHub may add in the future maps to UNKNOWN.
        """
        if not value:
            return cls.PENDING
        try:
            conclusion = cls(value)
        except ValueError:
            return cls.UNKNOWN
        return conclusion


class PRState(Enum):
    """State of a pull request."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    MERGED = "MERGED"

    @classmethod
    def from_string(cls, value: str) -> "PRState":
        try:
            return cls(value)
        except ValueError:
            return cls.OPEN


class MergeableStatus(Enum):
    """Whether GitHub can merge the pull request cleanly."""

    MERGEABLE = "MERGEABLE"
    CONFLICTING = "CONFLICTING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_string(cls, value: str | None) -> "MergeableStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class StatusCheck:
    """A single CI check attached to a pull request."""

    name: str
    conclusion: CheckConclusion


@dataclass(frozen=True)
class PRInfo:
    """
    Pull request information for a worktree branch.

    Attributes:
        number: Pull request number
        url: Web URL of the pull request
        state: Open, closed or merged
        mergeable: Mergeability reported by GitHub
        status_checks: Status check rollup, in the order GitHub returns it
    """

    number: int
    url: str
    state: PRState
    mergeable: MergeableStatus = MergeableStatus.UNKNOWN
    status_checks: tuple[StatusCheck, ...] = field(default_factory=tuple)

    @property
    def passed_checks(self) -> int:
        return sum(
            1 for check in self.status_checks if check.conclusion is CheckConclusion.SUCCESS
        )

    @property
    def total_checks(self) -> int:
        return len(self.status_checks)

    @property
    def checks_all_passed(self) -> bool:
        return self.total_checks > 0 and self.passed_checks == self.total_checks

    @property
    def has_failed_checks(self) -> bool:
        return any(
            check.conclusion is CheckConclusion.FAILURE for check in self.status_checks
        )

    @property
    def has_pending_checks(self) -> bool:
        return any(
            check.conclusion is CheckConclusion.PENDING for check in self.status_checks
        )

    @property
    def is_effectively_passing(self) -> bool:
        """True if every check either succeeded or was skipped."""
        return self.total_checks > 0 and all(
            check.conclusion in (CheckConclusion.SUCCESS, CheckConclusion.SKIPPED)
            for check in self.status_checks
        )

    @property
    def is_open(self) -> bool:
        return self.state is PRState.OPEN

    @property
    def is_merged(self) -> bool:
        return self.state is PRState.MERGED

    def get_checks_display(self) -> str:
        """
        Get a short summary of check progress.

        Returns:
            str: e.g. "3/4 checks", or "" when the PR has no checks
        """
        if not self.status_checks:
            return ""
        return f"{self.passed_checks}/{self.total_checks} checks"
