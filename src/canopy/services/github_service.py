"""Pull request status via the GitHub CLI."""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from ..models.pr_info import (
    CheckConclusion,
    MergeableStatus,
    PRInfo,
    PRState,
    StatusCheck,
)
from ..utils.exceptions import (
    CommandExecutionError,
    GitHubError,
    GitHubErrorKind,
    ProcessExecutionError,
)
from .base import BaseService
from .process_runner import ENV_EXECUTABLE, ProcessRunner

logger = logging.getLogger(__name__)

PR_VIEW_FIELDS = "number,state,mergeable,statusCheckRollup,url"

# Current gh wording; update together with tests/test_github_service.py.
NO_PR_SIGNATURES = ("no pull requests found", "Could not resolve")
RATE_LIMIT_SIGNATURE = "rate limit"
AUTH_SIGNATURE = "auth"


def classify_gh_failure(exit_code: int, message: str) -> GitHubError:
    """
    Classify a failed `gh pr view` invocation by its exit code and stderr.

    Args:
        exit_code: Exit status of gh
        message: Captured standard error

    Returns:
        GitHubError: Classified error
    """
    if exit_code == 1 and any(sig in message for sig in NO_PR_SIGNATURES):
        return GitHubError(GitHubErrorKind.NO_PR_FOR_BRANCH)
    if RATE_LIMIT_SIGNATURE in message:
        return GitHubError(GitHubErrorKind.RATE_LIMITED)
    if AUTH_SIGNATURE in message:
        return GitHubError(GitHubErrorKind.NOT_AUTHENTICATED)
    return GitHubError(GitHubErrorKind.API_ERROR, message.strip())


def _parse_status_check(check: dict[str, Any]) -> StatusCheck:
    # CheckRuns carry name/conclusion, legacy StatusContexts carry context/state.
    name = check.get("name") or check.get("context") or "Unknown"
    conclusion = check.get("conclusion") or check.get("state")
    return StatusCheck(name=name, conclusion=CheckConclusion.from_string(conclusion))


def parse_pr_info(output: str) -> PRInfo:
    """
    Parse `gh pr view --json` output.

    Args:
        output: JSON object text

    Returns:
        PRInfo: Parsed pull request

    Raises:
        GitHubError: PARSE_ERROR if the text is not a JSON object or lacks
            number, url or state
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise GitHubError(GitHubErrorKind.PARSE_ERROR, f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise GitHubError(GitHubErrorKind.PARSE_ERROR, "Expected JSON object")

    number = data.get("number")
    url = data.get("url")
    state = data.get("state")
    if (
        not isinstance(number, int)
        or isinstance(number, bool)
        or not isinstance(url, str)
        or not url
        or not isinstance(state, str)
    ):
        raise GitHubError(GitHubErrorKind.PARSE_ERROR, "Missing required fields")

    mergeable = data.get("mergeable")
    rollup = data.get("statusCheckRollup")
    if not isinstance(rollup, list):
        rollup = []

    return PRInfo(
        number=number,
        url=url,
        state=PRState.from_string(state),
        mergeable=MergeableStatus.from_string(
            mergeable if isinstance(mergeable, str) else None
        ),
        status_checks=tuple(
            _parse_status_check(check) for check in rollup if isinstance(check, dict)
        ),
    )


class GitHubService(BaseService):
    """
    Service for fetching pull request status through the `gh` command line tool.
    """

    def __init__(self, runner: ProcessRunner | None = None, max_workers: int = 10):
        """
        Initialize the GitHub service.

        Args:
            runner: Shared process runner
            max_workers: Upper bound on concurrent `gh` invocations
        """
        super().__init__(runner)
        self.max_workers = max_workers

    def _do_initialize(self) -> None:
        status = self.check_gh_status()
        if status is None:
            logger.info("GitHub CLI available and authenticated")
        else:
            logger.info(f"GitHub CLI unavailable: {status.kind.value}")

    def check_gh_status(self) -> GitHubError | None:
        """
        Check that gh is installed and authenticated.

        Returns:
            Optional[GitHubError]: NOT_INSTALLED or NOT_AUTHENTICATED, or None when ready
        """
        try:
            self._runner.run(ENV_EXECUTABLE, ["which", "gh"])
        except CommandExecutionError:
            return GitHubError(GitHubErrorKind.NOT_INSTALLED)

        try:
            self._runner.run(ENV_EXECUTABLE, ["gh", "auth", "status"])
        except CommandExecutionError:
            return GitHubError(GitHubErrorKind.NOT_AUTHENTICATED)

        return None

    def fetch_pr_info(self, branch: str, repo_path: str) -> PRInfo:
        """
        Fetch the pull request for a branch.

        Args:
            branch: Branch name
            repo_path: Repository gh resolves the GitHub remote from

        Returns:
            PRInfo: The branch's pull request

        Raises:
            GitHubError: Classified failure (NO_PR_FOR_BRANCH when there is none)
        """
        try:
            output = self._runner.run(
                ENV_EXECUTABLE,
                ["gh", "pr", "view", branch, "--json", PR_VIEW_FIELDS],
                working_directory=repo_path,
            )
        except ProcessExecutionError as e:
            raise classify_gh_failure(e.exit_code, e.stderr) from e
        except CommandExecutionError as e:
            raise GitHubError(GitHubErrorKind.API_ERROR, e.message) from e

        return parse_pr_info(output)

    def _fetch_single_branch(
        self, branch: str, worktree_path: str, repo_path: str
    ) -> tuple[str, PRInfo | None, GitHubError | None]:
        """Fetch one branch, folding every outcome into a (path, info, error) triple."""
        try:
            pr_info = self.fetch_pr_info(branch, repo_path)
        except GitHubError as e:
            return worktree_path, None, e
        except Exception as e:
            logger.exception(f"Unexpected error fetching PR for {branch}")
            return worktree_path, None, GitHubError(GitHubErrorKind.API_ERROR, str(e))

        # Closed-but-unmerged PRs no longer describe the worktree.
        if pr_info.is_open or pr_info.is_merged:
            return worktree_path, pr_info, None
        return worktree_path, None, None

    def fetch_pr_info_batch(
        self, branches: list[tuple[str, str]], repo_path: str
    ) -> tuple[dict[str, PRInfo], GitHubError | None]:
        """
        Fetch pull requests for several branches concurrently.

        A failing branch never blocks the others.

        Args:
            branches: (branch, worktree_path) pairs
            repo_path: Repository gh resolves the GitHub remote from

        Returns:
            Tuple of the worktree path → PRInfo map and the first error worth
            showing to the user, if any
        """
        if not branches:
            return {}, None

        results: dict[str, PRInfo] = {}
        first_error: GitHubError | None = None

        logger.debug(f"Fetching PR data for {len(branches)} branches")

        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(branches)),
            thread_name_prefix="canopy-gh",
        ) as executor:
            futures = [
                executor.submit(self._fetch_single_branch, branch, path, repo_path)
                for branch, path in branches
            ]
            for future in as_completed(futures):
                worktree_path, pr_info, error = future.result()
                if pr_info is not None:
                    results[worktree_path] = pr_info
                if first_error is None and error is not None and error.should_show_banner:
                    first_error = error

        logger.debug(f"Fetched PR data for {len(results)} of {len(branches)} branches")
        return results, first_error
