"""Git worktree operations for Canopy."""

import logging
import shutil
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from ..models.worktree import Worktree
from ..utils.exceptions import (
    CommandExecutionError,
    ProcessExecutionError,
    WorktreeError,
    WorktreeNotFoundError,
    WorktreeParseError,
)
from .base import BaseService
from .process_runner import ENV_EXECUTABLE, SHELL_EXECUTABLE, ProcessRunner

logger = logging.getLogger(__name__)

HOOK_CONFIG_KEY = "canopy.hook.postCreate"
HOOK_TIMEOUT = 600  # seconds

_WORKTREE_PREFIX = "worktree "
_BRANCH_PREFIX = "branch refs/heads/"

# git exit statuses for `git config`
_CONFIG_KEY_MISSING = 1
_CONFIG_UNSET_MISSING = 5


def _iter_worktree_records(output: str) -> Iterator[tuple[str | None, str | None]]:
    """Yield (path, branch) for each blank-line separated porcelain record."""
    for block in output.split("\n\n"):
        path = None
        branch = None
        for line in block.splitlines():
            line = line.strip()
            if line.startswith(_WORKTREE_PREFIX):
                path = line[len(_WORKTREE_PREFIX) :]
            elif line.startswith(_BRANCH_PREFIX):
                branch = line[len(_BRANCH_PREFIX) :]
        yield path, branch


def parse_worktree_list(output: str) -> list[Worktree]:
    """
    Parse the output of 'git worktree list --porcelain'.

    Records without both a path and a branch (detached HEAD, bare) are skipped.

    Args:
        output: Raw porcelain output

    Returns:
        List[Worktree]: Worktrees in the order git reported them, all marked clean
    """
    return [
        Worktree(path=path, branch_name=branch)
        for path, branch in _iter_worktree_records(output)
        if path and branch
    ]


def find_worktree_path(output: str, branch: str) -> str | None:
    """
    Find the path of the worktree checked out on ``branch``.

    Args:
        output: Raw porcelain output
        branch: Branch name without the refs/heads/ prefix

    Returns:
        Optional[str]: Worktree path, or None if no complete record matches
    """
    for path, branch_name in _iter_worktree_records(output):
        if branch_name == branch and path:
            return path
    return None


def worktree_path_for(repo_path: str, branch: str) -> str:
    """
    Compute where the worktree for ``branch`` lives: ``<repo>-worktrees/<branch>``
    next to the repository root.
    """
    repo = Path(repo_path)
    return str(repo.parent / f"{repo.name}-worktrees" / branch)


class WorktreeService(BaseService):
    """
    Service for listing, creating and removing git worktrees.

    All git interaction goes through the git command line; output is parsed
    from the porcelain formats.
    """

    def __init__(self, runner: ProcessRunner | None = None):
        super().__init__(runner)
        self._executor: ThreadPoolExecutor | None = None

    def _do_initialize(self) -> None:
        """Check that git is available."""
        try:
            version = self._git(["--version"]).strip()
        except CommandExecutionError as e:
            raise WorktreeError(f"Git is not available: {e}") from e
        logger.info(f"Worktree service initialized: {version}")

    def _git(self, args: list[str], cwd: str | None = None) -> str:
        return self._runner.run(ENV_EXECUTABLE, ["git", *args], working_directory=cwd)

    def list_worktrees(self, repo_path: str) -> list[Worktree]:
        """
        List worktrees with their dirty state.

        Dirty checks run concurrently, one per worktree; results are merged back
        by position so the order matches git's listing.

        Args:
            repo_path: Path to the repository

        Returns:
            List[Worktree]: Worktrees checked out on a branch

        Raises:
            CommandExecutionError: If listing or any dirty check fails
        """
        output = self._git(["worktree", "list", "--porcelain"], cwd=repo_path)
        worktrees = parse_worktree_list(output)

        if worktrees:
            with ThreadPoolExecutor(
                max_workers=len(worktrees), thread_name_prefix="canopy-status"
            ) as executor:
                dirty_flags = list(
                    executor.map(
                        self.check_dirty_status, [wt.path for wt in worktrees]
                    )
                )
            for worktree, is_dirty in zip(worktrees, dirty_flags):
                worktree.is_dirty = is_dirty

        logger.debug(f"Listed {len(worktrees)} worktrees for {repo_path}")
        return worktrees

    def check_dirty_status(self, path: str) -> bool:
        """
        Check if a worktree has uncommitted changes.

        Args:
            path: Path to the worktree

        Returns:
            bool: True if `git status --porcelain` reports anything
        """
        output = self._git(["-C", path, "status", "--porcelain"])
        return bool(output.strip())

    def fetch_remote_branch(self, remote_branch: str, repo_path: str) -> None:
        """
        Fetch a single branch from a remote.

        Args:
            remote_branch: Ref in ``remote/branch`` form, split on the first slash
            repo_path: Path to the repository

        Raises:
            WorktreeParseError: If ``remote_branch`` contains no slash
        """
        remote, sep, branch = remote_branch.partition("/")
        if not sep or not remote or not branch:
            raise WorktreeParseError(
                f"Invalid remote branch format: {remote_branch}. "
                "Expected format: remote/branch"
            )

        self._git(["fetch", remote, branch], cwd=repo_path)
        logger.info(f"Fetched {branch} from {remote}")

    def create_worktree(
        self, branch: str, base_branch: str | None, repo_path: str
    ) -> str:
        """
        Create a worktree on a new branch.

        Args:
            branch: Name of the new branch
            base_branch: Ref to branch from (git's default when None)
            repo_path: Path to the repository

        Returns:
            str: Path of the new worktree
        """
        worktree_path = worktree_path_for(repo_path, branch)
        Path(worktree_path).parent.mkdir(parents=True, exist_ok=True)

        args = ["worktree", "add", worktree_path, "-b", branch]
        if base_branch:
            args.append(base_branch)

        self._git(args, cwd=repo_path)
        logger.info(f"Created worktree at {worktree_path} for branch {branch}")
        return worktree_path

    def remove_worktree(self, branch: str, force: bool, repo_path: str) -> None:
        """
        Remove the worktree checked out on ``branch``.

        `git worktree remove --force` still refuses when untracked files leave the
        directory non-empty; in that case the directory is deleted by hand and the
        stale registration pruned.

        Args:
            branch: Branch checked out in the worktree
            force: Remove even with uncommitted changes
            repo_path: Path to the repository

        Raises:
            WorktreeNotFoundError: If no worktree is checked out on ``branch``
            CommandExecutionError: If git fails for any other reason
        """
        worktree_path = self.get_worktree_path(branch, repo_path)

        args = ["worktree", "remove", worktree_path]
        if force:
            args.append("--force")

        try:
            self._git(args, cwd=repo_path)
        except ProcessExecutionError as e:
            if "Directory not empty" not in e.stderr:
                raise
            logger.warning(
                f"git could not remove non-empty {worktree_path}, deleting it directly"
            )
            try:
                shutil.rmtree(worktree_path)
            except OSError as rm_error:
                raise WorktreeError(
                    f"Failed to delete worktree directory {worktree_path}: {rm_error}"
                ) from rm_error
            self._git(["worktree", "prune"], cwd=repo_path)

        logger.info(f"Removed worktree at {worktree_path}")

    def get_worktree_path(self, branch: str, repo_path: str) -> str:
        """
        Resolve the path of the worktree checked out on ``branch``.

        Raises:
            WorktreeNotFoundError: If no worktree is checked out on ``branch``
        """
        output = self._git(["worktree", "list", "--porcelain"], cwd=repo_path)
        path = find_worktree_path(output, branch)
        if path is None:
            raise WorktreeNotFoundError(branch)
        return path

    def get_worktree_path_async(self, branch: str, repo_path: str) -> Future:
        """Resolve a worktree path on a background thread; the future yields the path."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="canopy-git"
            )
        return self._executor.submit(self.get_worktree_path, branch, repo_path)

    def get_post_create_hook(self, repo_path: str) -> str | None:
        """
        Read the post-create hook from the repository's git config.

        Returns:
            Optional[str]: Hook command, or None if unset
        """
        try:
            value = self._git(["config", "--get", HOOK_CONFIG_KEY], cwd=repo_path)
        except ProcessExecutionError as e:
            if e.exit_code == _CONFIG_KEY_MISSING:
                return None
            raise
        return value.strip() or None

    def set_post_create_hook(self, command: str, repo_path: str) -> None:
        """Store the post-create hook in the repository's git config."""
        self._git(["config", HOOK_CONFIG_KEY, command], cwd=repo_path)
        logger.info(f"Set post-create hook for {repo_path}")

    def clear_post_create_hook(self, repo_path: str) -> None:
        """Remove the post-create hook; clearing an unset hook is not an error."""
        try:
            self._git(["config", "--unset", HOOK_CONFIG_KEY], cwd=repo_path)
        except ProcessExecutionError as e:
            if e.exit_code != _CONFIG_UNSET_MISSING:
                raise
        logger.info(f"Cleared post-create hook for {repo_path}")

    def run_post_create_hook(self, command: str, worktree_path: str) -> str:
        """
        Run the post-create hook as a shell command inside a new worktree.

        Returns:
            str: Output of the hook
        """
        logger.info(f"Running post-create hook in {worktree_path}")
        return self._runner.run(
            SHELL_EXECUTABLE,
            ["-c", command],
            working_directory=worktree_path,
            timeout=HOOK_TIMEOUT,
        )

    def shutdown(self) -> None:
        """Release the background executor."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
