"""Tests for WorktreeService."""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from unittest.mock import Mock, call, patch

import pytest

from canopy.services.process_runner import (
    ENV_EXECUTABLE,
    SHELL_EXECUTABLE,
    ProcessRunner,
    build_search_path,
)
from canopy.services.worktree_service import (
    HOOK_CONFIG_KEY,
    HOOK_TIMEOUT,
    WorktreeService,
    find_worktree_path,
    parse_worktree_list,
    worktree_path_for,
)
from canopy.utils.exceptions import (
    ProcessExecutionError,
    WorktreeError,
    WorktreeNotFoundError,
    WorktreeParseError,
)

PORCELAIN = (
    "worktree /repos/app\n"
    "HEAD 1111111111111111111111111111111111111111\n"
    "branch refs/heads/main\n"
    "\n"
    "worktree /repos/app-worktrees/feature\n"
    "HEAD 2222222222222222222222222222222222222222\n"
    "branch refs/heads/feature\n"
    "\n"
    "worktree /repos/app-worktrees/detached\n"
    "HEAD 3333333333333333333333333333333333333333\n"
    "detached\n"
    "\n"
    "worktree /repos/app-worktrees/fix/login\n"
    "HEAD 4444444444444444444444444444444444444444\n"
    "branch refs/heads/fix/login\n"
)


class TestPorcelainParsing:
    """Test cases for parsing `git worktree list --porcelain`."""

    def test_parse_keeps_complete_records_in_order(self):
        worktrees = parse_worktree_list(PORCELAIN)

        assert [wt.path for wt in worktrees] == [
            "/repos/app",
            "/repos/app-worktrees/feature",
            "/repos/app-worktrees/fix/login",
        ]
        assert [wt.branch_name for wt in worktrees] == ["main", "feature", "fix/login"]
        assert all(not wt.is_dirty for wt in worktrees)

    def test_parse_drops_incomplete_records(self):
        output = (
            "worktree /repos/bare\nbare\n\n"
            "branch refs/heads/orphan\n\n"
            "worktree /repos/app\nHEAD abc\nbranch refs/heads/main\n"
        )

        worktrees = parse_worktree_list(output)

        assert len(worktrees) == 1
        assert worktrees[0].branch_name == "main"

    def test_parse_empty_output(self):
        assert parse_worktree_list("") == []

    def test_find_worktree_path(self):
        assert find_worktree_path(PORCELAIN, "feature") == "/repos/app-worktrees/feature"
        assert find_worktree_path(PORCELAIN, "fix/login") == "/repos/app-worktrees/fix/login"

    def test_find_worktree_path_miss(self):
        assert find_worktree_path(PORCELAIN, "detached") is None
        assert find_worktree_path(PORCELAIN, "nope") is None

    def test_worktree_path_for(self):
        assert worktree_path_for("/repos/app", "feature") == "/repos/app-worktrees/feature"


class TestWorktreeService:
    """Test cases for WorktreeService."""

    def setup_method(self):
        self.runner = Mock(spec=ProcessRunner)
        self.service = WorktreeService(runner=self.runner)

    def _git_calls(self):
        return [c.args[1][1:] for c in self.runner.run.call_args_list]

    def test_initialization(self):
        self.runner.run.return_value = "git version 2.44.0\n"

        assert not self.service.is_initialized()
        self.service.initialize()
        assert self.service.is_initialized()
        self.runner.run.assert_called_once_with(
            ENV_EXECUTABLE, ["git", "--version"], working_directory=None
        )

    def test_initialization_without_git(self):
        self.runner.run.side_effect = ProcessExecutionError(127, "env: git: not found")

        with pytest.raises(WorktreeError):
            self.service.initialize()
        assert not self.service.is_initialized()

    def test_list_worktrees_merges_dirty_state_by_position(self):
        dirty_paths = {"/repos/app-worktrees/feature"}

        def run(executable, arguments, working_directory=None):
            if arguments[1:3] == ["worktree", "list"]:
                return PORCELAIN
            if arguments[1] == "-C":
                return " M file.py\n" if arguments[2] in dirty_paths else "\n"
            raise AssertionError(f"unexpected command {arguments}")

        self.runner.run.side_effect = run

        worktrees = self.service.list_worktrees("/repos/app")

        assert [(wt.branch_name, wt.is_dirty) for wt in worktrees] == [
            ("main", False),
            ("feature", True),
            ("fix/login", False),
        ]

    def test_list_worktrees_fails_when_any_dirty_check_fails(self):
        def run(executable, arguments, working_directory=None):
            if arguments[1:3] == ["worktree", "list"]:
                return PORCELAIN
            if arguments[2] == "/repos/app-worktrees/feature":
                raise ProcessExecutionError(128, "fatal: not a git repository")
            return ""

        self.runner.run.side_effect = run

        with pytest.raises(ProcessExecutionError):
            self.service.list_worktrees("/repos/app")

    def test_check_dirty_status(self):
        self.runner.run.return_value = "?? new.txt\n"
        assert self.service.check_dirty_status("/repos/app") is True

        self.runner.run.return_value = "  \n"
        assert self.service.check_dirty_status("/repos/app") is False

        self.runner.run.assert_called_with(
            ENV_EXECUTABLE,
            ["git", "-C", "/repos/app", "status", "--porcelain"],
            working_directory=None,
        )

    def test_fetch_remote_branch(self):
        self.service.fetch_remote_branch("origin/release/1.0", "/repos/app")

        self.runner.run.assert_called_once_with(
            ENV_EXECUTABLE,
            ["git", "fetch", "origin", "release/1.0"],
            working_directory="/repos/app",
        )

    def test_fetch_remote_branch_without_slash_fails_before_running(self):
        with pytest.raises(WorktreeParseError):
            self.service.fetch_remote_branch("main", "/repos/app")

        self.runner.run.assert_not_called()

    def test_create_worktree(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            repo_path = os.path.join(temp_dir, "app")

            path = self.service.create_worktree("feature", "origin/main", repo_path)

            expected = os.path.join(temp_dir, "app-worktrees", "feature")
            assert path == expected
            assert Path(expected).parent.is_dir()
            self.runner.run.assert_called_once_with(
                ENV_EXECUTABLE,
                ["git", "worktree", "add", expected, "-b", "feature", "origin/main"],
                working_directory=repo_path,
            )

    def test_create_worktree_without_base(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            repo_path = os.path.join(temp_dir, "app")

            self.service.create_worktree("feature", None, repo_path)

            assert self._git_calls()[-1][-1] == "feature"

    def test_remove_worktree_force(self):
        self.runner.run.side_effect = [PORCELAIN, ""]

        self.service.remove_worktree("feature", True, "/repos/app")

        assert self._git_calls()[-1] == [
            "worktree",
            "remove",
            "/repos/app-worktrees/feature",
            "--force",
        ]

    def test_remove_worktree_not_found(self):
        self.runner.run.return_value = PORCELAIN

        with pytest.raises(WorktreeNotFoundError):
            self.service.remove_worktree("missing", False, "/repos/app")

    def test_remove_worktree_falls_back_on_directory_not_empty(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            worktree_path = os.path.join(temp_dir, "feature")
            os.makedirs(os.path.join(worktree_path, "node_modules"))
            Path(worktree_path, "node_modules", "junk").write_text("x")

            listing = f"worktree {worktree_path}\nHEAD abc\nbranch refs/heads/feature\n"
            self.runner.run.side_effect = [
                listing,
                ProcessExecutionError(
                    255,
                    f"error: failed to delete '{worktree_path}': Directory not empty",
                ),
                "",
            ]

            self.service.remove_worktree("feature", True, "/repos/app")

            assert not os.path.exists(worktree_path)
            assert self._git_calls()[-1] == ["worktree", "prune"]

    def test_remove_worktree_other_failures_propagate(self):
        self.runner.run.side_effect = [
            PORCELAIN,
            ProcessExecutionError(128, "fatal: contains modified or untracked files"),
        ]

        with pytest.raises(ProcessExecutionError):
            self.service.remove_worktree("feature", False, "/repos/app")

        assert ["worktree", "prune"] not in self._git_calls()

    def test_get_worktree_path_async(self):
        self.runner.run.return_value = PORCELAIN

        future = self.service.get_worktree_path_async("feature", "/repos/app")

        assert future.result(timeout=5) == "/repos/app-worktrees/feature"
        self.service.shutdown()

    def test_get_post_create_hook(self):
        self.runner.run.return_value = "npm install\n"

        assert self.service.get_post_create_hook("/repos/app") == "npm install"
        self.runner.run.assert_called_once_with(
            ENV_EXECUTABLE,
            ["git", "config", "--get", HOOK_CONFIG_KEY],
            working_directory="/repos/app",
        )

    def test_get_post_create_hook_unset(self):
        self.runner.run.side_effect = ProcessExecutionError(1, "")

        assert self.service.get_post_create_hook("/repos/app") is None

    def test_get_post_create_hook_other_failure(self):
        self.runner.run.side_effect = ProcessExecutionError(128, "fatal: not in a git directory")

        with pytest.raises(ProcessExecutionError):
            self.service.get_post_create_hook("/repos/app")

    def test_set_and_clear_post_create_hook(self):
        self.service.set_post_create_hook("make setup", "/repos/app")
        self.service.clear_post_create_hook("/repos/app")

        assert self.runner.run.call_args_list == [
            call(
                ENV_EXECUTABLE,
                ["git", "config", HOOK_CONFIG_KEY, "make setup"],
                working_directory="/repos/app",
            ),
            call(
                ENV_EXECUTABLE,
                ["git", "config", "--unset", HOOK_CONFIG_KEY],
                working_directory="/repos/app",
            ),
        ]

    def test_clear_unset_hook_is_not_an_error(self):
        self.runner.run.side_effect = ProcessExecutionError(5, "")

        self.service.clear_post_create_hook("/repos/app")

    def test_run_post_create_hook(self):
        self.runner.run.return_value = "done\n"

        output = self.service.run_post_create_hook("make setup", "/repos/app-worktrees/x")

        assert output == "done\n"
        self.runner.run.assert_called_once_with(
            SHELL_EXECUTABLE,
            ["-c", "make setup"],
            working_directory="/repos/app-worktrees/x",
            timeout=HOOK_TIMEOUT,
        )


def _git(*args, cwd):
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)


@pytest.mark.skipif(
    shutil.which("git", path=build_search_path()) is None, reason="git is not installed"
)
class TestWorktreeServiceWithGit:
    """Test cases that run WorktreeService against a real repository."""

    def setup_method(self):
        self.temp_dir = os.path.realpath(tempfile.mkdtemp())
        self.repo_path = os.path.join(self.temp_dir, "app")
        os.makedirs(self.repo_path)
        _git("init", cwd=self.repo_path)
        _git("symbolic-ref", "HEAD", "refs/heads/main", cwd=self.repo_path)
        _git(
            "-c",
            "user.name=Canopy Tests",
            "-c",
            "user.email=tests@example.com",
            "commit",
            "--allow-empty",
            "-m",
            "Initial commit",
            cwd=self.repo_path,
        )

        self.runner = ProcessRunner(timeout=30)
        self.service = WorktreeService(runner=self.runner)

    def teardown_method(self):
        self.service.shutdown()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _listed(self):
        return [
            (wt.branch_name, wt.is_dirty)
            for wt in self.service.list_worktrees(self.repo_path)
        ]

    def test_create_then_list(self):
        path = self.service.create_worktree("X", "main", self.repo_path)

        assert path == os.path.join(self.temp_dir, "app-worktrees", "X")
        assert os.path.isdir(path)
        assert self._listed() == [("main", False), ("X", False)]
        assert self.service.get_worktree_path("X", self.repo_path) == path

    def test_untracked_file_marks_worktree_dirty(self):
        path = self.service.create_worktree("X", "main", self.repo_path)
        Path(path, "notes.txt").write_text("scratch\n")

        assert self._listed() == [("main", False), ("X", True)]

    def test_force_remove_with_untracked_file(self):
        path = self.service.create_worktree("X", "main", self.repo_path)
        Path(path, "notes.txt").write_text("scratch\n")

        self.service.remove_worktree("X", True, self.repo_path)

        assert not os.path.exists(path)
        assert self._listed() == [("main", False)]

    def test_remove_without_force_refuses_dirty_worktree(self):
        path = self.service.create_worktree("X", "main", self.repo_path)
        Path(path, "notes.txt").write_text("scratch\n")

        with pytest.raises(ProcessExecutionError):
            self.service.remove_worktree("X", False, self.repo_path)

        assert os.path.isdir(path)

    def test_non_empty_directory_falls_back_to_delete_and_prune(self):
        path = self.service.create_worktree("X", "main", self.repo_path)
        Path(path, "build").mkdir()
        Path(path, "build", "out.o").write_text("")
        real_run = self.runner.run

        def run(executable, arguments, working_directory=None, timeout=None):
            if arguments[:3] == ["git", "worktree", "remove"]:
                raise ProcessExecutionError(
                    255, f"error: failed to delete '{arguments[3]}': Directory not empty"
                )
            return real_run(executable, arguments, working_directory, timeout)

        with patch.object(self.runner, "run", side_effect=run):
            self.service.remove_worktree("X", True, self.repo_path)

        assert not os.path.exists(path)
        assert self._listed() == [("main", False)]
