"""Tests for ProcessSupervisor and IdleSleepGuard."""

import os
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from canopy.services.process_runner import ProcessRunner
from canopy.services.process_supervisor import (
    URL_FILENAME,
    ProcessSupervisor,
    read_canopy_url,
)
from canopy.services.sleep_guard import IdleSleepGuard
from canopy.utils.exceptions import ProcessSupervisorError

unix_only = pytest.mark.skipif(os.name == "nt", reason="Unix-specific test")


@unix_only
class TestProcessSupervisor:
    """Test cases for ProcessSupervisor with real child processes."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.guard = IdleSleepGuard(enabled=False)
        self.supervisor = ProcessSupervisor(runner=ProcessRunner(), sleep_guard=self.guard)

    def teardown_method(self):
        self.supervisor.stop_all()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_start_tracks_process_and_holds_guard(self):
        tracked = self.supervisor.start("sleep 30", self.temp_dir)

        assert self.supervisor.is_running(self.temp_dir)
        assert self.supervisor.running_paths() == [self.temp_dir]
        assert tracked.pid > 0
        assert tracked.command == "sleep 30"
        assert self.guard.is_held

    def test_stop_is_immediate_and_releases_guard(self):
        tracked = self.supervisor.start("sleep 30", self.temp_dir)

        self.supervisor.stop(self.temp_dir)

        assert not self.supervisor.is_running(self.temp_dir)
        assert self.supervisor.get_tracked(self.temp_dir) is None
        assert not self.guard.is_held
        assert tracked.process.wait(timeout=5) != 0

    def test_stop_without_process_is_noop(self):
        self.supervisor.stop(self.temp_dir)

        assert not self.supervisor.is_running(self.temp_dir)

    def test_start_twice_terminates_first(self):
        first = self.supervisor.start("sleep 30", self.temp_dir)
        second = self.supervisor.start("sleep 30", self.temp_dir)

        assert first.process.wait(timeout=5) is not None
        assert second.is_running()
        assert self.supervisor.get_tracked(self.temp_dir) is second
        assert self.guard.is_held

    def test_restart_replaces_process(self):
        first = self.supervisor.start("sleep 30", self.temp_dir)

        second = self.supervisor.restart("sleep 30", self.temp_dir)

        assert second.pid != first.pid
        assert self.supervisor.is_running(self.temp_dir)

    def test_guard_held_until_last_process_stops(self):
        other_dir = tempfile.mkdtemp()
        try:
            self.supervisor.start("sleep 30", self.temp_dir)
            self.supervisor.start("sleep 30", other_dir)

            self.supervisor.stop(self.temp_dir)
            assert self.guard.is_held

            self.supervisor.stop(other_dir)
            assert not self.guard.is_held
        finally:
            shutil.rmtree(other_dir, ignore_errors=True)

    def test_exit_removes_record(self, qtbot):
        with qtbot.waitSignal(self.supervisor.process_exited, timeout=5000) as blocker:
            self.supervisor.start("exit 3", self.temp_dir)

        assert blocker.args == [self.temp_dir, 3]
        assert not self.supervisor.is_running(self.temp_dir)
        assert self.supervisor.get_tracked(self.temp_dir) is None
        assert not self.guard.is_held

    def test_runs_in_worktree_directory(self, qtbot):
        with qtbot.waitSignal(self.supervisor.process_exited, timeout=5000):
            self.supervisor.start("pwd > where.txt", self.temp_dir)

        recorded = Path(self.temp_dir, "where.txt").read_text().strip()
        assert os.path.realpath(recorded) == os.path.realpath(self.temp_dir)

    def test_start_failure_raises(self):
        missing = os.path.join(self.temp_dir, "missing")

        with pytest.raises(ProcessSupervisorError):
            self.supervisor.start("sleep 30", missing)

        assert not self.supervisor.is_running(missing)
        assert not self.guard.is_held

    def test_stop_all(self):
        self.supervisor.start("sleep 30", self.temp_dir)

        self.supervisor.stop_all()

        assert self.supervisor.running_paths() == []
        assert not self.guard.is_held

    def test_guard_is_reaped_after_lock_is_released(self):
        token = Mock()
        lock_free_during_reap = []

        def reap(process):
            if process is not token:
                return
            checker = threading.Thread(
                target=self.supervisor.is_running, args=(self.temp_dir,)
            )
            checker.start()
            checker.join(timeout=2)
            lock_free_during_reap.append(not checker.is_alive())

        self.supervisor.start("sleep 30", self.temp_dir)
        with (
            patch.object(self.guard, "detach", return_value=token),
            patch.object(self.guard, "reap", side_effect=reap),
        ):
            self.supervisor.stop(self.temp_dir)

        assert lock_free_during_reap == [True]


class TestCanopyUrl:
    """Test cases for reading CANOPY_URL.txt."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.supervisor = ProcessSupervisor(sleep_guard=IdleSleepGuard(enabled=False))

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _worktree(self, name, url_text=None):
        path = os.path.join(self.temp_dir, name)
        os.makedirs(path)
        if url_text is not None:
            Path(path, URL_FILENAME).write_text(url_text)
        return path

    def test_read_trims_whitespace(self):
        path = self._worktree("a", "  http://localhost:3000\n")

        assert read_canopy_url(path) == "http://localhost:3000"

    @pytest.mark.parametrize("text", ["", "   \n", "not a url", "http://a b"])
    def test_read_rejects_invalid(self, text):
        path = self._worktree("a", text)

        assert read_canopy_url(path) is None

    def test_read_missing_file(self):
        assert read_canopy_url(self._worktree("a")) is None

    def test_refresh_replaces_cache(self):
        a = self._worktree("a", "http://localhost:3000")
        b = self._worktree("b", "http://localhost:4000")
        c = self._worktree("c")

        assert self.supervisor.refresh_urls([a, b, c]) == {
            a: "http://localhost:3000",
            b: "http://localhost:4000",
        }

        self.supervisor.refresh_urls([b])

        assert self.supervisor.get_canopy_url(a) is None
        assert self.supervisor.get_canopy_url(b) == "http://localhost:4000"
        assert self.supervisor.cached_urls == {b: "http://localhost:4000"}


class TestIdleSleepGuard:
    """Test cases for IdleSleepGuard."""

    def test_disabled_guard_only_tracks(self):
        guard = IdleSleepGuard(enabled=False)

        guard.acquire()
        guard.acquire()
        assert guard.is_held

        guard.release()
        guard.release()
        assert not guard.is_held

    @patch("canopy.services.sleep_guard.subprocess.Popen")
    def test_enabled_guard_spawns_caffeinate_once(self, mock_popen):
        process = Mock()
        mock_popen.return_value = process
        guard = IdleSleepGuard(enabled=True)

        guard.acquire()
        guard.acquire()

        mock_popen.assert_called_once()
        args = mock_popen.call_args.args[0]
        assert args[:3] == ["/usr/bin/caffeinate", "-i", "-w"]
        assert args[3] == str(os.getpid())

        guard.release()

        process.terminate.assert_called_once()
        assert not guard.is_held

    @patch("canopy.services.sleep_guard.subprocess.Popen")
    def test_release_kills_unresponsive_caffeinate(self, mock_popen):
        process = Mock()
        process.wait.side_effect = [subprocess.TimeoutExpired("caffeinate", 5), 0]
        mock_popen.return_value = process
        guard = IdleSleepGuard(enabled=True)

        guard.acquire()
        guard.release()

        process.kill.assert_called_once()

    @patch("canopy.services.sleep_guard.subprocess.Popen")
    def test_spawn_failure_still_marks_held(self, mock_popen):
        mock_popen.side_effect = FileNotFoundError("no caffeinate")
        guard = IdleSleepGuard(enabled=True)

        guard.acquire()

        assert guard.is_held
        guard.release()
        assert not guard.is_held

    @patch("canopy.services.sleep_guard.subprocess.Popen")
    def test_detach_hands_back_caffeinate_unreaped(self, mock_popen):
        process = Mock()
        mock_popen.return_value = process
        guard = IdleSleepGuard(enabled=True)

        guard.acquire()
        detached = guard.detach()

        assert detached is process
        assert not guard.is_held
        process.terminate.assert_not_called()
        assert guard.detach() is None

        IdleSleepGuard.reap(detached)
        process.terminate.assert_called_once()
