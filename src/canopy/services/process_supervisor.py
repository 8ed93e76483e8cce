"""Supervision of one long-running process per worktree."""

import logging
import os
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse

from PyQt6.QtCore import QObject, pyqtSignal

from ..utils.exceptions import ProcessSupervisorError
from .process_runner import SHELL_EXECUTABLE, ProcessRunner
from .sleep_guard import IdleSleepGuard

logger = logging.getLogger(__name__)

URL_FILENAME = "CANOPY_URL.txt"


@dataclass
class TrackedProcess:
    """
    A running command owned by the supervisor.

    Attributes:
        process: Handle of the shell running the command
        pid: OS process id (also the process group id)
        command: Shell command line
        start_time: When the process was started
    """

    process: subprocess.Popen
    pid: int
    command: str
    start_time: datetime = field(default_factory=datetime.now)

    def is_running(self) -> bool:
        return self.process.poll() is None


def read_canopy_url(worktree_path: str) -> str | None:
    """
    Read the URL a worktree advertises in its CANOPY_URL.txt.

    Args:
        worktree_path: Worktree root

    Returns:
        Optional[str]: The trimmed URL, or None if the file is missing or not a URL
    """
    url_file = Path(worktree_path) / URL_FILENAME
    try:
        content = url_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None

    candidate = content.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return None
    if not urlparse(candidate).scheme:
        return None
    return candidate


class ProcessSupervisor(QObject):
    """
    Starts, stops and restarts one process per worktree path.

    The process table, URL cache and idle-sleep token are guarded by a single
    lock; exits are observed by a waiter thread per process.
    """

    processes_changed = pyqtSignal()
    process_exited = pyqtSignal(str, int)  # worktree_path, exit_code

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        sleep_guard: IdleSleepGuard | None = None,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._runner = runner or ProcessRunner()
        self._sleep_guard = sleep_guard or IdleSleepGuard()
        self._lock = threading.RLock()
        self._processes: dict[str, TrackedProcess] = {}
        self._cached_urls: dict[str, str] = {}

    @property
    def sleep_guard(self) -> IdleSleepGuard:
        return self._sleep_guard

    def is_running(self, worktree_path: str) -> bool:
        """Check whether a tracked process for the worktree is still alive."""
        with self._lock:
            tracked = self._processes.get(worktree_path)
            return tracked is not None and tracked.is_running()

    def get_tracked(self, worktree_path: str) -> TrackedProcess | None:
        with self._lock:
            return self._processes.get(worktree_path)

    def running_paths(self) -> list[str]:
        with self._lock:
            return list(self._processes)

    def start(self, command: str, worktree_path: str) -> TrackedProcess:
        """
        Start ``command`` in ``worktree_path``, replacing any process already there.

        Args:
            command: Shell command line
            worktree_path: Working directory of the process

        Returns:
            TrackedProcess: The new process

        Raises:
            ProcessSupervisorError: If the process cannot be spawned
        """
        start_error: OSError | None = None
        guard_token = None
        with self._lock:
            self._stop_locked(worktree_path)

            try:
                process = subprocess.Popen(
                    [SHELL_EXECUTABLE, "-c", command],
                    cwd=worktree_path,
                    env=self._runner.environment(disable_optional_locks=False),
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as e:
                start_error = e
                guard_token = self._detach_guard_if_idle()
            else:
                tracked = TrackedProcess(process=process, pid=process.pid, command=command)
                self._processes[worktree_path] = tracked
                self._sleep_guard.acquire()

        if start_error is not None:
            self._sleep_guard.reap(guard_token)
            logger.error(f"Failed to start '{command}' in {worktree_path}: {start_error}")
            raise ProcessSupervisorError(
                f"Failed to start '{command}': {start_error}", worktree_path=worktree_path
            ) from start_error

        threading.Thread(
            target=self._watch,
            args=(worktree_path, tracked),
            name=f"canopy-watch-{tracked.pid}",
            daemon=True,
        ).start()

        logger.info(f"Started '{command}' in {worktree_path} (PID: {tracked.pid})")
        self.processes_changed.emit()
        return tracked

    def stop(self, worktree_path: str) -> None:
        """Stop the worktree's process; stopping an idle worktree is a no-op."""
        with self._lock:
            stopped = self._stop_locked(worktree_path)
            guard_token = self._detach_guard_if_idle()
        self._sleep_guard.reap(guard_token)
        if stopped:
            self.processes_changed.emit()

    def restart(self, command: str, worktree_path: str) -> TrackedProcess:
        """Stop the worktree's process, then start ``command``."""
        self.stop(worktree_path)
        return self.start(command, worktree_path)

    def stop_all(self) -> None:
        """Stop every supervised process."""
        with self._lock:
            paths = list(self._processes)
            for path in paths:
                self._stop_locked(path)
            guard_token = self._detach_guard_if_idle()
        self._sleep_guard.reap(guard_token)
        if paths:
            self.processes_changed.emit()

    def _stop_locked(self, worktree_path: str) -> bool:
        tracked = self._processes.pop(worktree_path, None)
        if tracked is None:
            return False

        if tracked.is_running():
            self._terminate(tracked)

        logger.info(f"Stopped process in {worktree_path} (PID: {tracked.pid})")
        return True

    def _terminate(self, tracked: TrackedProcess) -> None:
        """Send SIGTERM to the process group so the shell's children stop too."""
        try:
            if os.name == "nt":
                tracked.process.terminate()
            else:
                os.killpg(tracked.pid, signal.SIGTERM)
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"Process {tracked.pid} already terminated: {e}")

    def _detach_guard_if_idle(self) -> subprocess.Popen | None:
        """Drop the sleep token when nothing runs; the caller reaps it unlocked."""
        if self._processes:
            return None
        return self._sleep_guard.detach()

    def _watch(self, worktree_path: str, tracked: TrackedProcess) -> None:
        exit_code = tracked.process.wait()

        guard_token = None
        with self._lock:
            # A stop or restart may already have replaced this record.
            still_tracked = self._processes.get(worktree_path) is tracked
            if still_tracked:
                del self._processes[worktree_path]
                guard_token = self._detach_guard_if_idle()
        self._sleep_guard.reap(guard_token)

        if still_tracked:
            logger.info(
                f"Process in {worktree_path} exited with code {exit_code} "
                f"(PID: {tracked.pid})"
            )
            self.process_exited.emit(worktree_path, exit_code)
            self.processes_changed.emit()

    @property
    def cached_urls(self) -> dict[str, str]:
        with self._lock:
            return dict(self._cached_urls)

    def get_canopy_url(self, worktree_path: str) -> str | None:
        """Get the cached URL for a worktree."""
        with self._lock:
            return self._cached_urls.get(worktree_path)

    def refresh_urls(self, worktree_paths: list[str]) -> dict[str, str]:
        """
        Re-read CANOPY_URL.txt for the given worktrees, replacing the whole cache.

        Args:
            worktree_paths: Worktree roots to read

        Returns:
            Dict[str, str]: The new cache
        """
        new_cache = {}
        for path in worktree_paths:
            url = read_canopy_url(path)
            if url is not None:
                new_cache[path] = url

        with self._lock:
            self._cached_urls = new_cache
        return dict(new_cache)
