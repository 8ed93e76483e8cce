"""Idle-sleep prevention while supervised processes run."""

import logging
import os
import subprocess
import sys

logger = logging.getLogger(__name__)

CAFFEINATE_EXECUTABLE = "/usr/bin/caffeinate"


class IdleSleepGuard:
    """
    Holds a process-wide "prevent idle sleep" token.

    On macOS the token is a `caffeinate -i` child that exits on its own if we die
    first (``-w <our pid>``). Elsewhere the token is only tracked, not enforced.
    """

    def __init__(self, enabled: bool | None = None):
        """
        Initialize the guard.

        Args:
            enabled: Whether to spawn caffeinate (defaults to True on macOS)
        """
        self._enabled = sys.platform == "darwin" if enabled is None else enabled
        self._process: subprocess.Popen | None = None
        self._held = False

    @property
    def is_held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Take the token; a no-op while it is already held."""
        if self._held:
            return
        self._held = True

        if not self._enabled:
            logger.debug("Idle sleep prevention requested (not enforced on this platform)")
            return

        try:
            self._process = subprocess.Popen(
                [CAFFEINATE_EXECUTABLE, "-i", "-w", str(os.getpid())],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            logger.info("Idle sleep disabled while processes are running")
        except OSError as e:
            logger.error(f"Failed to start caffeinate: {e}")
            self._process = None

    def release(self) -> None:
        """Give the token back; a no-op when it is not held."""
        self.reap(self.detach())

    def detach(self) -> subprocess.Popen | None:
        """
        Mark the token released without waiting for caffeinate to exit.

        Returns:
            Optional[subprocess.Popen]: The caffeinate process to hand to ``reap``
        """
        if not self._held:
            return None
        self._held = False

        process, self._process = self._process, None
        return process

    @staticmethod
    def reap(process: subprocess.Popen | None) -> None:
        """Stop a detached caffeinate process and wait for it to exit."""
        if process is None:
            return

        try:
            process.terminate()
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        except OSError as e:
            logger.debug(f"caffeinate already gone: {e}")
        logger.info("Idle sleep re-enabled")
