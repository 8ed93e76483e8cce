"""External command execution for Canopy."""

import logging
import os
import shlex
import subprocess

from ..utils.exceptions import CommandExecutionError, ProcessExecutionError

logger = logging.getLogger(__name__)

ENV_EXECUTABLE = "/usr/bin/env"
SHELL_EXECUTABLE = "/bin/sh"

# Searched in order; a GUI app does not inherit the login shell's PATH.
COMMON_BIN_DIRS = (
    "/opt/homebrew/bin",
    "/usr/local/bin",
    "/usr/bin",
    "/bin",
    "/usr/sbin",
    "/sbin",
)


def build_search_path(custom_path: str | None = None) -> str:
    """
    Build the PATH used for every external command.

    Args:
        custom_path: Optional user-configured directory, searched first

    Returns:
        str: Colon-separated search path
    """
    paths = list(COMMON_BIN_DIRS)
    if custom_path:
        paths.insert(0, custom_path)
    return os.pathsep.join(paths)


def build_environment(
    custom_path: str | None = None, disable_optional_locks: bool = True
) -> dict[str, str]:
    """
    Build the child environment: the current environment with a deterministic PATH.

    Args:
        custom_path: Optional user-configured directory, searched first
        disable_optional_locks: Stop git from refreshing the index stat cache,
            which would otherwise trigger file watchers in the worktree

    Returns:
        Dict[str, str]: Environment for the child process
    """
    env = dict(os.environ)
    env["PATH"] = build_search_path(custom_path)
    if disable_optional_locks:
        env["GIT_OPTIONAL_LOCKS"] = "0"
    return env


class ProcessRunner:
    """
    Runs external programs with the augmented environment.

    ``run`` blocks until the program exits and returns its standard output;
    ``run_detached`` starts a program and returns immediately.
    """

    def __init__(self, custom_cli_path: str | None = None, timeout: float | None = None):
        """
        Initialize the runner.

        Args:
            custom_cli_path: Directory prepended to PATH for every command
            timeout: Default timeout in seconds for awaited commands (None waits forever)
        """
        self.custom_cli_path = custom_cli_path
        self.timeout = timeout

    def environment(self, disable_optional_locks: bool = True) -> dict[str, str]:
        """Get the environment external commands run with."""
        return build_environment(self.custom_cli_path, disable_optional_locks)

    def run(
        self,
        executable: str,
        arguments: list[str],
        working_directory: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """
        Run a program to completion and capture its output.

        Args:
            executable: Absolute path of the program
            arguments: Program arguments
            working_directory: Directory to run in (inherits ours if None)
            timeout: Timeout in seconds, overriding the runner default

        Returns:
            str: Captured standard output

        Raises:
            ProcessExecutionError: If the program exits with a non-zero status
            CommandExecutionError: If the program cannot be started or times out
        """
        if timeout is None:
            timeout = self.timeout

        command = [executable, *arguments]
        command_str = shlex.join(command)
        logger.debug(f"Executing: {command_str} in {working_directory or os.getcwd()}")

        try:
            process = subprocess.Popen(
                command,
                cwd=working_directory,
                env=self.environment(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            logger.error(f"Failed to start {command_str}: {e}")
            raise CommandExecutionError(
                f"Failed to start {executable}: {e}", command=command_str
            ) from e

        # communicate() drains both pipes before reaping the child.
        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            process.kill()
            process.communicate()
            logger.error(f"Command timed out after {timeout} seconds: {command_str}")
            raise CommandExecutionError(
                f"Command timed out after {timeout} seconds: {command_str}",
                command=command_str,
            ) from e

        stdout = stdout or ""
        stderr = stderr or ""

        if process.returncode != 0:
            logger.warning(
                f"Command failed: {command_str}, exit code: {process.returncode}, "
                f"error: {stderr.strip()}"
            )
            raise ProcessExecutionError(
                process.returncode, stderr, command=command_str, stdout=stdout
            )

        return stdout

    def run_detached(
        self,
        executable: str,
        arguments: list[str],
        working_directory: str | None = None,
    ) -> subprocess.Popen | None:
        """
        Start a program without waiting for it or capturing its output.

        Failures are logged, never raised.

        Args:
            executable: Absolute path of the program
            arguments: Program arguments
            working_directory: Directory to run in (inherits ours if None)

        Returns:
            Optional[subprocess.Popen]: The started process, or None if it failed to start
        """
        command = [executable, *arguments]
        command_str = shlex.join(command)
        logger.debug(f"Launching detached: {command_str}")

        try:
            return subprocess.Popen(
                command,
                cwd=working_directory,
                env=self.environment(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to launch {command_str}: {e}")
            return None
