"""Opening worktrees in a terminal application."""

import logging

from ..models.terminal import Terminal
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

OPEN_EXECUTABLE = "/usr/bin/open"


class TerminalLauncher:
    """Opens a directory in the chosen terminal through its URL scheme."""

    def __init__(self, runner: ProcessRunner | None = None):
        self._runner = runner or ProcessRunner()

    def launch(self, path: str, terminal: Terminal) -> bool:
        """
        Open a new terminal session at ``path``.

        Args:
            path: Directory to open
            terminal: Terminal application to use

        Returns:
            bool: True if the URL was handed to the system, False if that failed
        """
        url = terminal.launch_url(path)
        logger.info(f"Opening {path} in {terminal.display_name}")
        process = self._runner.run_detached(OPEN_EXECUTABLE, [url])
        return process is not None
