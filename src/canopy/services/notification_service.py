"""Desktop notifications via terminal-notifier."""

import logging
import shutil

from .process_runner import ProcessRunner, build_search_path

logger = logging.getLogger(__name__)

NOTIFIER_NAME = "terminal-notifier"
FALLBACK_NOTIFIER_PATH = "/opt/homebrew/bin/terminal-notifier"
SENDER_ID = "com.canopy.app"


class NotificationService:
    """
    Shows native notifications without waiting for them to be dismissed.
    """

    def __init__(self, runner: ProcessRunner | None = None):
        self._runner = runner or ProcessRunner()

    @property
    def notifier_path(self) -> str:
        """Locate terminal-notifier on the augmented PATH."""
        found = shutil.which(
            NOTIFIER_NAME, path=build_search_path(self._runner.custom_cli_path)
        )
        return found or FALLBACK_NOTIFIER_PATH

    def show_success(self, title: str, message: str) -> bool:
        return self._send(title, message)

    def show_error(self, title: str, message: str) -> bool:
        return self._send(title, message)

    def _send(self, title: str, message: str) -> bool:
        logger.debug(f"Notification: {title}: {message}")
        process = self._runner.run_detached(
            self.notifier_path,
            [
                "-title",
                title,
                "-message",
                message,
                "-sound",
                "default",
                "-sender",
                SENDER_ID,
            ],
        )
        if process is None:
            logger.warning(f"Failed to send notification: {title}")
            return False
        return True
