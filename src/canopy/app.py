"""Main application class and entry point."""

import logging
import signal
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

from . import __version__
from .controllers.app_state import AppState
from .services.config_manager import ConfigManager
from .utils.exceptions import CanopyError, PathError
from .utils.logging_config import setup_error_logging, setup_logging
from .utils.path_manager import PathManager


class CanopyApp:
    """Main application class for Canopy."""

    def __init__(self, config_manager: ConfigManager | None = None):
        self.app: QCoreApplication | None = None
        self.config_manager = config_manager or ConfigManager()
        self.app_state: AppState | None = None
        self.refresh_timer: QTimer | None = None
        self.logger = logging.getLogger(__name__)

    def initialize(self) -> None:
        """Initialize the application."""
        config = self.config_manager.config

        # Set up logging first
        setup_logging(level=config.log_level)
        setup_error_logging()
        self.logger.info(f"Initializing Canopy {__version__}")

        try:
            PathManager.ensure_directories()
        except PathError as e:
            self.logger.warning(f"Could not prepare application directories: {e}")

        self.app = QCoreApplication.instance() or QCoreApplication(sys.argv)
        self.app.setApplicationName("Canopy")
        self.app.setApplicationVersion(__version__)
        self.app.setOrganizationName("Canopy")

        self.app_state = AppState(config_manager=self.config_manager)
        self.app_state.alert_requested.connect(self._on_alert_requested)

        for service in (self.app_state.worktree_service, self.app_state.github_service):
            try:
                service.initialize()
            except CanopyError as e:
                self.logger.error(f"Service initialization failed: {e}")

        self.refresh_timer = QTimer()
        self.refresh_timer.setInterval(max(config.refresh_interval, 1) * 1000)
        self.refresh_timer.timeout.connect(self.app_state.refresh_in_background)

        self.app.aboutToQuit.connect(self._on_about_to_quit)

        self.logger.info("Application initialized successfully")

    def run(self) -> int:
        """Run the application."""
        if not self.app or not self.app_state or not self.refresh_timer:
            raise RuntimeError("Application not initialized. Call initialize() first.")

        self.logger.info("Starting application")

        # Ctrl+C in a terminal quits cleanly
        signal.signal(signal.SIGINT, lambda *_: self.app.quit())

        self.app_state.refresh_in_background()
        self.refresh_timer.start()

        return self.app.exec()

    def _on_alert_requested(self, title: str, message: str) -> None:
        self.logger.error(f"{title}: {message}")

    def _on_about_to_quit(self) -> None:
        """Handle application shutdown."""
        self.logger.info("Application shutting down")

        if self.refresh_timer:
            self.refresh_timer.stop()
        if self.app_state:
            self.app_state.shutdown()
        self.config_manager.save_config()


def main() -> int:
    """Main entry point for the application."""
    app = CanopyApp()

    try:
        app.initialize()
        return app.run()
    except Exception as e:
        logging.error(f"Failed to start application: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
