"""Tests for the terminal launcher and desktop notifications."""

from unittest.mock import Mock, patch

from canopy.models.terminal import Terminal
from canopy.services.notification_service import (
    FALLBACK_NOTIFIER_PATH,
    NotificationService,
)
from canopy.services.process_runner import ProcessRunner
from canopy.services.terminal_launcher import OPEN_EXECUTABLE, TerminalLauncher


class TestTerminalLauncher:
    """Test cases for TerminalLauncher."""

    def setup_method(self):
        self.runner = Mock(spec=ProcessRunner)
        self.launcher = TerminalLauncher(runner=self.runner)

    def test_launch_hands_url_to_open(self):
        self.runner.run_detached.return_value = Mock()

        assert self.launcher.launch("/repos/app worktrees/x", Terminal.ITERM2)

        self.runner.run_detached.assert_called_once_with(
            OPEN_EXECUTABLE, ["iterm2:///command?d=/repos/app%20worktrees/x"]
        )

    def test_launch_failure_returns_false(self):
        self.runner.run_detached.return_value = None

        assert not self.launcher.launch("/repos/app", Terminal.WARP)


class TestNotificationService:
    """Test cases for NotificationService."""

    def setup_method(self):
        self.runner = Mock(spec=ProcessRunner)
        self.runner.custom_cli_path = None
        self.runner.run_detached.return_value = Mock()
        self.service = NotificationService(runner=self.runner)

    @patch("canopy.services.notification_service.shutil.which", return_value=None)
    def test_falls_back_to_homebrew_path(self, mock_which):
        self.service.show_success("Worktree Ready", "Setup complete for 'x'")

        executable, arguments = self.runner.run_detached.call_args.args
        assert executable == FALLBACK_NOTIFIER_PATH
        assert arguments == [
            "-title",
            "Worktree Ready",
            "-message",
            "Setup complete for 'x'",
            "-sound",
            "default",
            "-sender",
            "com.canopy.app",
        ]

    @patch(
        "canopy.services.notification_service.shutil.which",
        return_value="/custom/bin/terminal-notifier",
    )
    def test_uses_notifier_on_search_path(self, mock_which):
        self.runner.custom_cli_path = "/custom/bin"

        assert self.service.show_error("Worktree Setup Failed", "boom")

        assert self.runner.run_detached.call_args.args[0] == "/custom/bin/terminal-notifier"
        assert mock_which.call_args.kwargs["path"].startswith("/custom/bin")

    @patch("canopy.services.notification_service.shutil.which", return_value=None)
    def test_spawn_failure_returns_false(self, mock_which):
        self.runner.run_detached.return_value = None

        assert not self.service.show_success("t", "m")
