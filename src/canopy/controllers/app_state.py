"""Application state controller that coordinates services and refreshes."""

import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import replace

from PyQt6.QtCore import QObject, QThread, pyqtSignal, pyqtSlot

from ..models.repository import Repository
from ..models.terminal import Terminal
from ..models.worktree import Worktree
from ..services.config_manager import ConfigManager
from ..services.github_service import GitHubService
from ..services.notification_service import NotificationService
from ..services.process_runner import ProcessRunner
from ..services.process_supervisor import ProcessSupervisor
from ..services.terminal_launcher import TerminalLauncher
from ..services.worktree_service import WorktreeService
from ..utils.exceptions import CanopyError, GitHubError, ProcessSupervisorError
from ..utils.logging_config import log_structured_error

logger = logging.getLogger(__name__)

POST_CREATE_DELAY = 0.5


class RefreshWorker(QObject):
    """Runs one refresh on a background thread."""

    finished = pyqtSignal(bool)  # whether the refresh actually ran

    def __init__(self, app_state: "AppState"):
        super().__init__()
        self._app_state = app_state

    @pyqtSlot()
    def run(self):
        ran = False
        try:
            ran = self._app_state.refresh()
        except Exception:
            logger.exception("Background refresh failed")
        self.finished.emit(ran)


class AppState(QObject):
    """
    Central state for the menu-bar UI.

    Owns the repository list, the selected repository, the worktree list of the
    selected repository and the GitHub error slot. Mutable state is guarded by
    one lock; git and gh run outside it and signals are emitted after release.
    """

    worktrees_changed = pyqtSignal(object)  # List[Worktree]
    repositories_changed = pyqtSignal()
    loading_changed = pyqtSignal(bool)
    github_error_changed = pyqtSignal(object)  # Optional[GitHubError], as shown
    alert_requested = pyqtSignal(str, str)  # title, message
    refresh_finished = pyqtSignal()
    processes_changed = pyqtSignal()

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        runner: ProcessRunner | None = None,
        worktree_service: WorktreeService | None = None,
        github_service: GitHubService | None = None,
        process_supervisor: ProcessSupervisor | None = None,
        terminal_launcher: TerminalLauncher | None = None,
        notification_service: NotificationService | None = None,
        post_create_delay: float = POST_CREATE_DELAY,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self.config_manager = config_manager or ConfigManager()
        config = self.config_manager.config
        self.runner = runner or ProcessRunner(
            custom_cli_path=config.custom_cli_path, timeout=config.command_timeout
        )
        self.worktree_service = worktree_service or WorktreeService(self.runner)
        self.github_service = github_service or GitHubService(self.runner)
        self.process_supervisor = process_supervisor or ProcessSupervisor(self.runner)
        self.terminal_launcher = terminal_launcher or TerminalLauncher(self.runner)
        self.notification_service = notification_service or NotificationService(
            self.runner
        )
        self.post_create_delay = post_create_delay

        self._lock = threading.RLock()
        self._repositories: list[Repository] = []
        self._selected_repository: Repository | None = None
        self._worktrees: list[Worktree] = []
        self._is_loading = False
        self._is_refreshing = False
        self._gh_error: GitHubError | None = None
        self._show_gh_error = True

        self.launch_at_login = False
        self.selected_terminal = Terminal.WARP
        self.custom_cli_path: str | None = None

        self._refresh_thread: QThread | None = None
        self._refresh_worker: RefreshWorker | None = None

        self.process_supervisor.processes_changed.connect(self.processes_changed)

        self.load_settings()

    # State accessors

    @property
    def repositories(self) -> list[Repository]:
        with self._lock:
            return list(self._repositories)

    @property
    def selected_repository(self) -> Repository | None:
        with self._lock:
            return self._selected_repository

    @property
    def worktrees(self) -> list[Worktree]:
        with self._lock:
            return list(self._worktrees)

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._is_loading

    @property
    def is_refreshing(self) -> bool:
        with self._lock:
            return self._is_refreshing

    @property
    def gh_error(self) -> GitHubError | None:
        with self._lock:
            return self._gh_error

    @property
    def show_gh_error(self) -> bool:
        with self._lock:
            return self._show_gh_error

    @property
    def visible_gh_error(self) -> GitHubError | None:
        """The GitHub error to show in the banner, if any."""
        with self._lock:
            return self._gh_error if self._show_gh_error else None

    # Settings and repositories

    def load_settings(self) -> None:
        """Populate state from the persisted settings."""
        config = self.config_manager.config
        with self._lock:
            self._repositories = list(config.repositories)
            self._selected_repository = config.get_selected_repository()
        self.launch_at_login = config.launch_at_login
        self.selected_terminal = config.terminal
        self.custom_cli_path = config.custom_cli_path
        self.runner.custom_cli_path = config.custom_cli_path
        self.runner.timeout = config.command_timeout

        logger.info(f"Loaded settings with {len(config.repositories)} repositories")
        self.repositories_changed.emit()

    def select_repository(self, repository: Repository) -> None:
        """Select a repository, persist the choice and refresh in the background."""
        with self._lock:
            self._selected_repository = repository
        self.config_manager.set_selected_repository_id(repository.id)
        logger.info(f"Selected repository: {repository.name}")
        self.repositories_changed.emit()
        self.refresh_in_background()

    def add_repository(self, path: str) -> Repository:
        """
        Register a repository.

        The new repository becomes selected when nothing is selected yet.

        Args:
            path: Repository root

        Returns:
            Repository: The registered repository
        """
        repository = Repository.from_path(path)
        with self._lock:
            self._repositories.append(repository)
            select_new = self._selected_repository is None
        self.config_manager.add_repository(repository)
        logger.info(f"Added repository {repository.name} at {path}")
        self.repositories_changed.emit()

        if select_new:
            self.select_repository(repository)
        return repository

    def remove_repositories(self, repository_ids: Iterable[str]) -> None:
        """
        Unregister repositories.

        When the selected repository is removed, the first remaining repository
        becomes selected (or none, when the list is empty).
        """
        ids = set(repository_ids)
        with self._lock:
            removing_selected = (
                self._selected_repository is not None
                and self._selected_repository.id in ids
            )
            self._repositories = [r for r in self._repositories if r.id not in ids]
            if removing_selected:
                self._selected_repository = (
                    self._repositories[0] if self._repositories else None
                )
            selected = self._selected_repository

        self.config_manager.remove_repositories(ids)
        if removing_selected:
            self.config_manager.set_selected_repository_id(
                selected.id if selected else None
            )
        self.repositories_changed.emit()

    def _replace_repository(self, repository_id: str, **changes) -> Repository | None:
        """Apply changes to a repository, keeping the selection in step with the list."""
        with self._lock:
            for index, existing in enumerate(self._repositories):
                if existing.id == repository_id:
                    updated = existing.with_changes(**changes)
                    self._repositories[index] = updated
                    if (
                        self._selected_repository is not None
                        and self._selected_repository.id == repository_id
                    ):
                        self._selected_repository = updated
                    break
            else:
                logger.warning(f"Repository not found for update: {repository_id}")
                return None

        self.config_manager.update_repository(updated)
        self.repositories_changed.emit()
        return updated

    def update_repository_hook(
        self, repository: Repository, command: str | None
    ) -> Repository | None:
        """Set or clear the post-create hook, both in settings and in git config."""
        updated = self._replace_repository(repository.id, post_create_hook=command)
        if updated is None:
            return None

        try:
            if command:
                self.worktree_service.set_post_create_hook(command, repository.path)
            else:
                self.worktree_service.clear_post_create_hook(repository.path)
        except CanopyError as e:
            logger.error(f"Failed to configure hook for {repository.name}: {e}")
            log_structured_error(e.to_dict(), "Hook configuration failed")
            self.alert_requested.emit(
                "Failed to Configure Hook",
                f"Could not save the post-create hook.\n\nError: {e.user_message}",
            )
        return updated

    def update_repository_base_branch(
        self, repository: Repository, base_branch: str | None
    ) -> Repository | None:
        return self._replace_repository(repository.id, base_branch=base_branch)

    def update_repository_run_command(
        self, repository: Repository, run_command: str | None
    ) -> Repository | None:
        return self._replace_repository(repository.id, run_command=run_command)

    def set_selected_terminal(self, terminal: Terminal) -> None:
        self.selected_terminal = terminal
        self.config_manager.update_preferences(terminal=terminal)

    def set_custom_cli_path(self, path: str | None) -> None:
        """Set the directory searched first for git, gh and friends."""
        path = path or None
        self.custom_cli_path = path
        self.runner.custom_cli_path = path
        self.config_manager.update_preferences(custom_cli_path=path)

    def set_launch_at_login(self, enabled: bool) -> None:
        self.launch_at_login = enabled
        self.config_manager.update_preferences(launch_at_login=enabled)

    # Refresh

    def refresh(self) -> bool:
        """
        Refresh worktrees, cached URLs and PR status for the selected repository.

        A call made while another refresh is running returns immediately.

        Returns:
            bool: False if the call was skipped because a refresh was in progress
        """
        with self._lock:
            if self._is_refreshing:
                logger.debug("Refresh already in progress, skipping")
                return False

            repository = self._selected_repository
            if repository is None:
                self._worktrees = []
            else:
                self._is_refreshing = True
                self._is_loading = True

        if repository is None:
            self.worktrees_changed.emit([])
            self.refresh_finished.emit()
            return True

        self.loading_changed.emit(True)
        try:
            self._refresh_repository(repository)
        finally:
            with self._lock:
                self._is_refreshing = False
                self._is_loading = False
            self.loading_changed.emit(False)
            self.refresh_finished.emit()
        return True

    def _refresh_repository(self, repository: Repository) -> None:
        try:
            worktrees = self.worktree_service.list_worktrees(repository.path)
        except CanopyError as e:
            # Keep the last good list on a transient failure.
            logger.error(f"Failed to list worktrees for {repository.name}: {e}")
            log_structured_error(e.to_dict(), "Worktree listing failed")
            self.alert_requested.emit(
                "Failed to Load Worktrees",
                f"Could not list worktrees for {repository.name}.\n\n"
                f"Error: {e.user_message}",
            )
            return

        self._publish_worktrees(worktrees)
        self.process_supervisor.refresh_urls([wt.path for wt in worktrees])
        self._refresh_pr_info(repository.path, worktrees)

    def _refresh_pr_info(self, repo_path: str, worktrees: list[Worktree]) -> None:
        status_error = self.github_service.check_gh_status()
        if status_error is not None:
            self._set_gh_error(status_error)
            return

        branches = [(wt.branch_name, wt.path) for wt in worktrees]
        pr_map, error = self.github_service.fetch_pr_info_batch(branches, repo_path)

        self._publish_worktrees(
            [replace(wt, pr_info=pr_map.get(wt.path)) for wt in worktrees]
        )
        self._set_gh_error(error)

    def _publish_worktrees(self, worktrees: list[Worktree]) -> None:
        with self._lock:
            self._worktrees = list(worktrees)
        self.worktrees_changed.emit(list(worktrees))

    def _set_gh_error(self, error: GitHubError | None) -> None:
        with self._lock:
            changed = self._gh_error != error
            self._gh_error = error
            visible = error if self._show_gh_error else None
        if changed:
            if error is not None:
                logger.warning(f"GitHub status: {error.user_message}")
            self.github_error_changed.emit(visible)

    def refresh_in_background(self) -> bool:
        """
        Run ``refresh`` on a worker thread; ``refresh_finished`` fires when done.

        Returns:
            bool: False if a background refresh is already running
        """
        if self._refresh_thread is not None:
            logger.debug("Background refresh already running")
            return False

        thread = QThread()
        worker = RefreshWorker(self)
        worker.moveToThread(thread)

        thread.started.connect(worker.run)
        worker.finished.connect(thread.quit)
        thread.finished.connect(self._on_refresh_thread_finished)

        self._refresh_thread = thread
        self._refresh_worker = worker
        thread.start()
        return True

    def _on_refresh_thread_finished(self) -> None:
        thread, self._refresh_thread = self._refresh_thread, None
        worker, self._refresh_worker = self._refresh_worker, None
        if worker is not None:
            worker.deleteLater()
        if thread is not None:
            thread.deleteLater()

    def dismiss_gh_error(self) -> None:
        """Hide the GitHub banner until the error is reset."""
        with self._lock:
            self._show_gh_error = False
        self.github_error_changed.emit(None)

    def reset_gh_error(self) -> None:
        """Clear the GitHub error and show future errors again."""
        with self._lock:
            self._show_gh_error = True
            self._gh_error = None
        self.github_error_changed.emit(None)

    # Worktree actions

    def create_worktree(self, branch: str) -> Worktree | None:
        """
        Create a worktree for a new branch off the repository's base branch.

        Once created, the worktree is opened in the terminal and the post-create
        hook runs inside it; the hook outcome is reported as a notification.

        Args:
            branch: Name of the new branch

        Returns:
            Optional[Worktree]: The new worktree, or None if nothing is selected
            or the worktree did not show up in the refreshed list

        Raises:
            CanopyError: If fetching the base branch or creating the worktree fails
        """
        repository = self.selected_repository
        if repository is None:
            return None

        base_branch = repository.effective_base_branch
        self.worktree_service.fetch_remote_branch(base_branch, repository.path)
        self.worktree_service.create_worktree(branch, base_branch, repository.path)

        self.refresh()

        new_worktree = next(
            (wt for wt in self.worktrees if wt.branch_name == branch), None
        )
        if new_worktree is None:
            logger.warning(f"New worktree for {branch} not found after refresh")
            return None

        self.launch_worktree(new_worktree)

        # Let the terminal window appear before the hook starts.
        time.sleep(self.post_create_delay)

        if repository.post_create_hook:
            try:
                self.worktree_service.run_post_create_hook(
                    repository.post_create_hook, new_worktree.path
                )
            except CanopyError as e:
                logger.error(f"Post-create hook failed for {branch}: {e}")
                self.notification_service.show_error(
                    "Worktree Setup Failed",
                    f"Setup failed for '{branch}': {e.user_message}",
                )
            else:
                self.notification_service.show_success(
                    "Worktree Ready", f"Setup complete for '{branch}'"
                )

        return new_worktree

    def remove_worktree(self, worktree: Worktree) -> None:
        """
        Remove a worktree, forcing removal when it has uncommitted changes.

        Raises:
            CanopyError: If git cannot remove the worktree
        """
        repository = self.selected_repository
        if repository is None:
            return

        self.worktree_service.remove_worktree(
            worktree.branch_name, worktree.is_dirty, repository.path
        )
        self.refresh()

    def launch_worktree(self, worktree: Worktree) -> bool:
        """Open a worktree in the selected terminal; failures raise an alert."""
        repository = self.selected_repository
        if repository is None:
            return False

        terminal = self.selected_terminal
        try:
            path = self.worktree_service.get_worktree_path(
                worktree.branch_name, repository.path
            )
        except CanopyError as e:
            logger.error(f"Failed to resolve worktree for {worktree.branch_name}: {e}")
            self._alert_launch_failed(worktree, terminal, e.user_message)
            return False

        if not self.terminal_launcher.launch(path, terminal):
            self._alert_launch_failed(worktree, terminal, "Could not open the terminal")
            return False
        return True

    def _alert_launch_failed(
        self, worktree: Worktree, terminal: Terminal, reason: str
    ) -> None:
        self.alert_requested.emit(
            "Failed to Launch Worktree",
            f"Could not open '{worktree.branch_name}' in {terminal.display_name}."
            f"\n\nError: {reason}",
        )

    # Processes

    def _run_command(self) -> str | None:
        repository = self.selected_repository
        if repository is None:
            return None
        return repository.run_command or None

    def start_process(self, worktree: Worktree) -> bool:
        """Start the repository's run command in a worktree."""
        command = self._run_command()
        if command is None:
            return False
        try:
            self.process_supervisor.start(command, worktree.path)
        except ProcessSupervisorError as e:
            self.alert_requested.emit(
                "Failed to Start Process",
                f"Could not start '{command}'.\n\nError: {e.user_message}",
            )
            return False
        return True

    def stop_process(self, worktree: Worktree) -> None:
        self.process_supervisor.stop(worktree.path)

    def restart_process(self, worktree: Worktree) -> bool:
        """Restart the repository's run command in a worktree."""
        command = self._run_command()
        if command is None:
            return False
        try:
            self.process_supervisor.restart(command, worktree.path)
        except ProcessSupervisorError as e:
            self.alert_requested.emit(
                "Failed to Restart Process",
                f"Could not restart '{command}'.\n\nError: {e.user_message}",
            )
            return False
        return True

    def is_process_running(self, worktree: Worktree) -> bool:
        return self.process_supervisor.is_running(worktree.path)

    def get_worktree_url(self, worktree: Worktree) -> str | None:
        return self.process_supervisor.get_canopy_url(worktree.path)

    def shutdown(self) -> None:
        """Stop supervised processes and background work."""
        logger.info("Shutting down application state")
        thread = self._refresh_thread
        if thread is not None:
            thread.quit()
            thread.wait()
        self.process_supervisor.stop_all()
        self.worktree_service.shutdown()
