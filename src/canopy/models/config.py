"""Configuration data models for Canopy."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..utils.exceptions import ConfigurationError
from ..utils.path_manager import PathManager
from .repository import Repository
from .terminal import Terminal

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0.0"
CONFIG_FILENAME = "settings.json"


def _int_setting(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {key}: {value!r}") from e


@dataclass
class AppConfig:
    """
    Persisted application settings.

    Attributes:
        version: Configuration version for migration purposes
        repositories: Registered repositories, in display order
        selected_repository_id: ID of the repository whose worktrees are shown
        launch_at_login: Whether the app registers itself as a login item
        terminal: Terminal application used to open worktrees
        custom_cli_path: Directory prepended to PATH for every external command
        refresh_interval: Seconds between periodic refreshes
        command_timeout: Seconds an awaited git or gh command may run before it is killed
        log_level: Logging level name
    """

    version: str = CONFIG_VERSION
    repositories: list[Repository] = field(default_factory=list)
    selected_repository_id: str | None = None
    launch_at_login: bool = False
    terminal: Terminal = Terminal.WARP
    custom_cli_path: str | None = None
    refresh_interval: int = 60
    command_timeout: int = 30
    log_level: str = "INFO"

    def get_repository(self, repository_id: str | None) -> Repository | None:
        """
        Get a repository by ID.

        Args:
            repository_id: ID of the repository to find

        Returns:
            Optional[Repository]: Repository if found, None otherwise
        """
        for repository in self.repositories:
            if repository.id == repository_id:
                return repository
        return None

    def get_selected_repository(self) -> Repository | None:
        """
        Resolve the selected repository.

        Falls back to the first repository when nothing (or something stale) is selected.
        """
        selected = self.get_repository(self.selected_repository_id)
        if selected is None and self.repositories:
            return self.repositories[0]
        return selected

    def save(self, config_file: Path | None = None) -> bool:
        """
        Save configuration to file.

        Args:
            config_file: Optional path to config file (uses default if None)

        Returns:
            bool: True if save was successful, False otherwise
        """
        if config_file is None:
            config_file = PathManager.get_config_file(CONFIG_FILENAME)

        try:
            config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(config_file, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

            logger.debug(f"Configuration saved to: {config_file}")
            return True

        except (OSError, TypeError) as e:
            logger.error(f"Failed to save configuration to {config_file}: {e}")
            return False

    @classmethod
    def load(cls, config_file: Path | None = None) -> "AppConfig":
        """
        Load configuration from file.

        Args:
            config_file: Optional path to config file (uses default if None)

        Returns:
            AppConfig: Loaded configuration or default if loading fails
        """
        if config_file is None:
            config_file = PathManager.get_config_file(CONFIG_FILENAME)

        if not config_file.exists():
            logger.info(f"Configuration file not found: {config_file}, using defaults")
            return cls()

        try:
            with open(config_file, encoding="utf-8") as f:
                data = json.load(f)

            config = cls.from_dict(data)
            logger.info(f"Configuration loaded from: {config_file}")
            return config

        except (
            OSError,
            json.JSONDecodeError,
            KeyError,
            TypeError,
            AttributeError,
            ValueError,
            ConfigurationError,
        ) as e:
            logger.error(f"Failed to load configuration from {config_file}: {e}")
            logger.info("Creating default configuration")
            return cls()

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize configuration to dictionary.

        Returns:
            Dict[str, Any]: Serialized configuration data
        """
        return {
            "version": self.version,
            "repositories": [repository.to_dict() for repository in self.repositories],
            "selected_repository_id": self.selected_repository_id,
            "launch_at_login": self.launch_at_login,
            "terminal": self.terminal.value,
            "custom_cli_path": self.custom_cli_path,
            "refresh_interval": self.refresh_interval,
            "command_timeout": self.command_timeout,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        """
        Deserialize configuration from dictionary.

        Args:
            data: Dictionary containing configuration data

        Returns:
            AppConfig: Deserialized configuration instance
        """
        return cls(
            version=data.get("version", CONFIG_VERSION),
            repositories=[
                Repository.from_dict(repository_data)
                for repository_data in data.get("repositories", [])
            ],
            selected_repository_id=data.get("selected_repository_id"),
            launch_at_login=bool(data.get("launch_at_login", False)),
            terminal=Terminal.from_string(data.get("terminal")),
            custom_cli_path=data.get("custom_cli_path") or None,
            refresh_interval=_int_setting(data, "refresh_interval", 60),
            command_timeout=_int_setting(data, "command_timeout", 30),
            log_level=data.get("log_level", "INFO"),
        )

    def __str__(self) -> str:
        return f"AppConfig(repositories={len(self.repositories)}, version={self.version})"
