"""Configuration management service for Canopy."""

import logging
from pathlib import Path

from ..models.config import CONFIG_FILENAME, AppConfig
from ..models.repository import Repository
from ..utils.path_manager import PathManager

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Manages loading, saving and editing the persisted settings.

    The configuration is loaded lazily on first access. Every mutating helper
    saves immediately and reports whether the save succeeded.
    """

    def __init__(self, config_file: Path | None = None):
        """
        Initialize the configuration manager.

        Args:
            config_file: Optional path to config file (uses default if None)
        """
        self._config_file = config_file or PathManager.get_config_file(CONFIG_FILENAME)
        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        """
        Get the current configuration, loading it if necessary.

        Returns:
            AppConfig: Current application configuration
        """
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def load_config(self) -> AppConfig:
        """
        Load configuration from file.

        Returns:
            AppConfig: Loaded configuration, or defaults if the file is missing or corrupt
        """
        self._config = AppConfig.load(self._config_file)
        return self._config

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            bool: True if save was successful, False otherwise
        """
        if self._config is None:
            logger.warning("No configuration to save")
            return False

        success = self._config.save(self._config_file)
        if success:
            logger.info("Configuration saved successfully")
        else:
            logger.error("Failed to save configuration")
        return success

    def reload_config(self) -> AppConfig:
        """Reload configuration from file, discarding unsaved changes."""
        logger.info("Reloading configuration from file")
        self._config = None
        return self.config

    def reset_config(self) -> AppConfig:
        """Reset configuration to defaults (not saved until ``save_config``)."""
        logger.info("Resetting configuration to defaults")
        self._config = AppConfig()
        return self._config

    def get_repository(self, repository_id: str | None) -> Repository | None:
        return self.config.get_repository(repository_id)

    def get_repositories(self) -> list[Repository]:
        return list(self.config.repositories)

    def add_repository(self, repository: Repository) -> bool:
        """
        Append a repository to the configuration.

        Returns:
            bool: True if the configuration was saved
        """
        self.config.repositories.append(repository)
        success = self.save_config()
        if success:
            logger.info(f"Repository added to configuration: {repository.name}")
        return success

    def remove_repositories(self, repository_ids: set[str]) -> bool:
        """
        Remove repositories by ID.

        Returns:
            bool: True if the configuration was saved
        """
        config = self.config
        before = len(config.repositories)
        config.repositories = [
            repo for repo in config.repositories if repo.id not in repository_ids
        ]
        removed = before - len(config.repositories)
        if removed == 0:
            logger.warning(f"No repositories matched for removal: {sorted(repository_ids)}")

        success = self.save_config()
        if success:
            logger.info(f"Removed {removed} repositories from configuration")
        return success

    def update_repository(self, repository: Repository) -> bool:
        """
        Replace the stored repository that has the same ID.

        Returns:
            bool: True if the repository was found and the configuration saved
        """
        config = self.config
        for index, existing in enumerate(config.repositories):
            if existing.id == repository.id:
                config.repositories[index] = repository
                return self.save_config()

        logger.warning(f"Repository not found in configuration for update: {repository.id}")
        return False

    def set_selected_repository_id(self, repository_id: str | None) -> bool:
        self.config.selected_repository_id = repository_id
        success = self.save_config()
        if success:
            logger.debug(f"Selected repository set to: {repository_id}")
        return success

    def update_preferences(self, **kwargs) -> bool:
        """
        Update top-level settings such as ``terminal`` or ``custom_cli_path``.

        Args:
            **kwargs: Setting name-value pairs; unknown names are ignored

        Returns:
            bool: True if the configuration was saved
        """
        config = self.config
        for key, value in kwargs.items():
            if key in ("repositories", "version") or not hasattr(config, key):
                logger.warning(f"Unknown preference key: {key}")
                continue
            setattr(config, key, value)
            logger.debug(f"Updated preference {key} to {value}")

        return self.save_config()

    def get_config_file_path(self) -> Path:
        return self._config_file

    def __repr__(self) -> str:
        return (
            f"ConfigManager(config_file='{self._config_file}', "
            f"config_loaded={self._config is not None})"
        )
