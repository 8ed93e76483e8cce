"""OS-specific path management utilities."""

import os
import sys
from pathlib import Path

from .exceptions import PathError


class PathManager:
    """Manages OS-specific paths for configuration, logs, and cache."""

    APP_NAME = "Canopy"

    @staticmethod
    def get_config_dir() -> Path:
        """
        Get OS-appropriate configuration directory.

        Returns:
            Path to configuration directory
        """
        if sys.platform == "darwin":
            base_dir = Path.home() / "Library" / "Application Support"
        else:
            base_dir = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")

        return base_dir / PathManager.APP_NAME

    @staticmethod
    def get_log_dir() -> Path:
        """
        Get OS-appropriate log directory.

        Returns:
            Path to log directory
        """
        if sys.platform == "darwin":
            base_dir = Path.home() / "Library" / "Logs"
        else:
            base_dir = Path.home() / ".local" / "state"

        return base_dir / PathManager.APP_NAME

    @staticmethod
    def get_cache_dir() -> Path:
        """
        Get OS-appropriate cache directory.

        Returns:
            Path to cache directory
        """
        if sys.platform == "darwin":
            base_dir = Path.home() / "Library" / "Caches"
        else:
            base_dir = Path.home() / ".cache"

        return base_dir / PathManager.APP_NAME

    @staticmethod
    def ensure_directories() -> None:
        """
        Create necessary directories if they don't exist.

        Raises:
            PathError: If directories cannot be created or permissions are insufficient
        """
        directories = [
            PathManager.get_config_dir(),
            PathManager.get_log_dir(),
            PathManager.get_cache_dir(),
        ]

        for directory in directories:
            try:
                directory.mkdir(parents=True, exist_ok=True)
                PathManager.validate_directory_permissions(directory)
            except OSError as e:
                raise PathError(
                    f"Failed to create directory {directory}: {e}", path=str(directory)
                ) from e

    @staticmethod
    def get_config_file(filename: str) -> Path:
        """Get path to a configuration file."""
        return PathManager.get_config_dir() / filename

    @staticmethod
    def get_log_file(filename: str) -> Path:
        """Get path to a log file."""
        return PathManager.get_log_dir() / filename

    @staticmethod
    def validate_directory_permissions(directory: Path) -> None:
        """
        Validate that a directory has appropriate read/write permissions.

        Args:
            directory: Directory path to validate

        Raises:
            PathError: If directory doesn't exist or lacks required permissions
        """
        if not directory.exists():
            raise PathError(f"Directory does not exist: {directory}", path=str(directory))

        if not directory.is_dir():
            raise PathError(f"Path is not a directory: {directory}", path=str(directory))

        if not os.access(directory, os.R_OK):
            raise PathError(f"Directory is not readable: {directory}", path=str(directory))

        if not os.access(directory, os.W_OK):
            raise PathError(f"Directory is not writable: {directory}", path=str(directory))
