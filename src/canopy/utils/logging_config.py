"""Logging configuration for the application."""

import logging
import logging.handlers
import os
import sys

from .path_manager import PathManager

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ERRORS_LOG = "errors.log"

# Dedicated log files for the loggers that talk to external tools.
CHANNEL_LOGS = {
    "canopy.services.worktree_service": "git_operations.log",
    "canopy.services.github_service": "git_operations.log",
    "canopy.services.process_supervisor": "processes.log",
}


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
            )
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _rotating_handler(
    filename: str, level: int, max_file_size: int, backup_count: int
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        PathManager.get_log_file(filename),
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Set up logging configuration for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to files
        log_to_console: Whether to log to console
        max_file_size: Maximum size of log files before rotation
        backup_count: Number of backup log files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(
            ColoredFormatter(fmt=FILE_FORMAT, datefmt="%H:%M:%S")
        )
        root_logger.addHandler(console_handler)

    if log_to_file:
        try:
            PathManager.get_log_dir().mkdir(parents=True, exist_ok=True)

            root_logger.addHandler(
                _rotating_handler("app.log", numeric_level, max_file_size, backup_count)
            )
            root_logger.addHandler(
                _rotating_handler(ERRORS_LOG, logging.ERROR, max_file_size, backup_count)
            )

            channel_handlers: dict[str, logging.Handler] = {}
            for logger_name, filename in CHANNEL_LOGS.items():
                if filename not in channel_handlers:
                    channel_handlers[filename] = _rotating_handler(
                        filename, logging.DEBUG, max_file_size, backup_count
                    )
                channel_logger = logging.getLogger(logger_name)
                channel_logger.handlers.clear()
                channel_logger.addHandler(channel_handlers[filename])
                channel_logger.propagate = True

        except OSError as e:
            logging.getLogger(__name__).error(f"Failed to set up file logging: {e}")

    logging.getLogger(__name__).info(
        f"Logging configured - Level: {level}, File: {log_to_file}, Console: {log_to_console}"
    )


def set_log_level(level: str) -> None:
    """
    Change the logging level for all root handlers.

    Args:
        level: New logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers:
        # errors.log stays at ERROR
        if os.path.basename(getattr(handler, "baseFilename", "")) != ERRORS_LOG:
            handler.setLevel(numeric_level)

    logging.getLogger(__name__).info(f"Log level changed to {level}")


class StructuredErrorFormatter(logging.Formatter):
    """Formatter that appends structured error details to the message."""

    def format(self, record):
        formatted = super().format(record)

        error_details = getattr(record, "error_details", None)
        if isinstance(error_details, dict):
            details_lines = [
                f"  {key}: {value}"
                for key, value in error_details.items()
                if value is not None
            ]
            if details_lines:
                formatted += "\nError Details:\n" + "\n".join(details_lines)

        return formatted


def setup_error_logging() -> None:
    """Set up the structured error log."""
    try:
        PathManager.get_log_dir().mkdir(parents=True, exist_ok=True)

        error_logger = logging.getLogger("canopy.errors")
        handler = logging.handlers.RotatingFileHandler(
            PathManager.get_log_file("structured_errors.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        handler.setLevel(logging.ERROR)
        handler.setFormatter(
            StructuredErrorFormatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )

        error_logger.addHandler(handler)
        error_logger.setLevel(logging.ERROR)
        error_logger.propagate = False

    except OSError as e:
        logging.getLogger(__name__).error(
            f"Failed to set up structured error logging: {e}"
        )


def log_structured_error(
    error_dict: dict, message: str = "Structured error occurred"
) -> None:
    """
    Log a structured error with detailed information.

    Args:
        error_dict: Dictionary containing error details, usually ``CanopyError.to_dict()``
        message: Main error message
    """
    logging.getLogger("canopy.errors").error(message, extra={"error_details": error_dict})
