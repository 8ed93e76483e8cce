"""Base class for services."""

from abc import ABC, abstractmethod

from .process_runner import ProcessRunner


class BaseService(ABC):
    """Base class for services that shell out through a shared ProcessRunner."""

    def __init__(self, runner: ProcessRunner | None = None):
        self._runner = runner or ProcessRunner()
        self._initialized = False

    @property
    def runner(self) -> ProcessRunner:
        return self._runner

    def initialize(self) -> None:
        """Initialize the service."""
        if not self._initialized:
            self._do_initialize()
            self._initialized = True

    @abstractmethod
    def _do_initialize(self) -> None:
        """Perform service-specific initialization."""

    def is_initialized(self) -> bool:
        """Check if the service is initialized."""
        return self._initialized
