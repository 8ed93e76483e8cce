"""Controllers coordinating services and application state."""

from .app_state import AppState, RefreshWorker

__all__ = ["AppState", "RefreshWorker"]
