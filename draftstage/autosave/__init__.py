"""Periodic draft saving bound to live form state."""

from .controller import AutoSaveController, DEFAULT_INTERVAL_SECONDS

__all__ = ["AutoSaveController", "DEFAULT_INTERVAL_SECONDS"]
