"""Coordinated shutdown of analytics clients."""

from .shutdown import Closable, ShutdownManager, get_shutdown_manager

__all__ = ["Closable", "ShutdownManager", "get_shutdown_manager"]
