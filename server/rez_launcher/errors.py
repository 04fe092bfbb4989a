"""Exception hierarchy for the Rez Launcher backend.

Every failure that reaches a caller is a ``LauncherError`` subclass whose
message carries the stringified underlying cause.
"""

from __future__ import annotations


class LauncherError(Exception):
    """Base exception for all launcher failures."""


class ConfigError(LauncherError):
    """Raised for invalid runtime configuration."""


class StorageError(LauncherError):
    """Raised when the storage backend fails a query or write."""


class NotFoundError(LauncherError):
    """Raised when a mandatory collection or stage lookup finds nothing."""


class GenerationError(LauncherError):
    """Raised when the resolver cannot produce a snapshot."""


class LoadError(LauncherError):
    """Raised when a stored snapshot cannot be opened in a terminal."""


class EmptySnapshotError(LoadError):
    """Raised when a stage has no generated snapshot to load."""
