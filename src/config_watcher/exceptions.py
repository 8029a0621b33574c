from __future__ import annotations

from typing import Optional


class ConfigWatcherError(Exception):
    """Base config watcher exception."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        msg = message if path is None else f"{message} (path: {path})"
        super().__init__(msg)


class ConfigIOError(ConfigWatcherError):
    """Raised when the backing file cannot be read or written."""


class ConfigSerializationError(ConfigWatcherError):
    """Raised when a value cannot be encoded or the file cannot be decoded."""


class ConfigWatchError(ConfigWatcherError):
    """Raised when the filesystem notification layer fails."""
