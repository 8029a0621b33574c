"""
ConfigWatcher: a typed configuration value kept in sync with a JSON file.

- Created from a default when the file is missing or empty, and the file is
  written back with that value.
- Reloads automatically when the file is edited externally; malformed
  content is reported and the last good value is kept.
- ``save()`` writes the file and reloads it, so ``get()`` always reflects disk.
- Subscribers get a content-free pulse whenever the value changes.

Thread safety:
- ``get()`` never takes a lock and never blocks.
- ``save()`` may block on file I/O; concurrent saves are allowed and the
  resulting value is whatever the file holds last.
- File monitoring runs on one background thread per watcher.

File format: a JSON document matching the configuration type, written with
2-space indentation and owner-only permissions when created.
"""

from __future__ import annotations

from config_watcher.cancel import CancelToken
from config_watcher.exceptions import (
    ConfigIOError,
    ConfigSerializationError,
    ConfigWatchError,
    ConfigWatcherError,
)
from config_watcher.hub import NotificationHub, Subscription
from config_watcher.options import WatcherOptions
from config_watcher.serialization import JsonSerializer, SerializerProtocol, values_equal
from config_watcher.sink import ErrorSink
from config_watcher.watcher import ConfigWatcher

__all__ = [
    "ConfigWatcher",
    "WatcherOptions",
    "CancelToken",
    "Subscription",
    "NotificationHub",
    "JsonSerializer",
    "SerializerProtocol",
    "values_equal",
    "ErrorSink",
    "ConfigWatcherError",
    "ConfigIOError",
    "ConfigSerializationError",
    "ConfigWatchError",
]
