from __future__ import annotations

import datetime
import logging
import os
import threading
from copy import deepcopy
from types import TracebackType
from typing import Generic, Optional, Type, TypeVar, Union

from .cancel import CancelToken
from .hub import NotificationHub, Subscription
from .loader import Loader
from .monitor import FSMonitor
from .options import WatcherOptions
from .serialization import JsonSerializer, SerializerProtocol
from .value import ValueStore

logger = logging.getLogger("config_watcher.watcher")
logger.addHandler(logging.NullHandler())

T = TypeVar("T")


class ConfigWatcher(Generic[T]):
    """
    A typed configuration value kept in sync with a JSON file.

    The value starts as ``default`` and is replaced whenever the file holds a
    different valid value, whether written through ``save()`` or edited
    externally. A missing or empty file is (re)created from the current
    value; a malformed one is reported and the last good value is kept.

    The watcher is Active from construction until ``teardown()``, then Closed:
    ``get()`` and ``save()`` keep working, but the file is no longer
    monitored and subscribers receive no more pulses. There is no way back to
    Active; build a new watcher instead.
    """

    def __init__(
        self,
        default: T,
        file_path: Union[str, "os.PathLike[str]"],
        options: Optional[WatcherOptions] = None,
    ) -> None:
        opts = options or WatcherOptions()
        self._path = os.path.abspath(os.fspath(file_path))
        self._options = opts
        self._sink = opts.build_sink()
        self._serializer: SerializerProtocol = opts.serializer or JsonSerializer(type(default))
        self._store: ValueStore[T] = ValueStore(deepcopy(default), copy_on_read=opts.copy_on_read)
        self._hub = NotificationHub()
        self._token = CancelToken()
        self._close_lock = threading.Lock()
        self._closed = False

        self._loader: Loader[T] = Loader(
            self._path,
            self._store,
            self._serializer,
            self._sink,
            self._hub.broadcast,
            file_mode=opts.file_mode,
        )
        self._loader.load()

        self._monitor = FSMonitor(
            self._path,
            self._loader,
            self._sink,
            self._token,
            use_polling=opts.use_polling,
            poll_interval=opts.poll_interval,
        )
        self._monitor.start()
        logger.info("ConfigWatcher active for %s", self._path)

    @property
    def file_path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def monitoring(self) -> bool:
        """True while the background file monitor is running."""
        return self._monitor.running

    @property
    def last_changed_at(self) -> Optional[datetime.datetime]:
        """UTC time the value last changed after construction, if ever."""
        return self._loader.last_changed_at

    def get(self) -> T:
        """Return the current value. Never blocks."""
        return self._store.get()

    def save(self, value: T) -> None:
        """
        Write ``value`` to the file, then reload the file into memory.

        Raises ConfigSerializationError or ConfigIOError. On return, ``get()``
        reflects the file, which is ``value`` unless another writer got in
        between. Once closed, the file is still written and reloaded but no
        pulses are delivered.
        """
        self._loader.save(value)

    def subscribe(self, scope: Optional[CancelToken] = None) -> Subscription:
        """
        Return a new subscription pulsed on every value change.

        It ends when ``scope`` is cancelled, when ``Subscription.cancel()`` is
        called, or at teardown. After teardown it is returned already closed.
        """
        return self._hub.subscribe(scope, self._token)

    def teardown(self) -> None:
        """Stop monitoring and close every subscription. Idempotent."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._monitor.stop()
        self._hub.close()
        logger.info("ConfigWatcher closed for %s", self._path)

    close = teardown

    def __enter__(self) -> "ConfigWatcher[T]":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.teardown()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "active"
        return f"<ConfigWatcher path={self._path!r} state={state} subscribers={len(self._hub)}>"
