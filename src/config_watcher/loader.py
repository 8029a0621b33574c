from __future__ import annotations

import datetime
import logging
import os
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

from config_watcher.exceptions import ConfigIOError, ConfigSerializationError

from .serialization import SerializerProtocol, values_equal
from .sink import ErrorSink
from .value import ValueStore

logger = logging.getLogger("config_watcher.loader")
logger.addHandler(logging.NullHandler())

T = TypeVar("T")


class Loader(Generic[T]):
    """
    Reconciles the in-memory value with the backing file.

    ``load`` and ``save`` bodies are serialised by a writer lock so that the
    value published after any sequence of saves and reloads is the one on
    disk. Readers of the ValueStore never take this lock.
    """

    def __init__(
        self,
        file_path: str,
        store: ValueStore[T],
        serializer: SerializerProtocol,
        sink: ErrorSink,
        on_change: Callable[[], object],
        *,
        file_mode: int = 0o600,
    ) -> None:
        self._path = file_path
        self._store = store
        self._serializer = serializer
        self._sink = sink
        self._on_change = on_change
        self._file_mode = file_mode
        self._lock = threading.RLock()
        self._last_changed_at: Optional[datetime.datetime] = None
        # Malformed content already reported; repeated events for it stay quiet
        self._rejected: Optional[bytes] = None

    @property
    def file_path(self) -> str:
        return self._path

    @property
    def last_changed_at(self) -> Optional[datetime.datetime]:
        """UTC time the held value last changed through a load, if ever."""
        return self._last_changed_at

    def load(self, *, settle: float = 0.0) -> bool:
        """
        Re-read the file and publish its value if it differs from the held one.

        Never raises: failures go to the error sink. A missing or empty file
        is (re)populated from the held value. Returns True if the value changed.

        With ``settle`` > 0 an empty read is taken to be another writer's
        truncate-then-write in progress: the file is read again after
        ``settle`` seconds and only recreated if it is still empty.
        """
        with self._lock:
            try:
                data = self._read()
                if not data and settle > 0:
                    logger.debug("%s is empty; re-reading in %.3fs", self._path, settle)
                    time.sleep(settle)
                    data = self._read()
            except OSError as exc:
                err = ConfigIOError(f"Cannot read config file: {exc.strerror or exc}", self._path)
                self._report(err, exc)
                self._recreate("unreadable")
                return False

            if not data:
                self._recreate("empty")
                return False

            try:
                new_value = self._serializer.loads(data)
            except Exception as exc:
                # Last-known-good value is kept.
                if data != self._rejected:
                    self._rejected = data
                    err = self._as_serialization_error(exc, "Cannot decode config file")
                    self._report(err, exc)
                else:
                    logger.debug("Content of %s still malformed; not reported again", self._path)
                return False
            self._rejected = None

            if values_equal(self._serializer, self._store.peek(), new_value):
                logger.debug("Reloaded %s; value unchanged", self._path)
                return False

            self._store.store(new_value)
            self._last_changed_at = datetime.datetime.now(tz=datetime.timezone.utc)
            logger.info("Config reloaded from %s", self._path)
        self._on_change()
        return True

    def save(self, value: T) -> None:
        """
        Persist ``value`` and reconcile the held value from disk.

        Raises ConfigSerializationError or ConfigIOError (also reported to the
        sink). After a successful return the held value reflects the file,
        which under concurrent writers may be another writer's value.
        """
        with self._lock:
            self._write(value)
            logger.debug("Saved %s; reconciling", self._path)
            self.load()

    def write_default(self, value: T) -> bool:
        """Serialize and write ``value`` without reloading. Returns success."""
        with self._lock:
            try:
                self._write(value)
            except (ConfigIOError, ConfigSerializationError):
                return False
            return True

    def _read(self) -> bytes:
        with open(self._path, "rb") as fh:
            return fh.read()

    def _recreate(self, reason: str) -> None:
        if self.write_default(self._store.peek()):
            logger.info("Config file %s was %s; wrote current value", self._path, reason)

    def _write(self, value: T) -> None:
        try:
            data = self._serializer.dumps(value)
        except Exception as exc:
            err = self._as_serialization_error(exc, "Cannot encode config value")
            self._report(err, exc)
            raise err from exc

        try:
            fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, self._file_mode)
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
        except OSError as exc:
            err = ConfigIOError(f"Cannot write config file: {exc.strerror or exc}", self._path)
            self._report(err, exc)
            raise err from exc

    def _as_serialization_error(self, exc: Exception, message: str) -> ConfigSerializationError:
        return ConfigSerializationError(f"{message}: {exc}", self._path)

    def _report(self, err: Exception, cause: BaseException) -> None:
        err.__cause__ = cause
        self._sink.report(err)
