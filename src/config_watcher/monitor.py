from __future__ import annotations

import logging
import os
import queue
import threading
import time
from typing import Any, List, Optional, Union

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from config_watcher.exceptions import ConfigWatchError

from .cancel import CancelToken
from .loader import Loader
from .sink import ErrorSink
from .utils import _match_path

logger = logging.getLogger("config_watcher.monitor")
logger.addHandler(logging.NullHandler())

_RELOAD_EVENTS = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED, EVENT_TYPE_CLOSED}
)

QueueItem = Union[FileSystemEvent, Exception]

# Upper bound on one burst, in poll intervals, for files that never go quiet
_MAX_BURST_INTERVALS = 20


class TargetFileEventHandler(FileSystemEventHandler):
    """Forwards write/create events for one file in the watched directory."""

    def __init__(self, file_path: str, events: "queue.Queue[QueueItem]") -> None:
        super().__init__()
        self._target = _match_path(file_path)
        self._events = events

    def is_target_write(self, event: FileSystemEvent) -> bool:
        if event.is_directory or event.event_type not in _RELOAD_EVENTS:
            return False
        # A rename onto the target is how many editors save.
        path = event.dest_path if event.event_type == EVENT_TYPE_MOVED else event.src_path
        if not path:
            return False
        return _match_path(os.fsdecode(path)) == self._target

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            if self.is_target_write(event):
                self._events.put(event)
        except Exception as exc:
            # Raising here would kill the observer thread.
            self._events.put(exc)


class FSMonitor:
    """
    Background task reloading the config when its file changes.

    Watches the parent directory rather than the file so that editors which
    replace the file (write-and-rename, delete-and-recreate) keep being
    followed.
    """

    def __init__(
        self,
        file_path: str,
        loader: Loader[Any],
        sink: ErrorSink,
        token: CancelToken,
        *,
        use_polling: bool = False,
        poll_interval: float = 0.1,
    ) -> None:
        self._path = file_path
        self._loader = loader
        self._sink = sink
        self._token = token
        self._use_polling = use_polling
        self._poll_interval = poll_interval
        self._events: "queue.Queue[QueueItem]" = queue.Queue()
        self._handler = TargetFileEventHandler(file_path, self._events)
        self._observer: Optional[Any] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start observing. Failures are reported and leave the monitor idle."""
        directory = os.path.dirname(self._path)
        observer = PollingObserver(timeout=self._poll_interval) if self._use_polling else Observer()
        try:
            observer.schedule(self._handler, directory, recursive=False)
            observer.start()
        except Exception as exc:
            err = ConfigWatchError(f"Cannot watch directory {directory}: {exc}", self._path)
            err.__cause__ = exc
            self._sink.report(err)
            return False

        self._observer = observer
        t = threading.Thread(
            target=self._run,
            args=(observer,),
            name=f"config-watcher:{os.path.basename(self._path)}",
            daemon=True,
        )
        t.start()
        self._thread = t
        kind = "polling" if self._use_polling else type(observer).__name__
        logger.info("Watching %s (%s)", directory, kind)
        return True

    def _run(self, observer: Any) -> None:
        while not self._token.cancelled:
            if not self._watch_alive(observer):
                if not self._token.cancelled:
                    logger.warning("Filesystem watch for %s ended; live reload stopped", self._path)
                return
            try:
                first = self._events.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            items = self._drain_burst(first)

            reload = False
            for item in items:
                if isinstance(item, Exception):
                    err = ConfigWatchError(f"Filesystem event handling failed: {item}", self._path)
                    err.__cause__ = item
                    self._sink.report(err)
                else:
                    reload = True
            if reload and not self._token.cancelled:
                logger.debug("Change detected for %s (%d event(s))", self._path, len(items))
                self._loader.load(settle=self._poll_interval)
        logger.debug("Monitor loop exiting for %s", self._path)

    def _watch_alive(self, observer: Any) -> bool:
        if not observer.is_alive():
            return False
        # The observer clears its emitter set while stopping.
        emitters = list(observer.emitters)
        return any(e.is_alive() for e in emitters)

    def _drain_burst(self, first: QueueItem) -> List[QueueItem]:
        """
        Collect events until none has arrived for one poll interval, so a
        truncate-then-write by another process is read once it is complete.
        """
        items: List[QueueItem] = [first]
        deadline = time.monotonic() + self._poll_interval * _MAX_BURST_INTERVALS
        while not self._token.cancelled and time.monotonic() < deadline:
            try:
                items.append(self._events.get(timeout=self._poll_interval))
            except queue.Empty:
                break
        return items

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel the task, stop the observer and join both threads."""
        self._token.cancel()
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            if observer.is_alive():
                observer.join(timeout)
        t, self._thread = self._thread, None
        if t is not None and t is not threading.current_thread() and t.is_alive():
            t.join(timeout)
            logger.debug("Monitor thread stopped for %s", self._path)
