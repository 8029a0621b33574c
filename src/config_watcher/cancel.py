from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger("config_watcher.cancel")
logger.addHandler(logging.NullHandler())

Callback = Callable[[], None]


class CancelToken:
    """
    Cooperative cancellation scope.

    ``cancel()`` is idempotent and runs registered callbacks once, outside
    the internal lock. A child token is cancelled together with its parent,
    and detaches from the parent when cancelled on its own.
    """

    def __init__(self, parent: Optional["CancelToken"] = None) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._callbacks: Dict[int, Callback] = {}
        self._ids = itertools.count()
        self._detach: Optional[Callback] = None
        if parent is not None:
            self._detach = parent.add_callback(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns ``cancelled``."""
        return self._event.wait(timeout)

    def add_callback(self, func: Callback) -> Callback:
        """
        Run ``func`` on cancellation (immediately if already cancelled).
        Returns a function that removes the registration.
        """
        if not callable(func):
            raise TypeError("Callback must be callable")
        with self._lock:
            if not self._event.is_set():
                key = next(self._ids)
                self._callbacks[key] = func

                def remove() -> None:
                    with self._lock:
                        self._callbacks.pop(key, None)

                return remove
        func()
        return lambda: None

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
            detach, self._detach = self._detach, None
        if detach is not None:
            detach()
        for func in callbacks:
            try:
                func()
            except Exception as exc:
                logger.error("Cancellation callback %r failed: %s", func, exc)

    def __repr__(self) -> str:
        return f"<CancelToken cancelled={self.cancelled}>"
