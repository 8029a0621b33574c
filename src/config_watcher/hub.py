from __future__ import annotations

import itertools
import logging
import threading
from types import TracebackType
from typing import Callable, Dict, Iterator, List, Optional, Type

from .cancel import CancelToken

logger = logging.getLogger("config_watcher.hub")
logger.addHandler(logging.NullHandler())


class Subscription:
    """
    Receive side of a change notification.

    Holds at most one outstanding pulse: broadcasts that arrive before the
    previous pulse is consumed coalesce into it. A pulse means "the value may
    have changed, call ``get()``"; it carries no payload.
    """

    def __init__(self, sub_id: int, release: Callable[[int], None]) -> None:
        self._id = sub_id
        self._release = release
        self._cond = threading.Condition()
        self._pending = False
        self._closed = False
        self._detachers: List[Callable[[], None]] = []

    @property
    def id(self) -> int:
        return self._id

    @property
    def pending(self) -> bool:
        with self._cond:
            return self._pending

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Consume a pulse, blocking up to ``timeout`` seconds for one.
        Returns False on timeout or once the subscription is closed.
        """
        with self._cond:
            if not self._pending and not self._closed:
                self._cond.wait_for(lambda: self._pending or self._closed, timeout)
            if self._pending:
                self._pending = False
                return True
            return False

    def cancel(self) -> None:
        """Unregister from the hub and close."""
        self._release(self._id)
        self._close()

    def __iter__(self) -> Iterator[None]:
        while self.wait():
            yield None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.cancel()

    def __repr__(self) -> str:
        return f"<Subscription id={self._id} pending={self._pending} closed={self._closed}>"

    def _pulse(self) -> bool:
        with self._cond:
            if self._closed:
                return False
            self._pending = True
            self._cond.notify_all()
            return True

    def _bind(self, detach: Callable[[], None]) -> None:
        with self._cond:
            if not self._closed:
                self._detachers.append(detach)
                return
        detach()

    def _close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            detachers, self._detachers = self._detachers, []
            self._cond.notify_all()
        for detach in detachers:
            detach()


class NotificationHub:
    """Fan-out of content-free pulses to any number of subscriptions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, *scopes: Optional[CancelToken]) -> Subscription:
        """
        Register a subscription. Cancelling any of ``scopes`` unregisters and
        closes it; a closed hub or an already-cancelled scope yields a closed
        one. ``None`` entries are ignored.
        """
        sub = Subscription(next(self._ids), self._unsubscribe)
        with self._lock:
            accepted = not self._closed
            if accepted:
                self._subs[sub.id] = sub
        if not accepted:
            logger.debug("Subscribe on closed hub; returning closed subscription %d", sub.id)
            sub._close()
            return sub
        for scope in scopes:
            if scope is not None:
                sub._bind(scope.add_callback(sub.cancel))
        logger.debug("Subscription %d registered", sub.id)
        return sub

    def broadcast(self) -> int:
        """Pulse every active subscription without waiting on any of them."""
        with self._lock:
            subs = list(self._subs.values())
        delivered = sum(1 for sub in subs if sub._pulse())
        logger.debug("Broadcast delivered to %d subscription(s)", delivered)
        return delivered

    def close(self) -> None:
        with self._lock:
            self._closed = True
            subs = list(self._subs.values())
            self._subs.clear()
        for sub in subs:
            sub._close()
        logger.debug("Hub closed; released %d subscription(s)", len(subs))

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)

    def _unsubscribe(self, sub_id: int) -> None:
        with self._lock:
            sub = self._subs.pop(sub_id, None)
        if sub is not None:
            sub._close()
            logger.debug("Subscription %d released", sub_id)
