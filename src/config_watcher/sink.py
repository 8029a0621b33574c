from __future__ import annotations

import logging
import queue
from typing import Any, Optional, Protocol

from typing_extensions import runtime_checkable

logger = logging.getLogger("config_watcher.sink")
logger.addHandler(logging.NullHandler())


@runtime_checkable
class ErrorChannelProtocol(Protocol):
    def put_nowait(self, item: Any) -> None: ...


class ErrorSink:
    """
    Best-effort, non-blocking error reporting.

    The channel is borrowed from the caller (typically a bounded
    ``queue.Queue``). A missing or full channel drops the error; it is still
    logged so background failures are never completely silent.
    """

    def __init__(self, channel: Optional[ErrorChannelProtocol] = None) -> None:
        if channel is not None and not isinstance(channel, ErrorChannelProtocol):
            raise TypeError("Error channel must provide put_nowait()")
        self._channel = channel

    @property
    def attached(self) -> bool:
        return self._channel is not None

    def report(self, error: BaseException) -> bool:
        """Deliver ``error`` if possible. Returns True when it was enqueued."""
        logger.warning("%s: %s", type(error).__name__, error)
        if self._channel is None:
            return False
        try:
            self._channel.put_nowait(error)
        except queue.Full:
            logger.debug("Error channel full; dropped %s", type(error).__name__)
            return False
        return True

    def __repr__(self) -> str:
        return f"<ErrorSink attached={self.attached}>"
