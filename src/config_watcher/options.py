from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Union

from .serialization import SerializerProtocol
from .sink import ErrorChannelProtocol, ErrorSink
from .utils import _polling_requested


@dataclass(frozen=True)
class WatcherOptions:
    """Construction-time settings for a ConfigWatcher."""

    # Queue-like channel (or ready ErrorSink) receiving background failures
    error_sink: Optional[Union[ErrorSink, ErrorChannelProtocol]] = None
    # Defaults to JsonSerializer(type(default))
    serializer: Optional[SerializerProtocol] = None
    file_mode: int = 0o600
    copy_on_read: bool = True
    use_polling: bool = field(default_factory=_polling_requested)
    poll_interval: float = 0.1

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.serializer is not None and not isinstance(self.serializer, SerializerProtocol):
            raise TypeError("serializer must provide dumps(), loads() and canonical()")

    def with_error_sink(
        self, sink: Union[ErrorSink, ErrorChannelProtocol, None]
    ) -> "WatcherOptions":
        return replace(self, error_sink=sink)

    def with_serializer(self, serializer: SerializerProtocol) -> "WatcherOptions":
        return replace(self, serializer=serializer)

    def build_sink(self) -> ErrorSink:
        if isinstance(self.error_sink, ErrorSink):
            return self.error_sink
        return ErrorSink(self.error_sink)
