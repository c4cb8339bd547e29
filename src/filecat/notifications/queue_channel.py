from __future__ import annotations

import logging
from queue import Empty, Full, Queue

from .types import NotificationChannel, PushMessage

LOGGER = logging.getLogger(__name__)


class ChannelClosedError(RuntimeError):
    """The consumer side of a channel went away."""


class ChannelOverflowError(RuntimeError):
    """The consumer fell too far behind and the buffer is full."""


class QueueChannel(NotificationChannel):
    """In-process channel buffering messages for a single consumer.

    Backs the server-sent events endpoint: the hub pushes into the bounded
    queue and the HTTP handler thread drains it. A full buffer or a closed
    channel makes ``send`` raise, which the hub treats as a disconnect.
    """

    name = "queue"

    def __init__(self, maxsize: int = 256, *, label: str | None = None) -> None:
        self._queue: Queue[PushMessage] = Queue(maxsize=maxsize)
        self._closed = False
        if label:
            self.name = label

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, message: PushMessage) -> None:
        if self._closed:
            raise ChannelClosedError(f"{self.name} is closed")
        try:
            self._queue.put_nowait(message)
        except Full as exc:
            raise ChannelOverflowError(f"{self.name} buffer is full") from exc

    def get(self, timeout: float | None = None) -> PushMessage | None:
        """Next buffered message, or None when ``timeout`` elapses first."""
        try:
            return self._queue.get(timeout=timeout)
        except Empty:
            return None

    def drain(self) -> list[PushMessage]:
        messages: list[PushMessage] = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except Empty:
                return messages

    def close(self) -> None:
        self._closed = True
