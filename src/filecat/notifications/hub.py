from __future__ import annotations

import logging
import threading
import uuid
from typing import Any

from ..config import NotificationSettings
from ..contracts import BatchJobDTO
from ..events import CategoryListChanged, DomainEvent, FileMoved, JobUpdated
from ..models import JobStatus, MoveResult
from .types import (
    CATEGORY_REFRESHED,
    FILE_MOVED,
    JOB_COMPLETED,
    JOB_UPDATED,
    NotificationChannel,
    PushMessage,
)
from .webhook import WebhookChannel

LOGGER = logging.getLogger(__name__)


def to_push_message(event: DomainEvent) -> PushMessage:
    """Translate a domain event into the message clients receive."""
    if isinstance(event, FileMoved):
        return PushMessage(
            name=FILE_MOVED,
            data={"fileId": event.file_id, "resultText": event.result_text, "result": event.result.value},
            timestamp=event.timestamp,
        )
    if isinstance(event, JobUpdated):
        job = event.job
        payload = BatchJobDTO.from_job(job).to_wire()
        if job.is_terminal:
            result = MoveResult.FAILED if job.status is JobStatus.FAILED else MoveResult.COMPLETED
            return PushMessage(
                name=JOB_COMPLETED,
                data={"resultText": job.summary(), "result": result.value, "job": payload},
                timestamp=event.timestamp,
            )
        return PushMessage(name=JOB_UPDATED, data={"job": payload}, timestamp=event.timestamp)
    if isinstance(event, CategoryListChanged):
        return PushMessage(
            name=CATEGORY_REFRESHED,
            data={"categories": list(event.categories)},
            timestamp=event.timestamp,
        )
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


def build_channels(settings: NotificationSettings) -> list[NotificationChannel]:
    """Create the configured outbound channels (currently webhooks only)."""
    channels: list[NotificationChannel] = []
    for entry in settings.targets:
        target_type = str(entry.get("type", "webhook")).lower()
        if target_type != "webhook":
            LOGGER.warning("Unknown notification target type '%s'", target_type or "<missing>")
            continue
        url = entry.get("url")
        if not url:
            LOGGER.warning("Skipped webhook target because url was not provided.")
            continue
        channel = WebhookChannel(
            url,
            method=entry.get("method", "POST"),
            headers=entry.get("headers"),
            template=entry.get("template"),
            events=entry.get("events"),
        )
        channel.set_enabled(entry.get("enabled", True))
        channels.append(channel)
    return channels


class NotificationHub:
    """Best-effort fan-out of push messages to every connected channel.

    There is no persistence and no replay: a channel only sees messages
    published while it is connected. A channel whose ``send`` raises is
    considered abnormally disconnected and is removed.
    """

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        self._lock = threading.Lock()

    @property
    def channel_count(self) -> int:
        with self._lock:
            return len(self._channels)

    def connect(self, channel: NotificationChannel) -> str:
        channel_id = uuid.uuid4().hex
        with self._lock:
            self._channels[channel_id] = channel
        LOGGER.info("Notification channel %s connected (%s)", channel_id, channel.name)
        return channel_id

    def disconnect(self, channel_id: str) -> bool:
        with self._lock:
            channel = self._channels.pop(channel_id, None)
        if channel is None:
            return False
        channel.close()
        LOGGER.info("Notification channel %s disconnected (%s)", channel_id, channel.name)
        return True

    def publish(self, event: DomainEvent) -> PushMessage:
        message = to_push_message(event)
        self.broadcast(message)
        return message

    def broadcast(self, message: PushMessage) -> list[str]:
        """Send to every enabled channel; returns the ids that accepted the message."""
        with self._lock:
            channels = list(self._channels.items())

        delivered: list[str] = []
        for channel_id, channel in channels:
            if not channel.enabled():
                continue
            try:
                channel.send(message)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning(
                    "Notification channel %s (%s) failed, disconnecting: %s", channel_id, channel.name, exc
                )
                self._drop(channel_id)
            else:
                delivered.append(channel_id)
        if delivered:
            LOGGER.debug("Push %s delivered to %d channel(s)", message.name, len(delivered))
        return delivered

    def _drop(self, channel_id: str) -> None:
        with self._lock:
            channel = self._channels.pop(channel_id, None)
        if channel is None:
            return
        try:
            channel.close()
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Closing channel %s raised: %s", channel_id, exc)

    def close(self) -> None:
        with self._lock:
            channel_ids = list(self._channels)
        for channel_id in channel_ids:
            self.disconnect(channel_id)

    def describe(self) -> dict[str, Any]:
        with self._lock:
            return {channel_id: channel.name for channel_id, channel in self._channels.items()}
