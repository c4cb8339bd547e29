from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

FILE_MOVED = "fileMoved"
JOB_COMPLETED = "jobCompleted"
JOB_UPDATED = "jobUpdated"
CATEGORY_REFRESHED = "categoryRefreshed"

PUSH_EVENT_NAMES = (FILE_MOVED, JOB_COMPLETED, JOB_UPDATED, CATEGORY_REFRESHED)


@dataclass(frozen=True)
class PushMessage:
    """A named event as delivered to connected clients.

    Attributes:
        name: One of ``fileMoved``, ``jobCompleted``, ``jobUpdated``, ``categoryRefreshed``
        data: JSON-serialisable payload with camelCase keys
        timestamp: When the underlying domain event happened
    """

    name: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, "data": self.data, "timestamp": self.timestamp.isoformat()}

    def to_sse(self) -> bytes:
        """Encode as a server-sent events frame."""
        body = json.dumps(self.to_dict(), separators=(",", ":"))
        return f"event: {self.name}\ndata: {body}\n\n".encode("utf-8")

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> PushMessage:
        raw_timestamp = payload.get("timestamp")
        timestamp = datetime.fromisoformat(raw_timestamp) if raw_timestamp else datetime.now(timezone.utc)
        return cls(name=str(payload["event"]), data=dict(payload.get("data") or {}), timestamp=timestamp)


class NotificationChannel:
    name: str = "channel"

    def enabled(self) -> bool:
        return True

    def send(self, message: PushMessage) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the channel."""
