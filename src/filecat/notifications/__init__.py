"""
Real-time notification fan-out for filecat.

Domain events raised by the job layer are converted into named push messages
and broadcast to every connected channel.

Public API:
    - PushMessage: A named event with a JSON payload
    - NotificationChannel: Base class for channels
    - NotificationHub: Connect/disconnect channels and publish events
    - QueueChannel: In-process buffered channel (backs the SSE endpoint)
    - WebhookChannel: Outbound HTTP webhook channel
    - build_channels: Create channels from notification settings
    - to_push_message: Domain event to push message conversion
"""

from __future__ import annotations

# Core types and base classes
from .types import (
    CATEGORY_REFRESHED,
    FILE_MOVED,
    JOB_COMPLETED,
    JOB_UPDATED,
    PUSH_EVENT_NAMES,
    NotificationChannel,
    PushMessage,
)

# Channels
from .queue_channel import ChannelClosedError, ChannelOverflowError, QueueChannel
from .webhook import WebhookChannel

# Hub
from .hub import NotificationHub, build_channels, to_push_message

__all__ = [
    # Core types
    "CATEGORY_REFRESHED",
    "FILE_MOVED",
    "JOB_COMPLETED",
    "JOB_UPDATED",
    "PUSH_EVENT_NAMES",
    "NotificationChannel",
    "PushMessage",
    # Channels
    "ChannelClosedError",
    "ChannelOverflowError",
    "QueueChannel",
    "WebhookChannel",
    # Hub
    "NotificationHub",
    "build_channels",
    "to_push_message",
]
