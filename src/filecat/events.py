"""Domain events raised by the job layer and consumed by the notification hub."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Union

from .models import BatchJob, MoveResult


@dataclass(frozen=True)
class JobUpdated:
    """A batch job changed status or made progress. ``job`` is a snapshot."""

    job: BatchJob
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class FileMoved:
    file_id: int
    result_text: str
    result: MoveResult
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CategoryListChanged:
    categories: tuple[str, ...]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


DomainEvent = Union[JobUpdated, FileMoved, CategoryListChanged]
EventSink = Callable[[DomainEvent], None]


def discard_event(event: DomainEvent) -> None:
    """Sink used when nothing listens for events."""


__all__ = [
    "CategoryListChanged",
    "DomainEvent",
    "EventSink",
    "FileMoved",
    "JobUpdated",
    "discard_event",
]
