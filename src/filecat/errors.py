"""Exception hierarchy shared by the backend and the client."""

from __future__ import annotations

from collections.abc import Iterable


class FilecatError(Exception):
    """Base exception for filecat errors."""


class ValidationError(FilecatError):
    """A request was malformed and was rejected before any work started.

    Attributes:
        messages: Individual validation problems, one per offending field
    """

    def __init__(self, messages: str | Iterable[str]) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages = [str(message) for message in messages]
        super().__init__("; ".join(self.messages) or "Invalid request")


class NotFoundError(FilecatError):
    """Referenced file, job or config entry is unknown (or soft-deleted)."""


class ModelNotTrainedError(FilecatError):
    """The classifier was asked for a prediction before a model was loaded."""


class TransportError(FilecatError):
    """Client-side request failure (network error, timeout, bad response)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "FilecatError",
    "ModelNotTrainedError",
    "NotFoundError",
    "TransportError",
    "ValidationError",
]
