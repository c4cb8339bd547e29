"""Push notification listener.

:class:`PushEventAdapter` is the single place where server event names are
translated into store actions. :class:`PushListener` keeps a server-sent
events stream open, feeds decoded messages through the adapter and
reconnects on a fixed backoff schedule.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Any

import httpx

from ..config import ClientSettings
from ..contracts import BatchJobDTO
from ..models import MoveResult
from ..notifications.types import CATEGORY_REFRESHED, FILE_MOVED, JOB_COMPLETED, JOB_UPDATED, PushMessage
from . import actions as a

LOGGER = logging.getLogger(__name__)

CONNECTED_EVENT = "connected"


def _file_moved(data: dict[str, Any]) -> a.Action:
    return a.PushFileMoved(
        file_id=int(data["fileId"]),
        result_text=str(data.get("resultText", "")),
        result=MoveResult(data["result"]),
    )


def _job_completed(data: dict[str, Any]) -> a.Action:
    job = data.get("job")
    return a.PushJobCompleted(
        result_text=str(data.get("resultText", "")),
        result=MoveResult(data["result"]),
        job=BatchJobDTO.model_validate(job) if job else None,
    )


def _job_updated(data: dict[str, Any]) -> a.Action:
    return a.PushJobUpdated(job=BatchJobDTO.model_validate(data["job"]))


def _category_refreshed(data: dict[str, Any]) -> a.Action:
    return a.PushCategoryRefreshed(categories=tuple(str(item) for item in data.get("categories") or ()))


class PushEventAdapter:
    """Maps push event names to store actions."""

    def __init__(self) -> None:
        self._builders: dict[str, Callable[[dict[str, Any]], a.Action]] = {
            FILE_MOVED: _file_moved,
            JOB_COMPLETED: _job_completed,
            JOB_UPDATED: _job_updated,
            CATEGORY_REFRESHED: _category_refreshed,
        }

    @property
    def event_names(self) -> tuple[str, ...]:
        return tuple(self._builders)

    def to_action(self, message: PushMessage) -> a.Action | None:
        builder = self._builders.get(message.name)
        if builder is None:
            LOGGER.debug("Ignoring unknown push event %s", message.name)
            return None
        try:
            return builder(message.data)
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Malformed %s push event: %s", message.name, exc)
            return None


def iter_sse_events(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """Yield ``(event, data)`` pairs from server-sent event lines."""
    event = "message"
    data: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field_name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field_name == "event":
            event = value
        elif field_name == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class PushListener:
    """Consume ``/notifications`` and dispatch the resulting actions.

    After a connection drops the listener waits for the next entry of
    ``settings.reconnect_delays`` and tries again; once every delay has been
    used without a successful connection it gives up. A successful
    connection resets the schedule.
    """

    def __init__(
        self,
        settings: ClientSettings,
        dispatch: Callable[[a.Action], None],
        *,
        adapter: PushEventAdapter | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._dispatch = dispatch
        self._adapter = adapter or PushEventAdapter()
        self._transport = transport
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._response: httpx.Response | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="filecat-push", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        response = self._response
        if response is not None:
            response.close()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def run(self) -> None:
        delays = list(self.settings.reconnect_delays)
        attempt = 0
        while not self._stop.is_set():
            try:
                connected = self._listen()
            except httpx.HTTPError as exc:
                LOGGER.warning("Notification stream error: %s", exc)
                connected = False
            if self._stop.is_set():
                break
            if connected:
                attempt = 0
            if attempt >= len(delays):
                LOGGER.error("Giving up on notification stream after %d reconnect attempt(s)", attempt)
                break
            delay = delays[attempt]
            attempt += 1
            LOGGER.info("Reconnecting to notification stream in %.0fs (attempt %d/%d)", delay, attempt, len(delays))
            if self._stop.wait(delay):
                break

    def _listen(self) -> bool:
        """Read one connection until it ends. Returns True if it was established."""
        base_url = self.settings.base_url.rstrip("/")
        timeout = httpx.Timeout(self.settings.timeout, read=None)
        connection_id: str | None = None
        with httpx.Client(base_url=base_url, timeout=timeout, transport=self._transport) as client:
            with client.stream("GET", "/notifications", headers={"Accept": "text/event-stream"}) as response:
                response.raise_for_status()
                self._response = response
                try:
                    for event, data in iter_sse_events(response.iter_lines()):
                        if self._stop.is_set():
                            break
                        if event == CONNECTED_EVENT:
                            connection_id = str(json.loads(data).get("connectionId", ""))
                            self._dispatch(a.PushConnected(connection_id=connection_id))
                            continue
                        self._handle(data)
                finally:
                    self._response = None
                    if connection_id is not None:
                        self._dispatch(a.PushDisconnected(reason=None if self._stop.is_set() else "stream closed"))
        return connection_id is not None

    def _handle(self, data: str) -> None:
        try:
            message = PushMessage.from_dict(json.loads(data))
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Discarding undecodable push message: %s", exc)
            return
        action = self._adapter.to_action(message)
        if action is not None:
            self._dispatch(action)


__all__ = ["PushEventAdapter", "PushListener", "iter_sse_events"]
