from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import requests
from requests.exceptions import RequestException

from .types import NotificationChannel, PushMessage
from .utils import _excerpt_response, _flatten_message, _render_template

LOGGER = logging.getLogger(__name__)


class WebhookChannel(NotificationChannel):
    """HTTP webhook with a configurable payload template and event filter.

    Delivery problems are logged and swallowed so a flaky endpoint never gets
    the channel dropped from the hub.
    """

    name = "webhook"

    def __init__(
        self,
        url: str | None,
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        template: Any | None = None,
        events: Iterable[str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.url = url.strip() if isinstance(url, str) else None
        self.method = method.upper()
        self.headers = {str(k): str(v) for k, v in (headers or {}).items()}
        self.template = template
        self.events = frozenset(events) if events else frozenset()
        self.timeout = timeout
        self._enabled = True

    def set_enabled(self, value: bool) -> None:
        self._enabled = bool(value)

    def enabled(self) -> bool:
        return self._enabled and bool(self.url)

    def accepts(self, message: PushMessage) -> bool:
        return not self.events or message.name in self.events

    def send(self, message: PushMessage) -> None:
        if not self.enabled() or not self.accepts(message):
            return
        payload = self._build_payload(message)
        try:
            response = requests.request(
                self.method,
                self.url,
                json=payload,
                headers=self.headers or None,
                timeout=self.timeout,
            )
        except RequestException as exc:
            LOGGER.warning("Failed to send webhook notification to %s: %s", self.url, exc)
            return

        if response.status_code >= 400:
            LOGGER.warning("Webhook %s responded with %s: %s", self.url, response.status_code, _excerpt_response(response))

    def _build_payload(self, message: PushMessage) -> Any:
        if self.template is None:
            return message.to_dict()
        return _render_template(self.template, _flatten_message(message))
