from __future__ import annotations

import logging
from typing import Any

from requests import Response

from .types import PushMessage

LOGGER = logging.getLogger(__name__)


def _flatten_message(message: PushMessage) -> dict[str, Any]:
    """Convert a PushMessage into a flat dictionary for templating."""
    data: dict[str, Any] = {
        "event": message.name,
        "timestamp": message.timestamp.isoformat(),
    }
    for key, value in message.data.items():
        if isinstance(value, dict):
            for inner_key, inner_value in value.items():
                data.setdefault(inner_key, inner_value)
        else:
            data[key] = value
    return data


def _render_template(template: Any, data: dict[str, Any]) -> Any:
    """Recursively render template structures by formatting strings with the provided data."""
    if isinstance(template, dict):
        return {key: _render_template(value, data) for key, value in template.items()}
    if isinstance(template, list):
        return [_render_template(value, data) for value in template]
    if isinstance(template, str):
        try:
            return template.format(**data)
        except (KeyError, IndexError, ValueError):
            return template
    return template


def _trim(value: str, limit: int) -> str:
    stripped = value.strip()
    if len(stripped) <= limit:
        return stripped
    if limit <= 3:
        return stripped[:limit]
    return stripped[: limit - 3] + "..."


def _excerpt_response(response: Response) -> str:
    """Extract a short excerpt from an HTTP response for logging purposes."""
    return _trim(response.text or "<empty>", 200)
