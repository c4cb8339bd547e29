from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from jsonschema import Draft7Validator

CATEGORY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\s]+$")


@dataclass(slots=True)
class ValidationIssue:
    """Represents a single validation problem."""

    severity: str
    path: str
    message: str
    code: str
    fix_suggestion: Optional[str] = None


@dataclass(slots=True)
class ValidationReport:
    """Aggregates validation warnings and errors."""

    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


_STRING_OR_LIST = {
    "oneOf": [
        {"type": "array", "items": {"type": "string"}},
        {"type": "string"},
    ]
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "settings": {
            "type": "object",
            "properties": {
                "environment": {"type": "string", "enum": ["dev", "prod"]},
                "origin_dir": {"type": "string", "minLength": 1},
                "destination_dir": {"type": "string", "minLength": 1},
                "database_path": {"type": "string", "minLength": 1},
                "categories": {"type": "array", "items": {"type": "string", "minLength": 1}},
                "scan": {
                    "type": "object",
                    "properties": {
                        "extensions": _STRING_OR_LIST,
                        "include_hidden": {"type": "boolean"},
                        "batch_size": {"type": "integer", "minimum": 10, "maximum": 1000},
                    },
                    "additionalProperties": True,
                },
                "classifier": {
                    "type": "object",
                    "properties": {
                        "model_dir": {"type": "string"},
                        "training_data": {"type": "string"},
                        "min_confidence": {"type": "number", "minimum": 0, "maximum": 1},
                        "smoothing": {"type": "number", "exclusiveMinimum": 0},
                    },
                    "additionalProperties": True,
                },
                "jobs": {
                    "type": "object",
                    "properties": {
                        "max_workers": {"type": "integer", "minimum": 1},
                        "retained_jobs": {"type": "integer", "minimum": 1},
                        "max_move_batch": {"type": "integer", "minimum": 1},
                    },
                    "additionalProperties": True,
                },
                "notifications": {
                    "type": "object",
                    "properties": {
                        "queue_size": {"type": "integer", "minimum": 1},
                        "targets": {"type": "array", "items": {"$ref": "#/definitions/target"}},
                    },
                    "additionalProperties": True,
                },
                "file_watcher": {
                    "type": "object",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "include": _STRING_OR_LIST,
                        "ignore": _STRING_OR_LIST,
                        "debounce_seconds": {"type": ["number", "integer"], "minimum": 0},
                        "reconcile_interval": {"type": "integer", "minimum": 0},
                    },
                    "additionalProperties": True,
                },
                "server": {
                    "type": "object",
                    "properties": {
                        "host": {"type": "string"},
                        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                    },
                    "additionalProperties": True,
                },
            },
            "additionalProperties": True,
        },
        "client": {
            "type": "object",
            "properties": {
                "base_url": {"type": "string", "minLength": 1},
                "timeout": {"type": "number", "exclusiveMinimum": 0},
                "retry": {
                    "type": "object",
                    "properties": {
                        "max_retries": {"type": "integer", "minimum": 0},
                        "backoff_multiplier": {"type": "number", "minimum": 0},
                        "initial_delay": {"type": "number", "minimum": 0},
                    },
                    "additionalProperties": True,
                },
                "reconnect_delays": {"type": "array", "items": {"type": "number", "minimum": 0}, "minItems": 1},
                "cache_capacity": {"type": "integer", "minimum": 0},
            },
            "additionalProperties": True,
        },
    },
    "required": ["settings"],
    "additionalProperties": True,
    "definitions": {
        "target": {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["webhook"]},
                "url": {"type": "string", "minLength": 1},
                "method": {"type": "string"},
                "enabled": {"type": "boolean"},
                "events": {"type": "array", "items": {"type": "string"}},
                "headers": {"type": "object", "additionalProperties": {"type": "string"}},
            },
            "required": ["url"],
            "additionalProperties": True,
        },
    },
}


def _suggest_fix(message: str) -> Optional[str]:
    if "is a required property" in message:
        return "Add the required field to your configuration"
    if "is not of type" in message:
        return "Check the value type (quote strings, use lists for multiple values)"
    if "is not one of" in message:
        return "Use one of the allowed values listed in the message"
    if "is less than the minimum" in message or "is greater than the maximum" in message:
        return "Adjust the number so it falls within the allowed range"
    return None


def _format_jsonschema_path(path: Sequence[Any]) -> str:
    if not path:
        return "<root>"
    tokens: List[str] = []
    for part in path:
        if isinstance(part, int):
            if tokens:
                tokens[-1] = f"{tokens[-1]}[{part}]"
            else:
                tokens.append(f"[{part}]")
        else:
            tokens.append(str(part))
    return ".".join(tokens)


def validate_config_data(data: Dict[str, Any]) -> ValidationReport:
    """Validate configuration data against the schema and semantic rules.

    Args:
        data: The configuration data to validate (as loaded from YAML)

    Returns:
        ValidationReport containing any errors or warnings found
    """
    report = ValidationReport()
    validator = Draft7Validator(CONFIG_SCHEMA)

    for error in sorted(validator.iter_errors(data), key=lambda exc: list(exc.absolute_path)):
        report.errors.append(
            ValidationIssue(
                severity="error",
                path=_format_jsonschema_path(list(error.absolute_path)),
                message=error.message,
                code="schema",
                fix_suggestion=_suggest_fix(error.message),
            )
        )

    if report.is_valid:
        _validate_semantics(data, report)
    return report


def _validate_semantics(data: Dict[str, Any], report: ValidationReport) -> None:
    settings = data.get("settings") or {}

    for index, category in enumerate(settings.get("categories") or []):
        if not CATEGORY_PATTERN.match(category) or len(category) > 100:
            report.errors.append(
                ValidationIssue(
                    severity="error",
                    path=f"settings.categories[{index}]",
                    message=f"Category '{category}' may only contain letters, digits, spaces, '_' and '-'",
                    code="category-name",
                )
            )

    origin = settings.get("origin_dir")
    destination = settings.get("destination_dir")
    if isinstance(origin, str) and isinstance(destination, str):
        origin_path = Path(origin).expanduser()
        destination_path = Path(destination).expanduser()
        if origin_path == destination_path:
            report.errors.append(
                ValidationIssue(
                    severity="error",
                    path="settings.destination_dir",
                    message="Destination directory must differ from the origin directory",
                    code="same-directory",
                    fix_suggestion="Point destination_dir at a separate folder",
                )
            )
        elif origin_path in destination_path.parents:
            report.warnings.append(
                ValidationIssue(
                    severity="warning",
                    path="settings.destination_dir",
                    message="Destination directory is inside the origin directory; moved files stay visible to scans",
                    code="nested-destination",
                )
            )

    watcher = settings.get("file_watcher") or {}
    if watcher.get("enabled") and not watcher.get("debounce_seconds", 5):
        report.warnings.append(
            ValidationIssue(
                severity="warning",
                path="settings.file_watcher.debounce_seconds",
                message="A zero debounce submits a refresh job for every filesystem event",
                code="watcher-debounce",
            )
        )


__all__ = [
    "CATEGORY_PATTERN",
    "CONFIG_SCHEMA",
    "ValidationIssue",
    "ValidationReport",
    "validate_config_data",
]
