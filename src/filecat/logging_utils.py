from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from textwrap import wrap
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

WRAP_WIDTH = 110
LABEL_WIDTH = 22
INDENT = "    "

FieldMapping = Union[Mapping[str, object], Sequence[tuple[str, object]]]

FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def _stringify(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(_stringify(item) for item in value)
    return str(value)


def _wrapped(text: str, width: int) -> list[str]:
    lines: list[str] = []
    for raw_line in text.splitlines() or [""]:
        lines.extend(wrap(raw_line, width=width) or [""])
    return lines


def _header(title: str, pad_top: bool) -> list[str]:
    lines = [""] if pad_top else []
    lines.extend([title, "-" * len(title)])
    return lines


def render_fields_block(title: str, fields: FieldMapping, *, pad_top: bool = True) -> str:
    """Render a titled block of aligned ``label: value`` lines for log output."""
    items = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
    lines = _header(title, pad_top)
    if items:
        label_width = max(min(max(len(str(key)) for key, _ in items), LABEL_WIDTH), 8)
        value_width = max(WRAP_WIDTH - len(INDENT) - label_width - 4, 32)
        for key, value in items:
            first, *rest = _wrapped(_stringify(value), value_width)
            lines.append(f"{INDENT}{str(key):<{label_width}}: {first}")
            lines.extend(f"{INDENT}{'':<{label_width}}  {line}" for line in rest)
    return "\n".join(lines).rstrip()


def render_section_block(
    title: str,
    sections: Sequence[tuple[str, Iterable[str]]],
    *,
    pad_top: bool = True,
    empty_label: str = "(none)",
) -> str:
    """Render a titled block of bulleted sections (e.g. per-item job errors)."""
    lines = _header(title, pad_top)
    bullet = INDENT + "- "
    for heading, items in sections:
        if lines[-1] != "":
            lines.append("")
        lines.append(f"{heading}:")
        materialized = [item for item in items if item is not None]
        if not materialized:
            lines.append(f"{INDENT}{empty_label}")
            continue
        for item in materialized:
            first, *rest = _wrapped(_stringify(item), max(WRAP_WIDTH - len(bullet), 24))
            lines.append(f"{bullet}{first}")
            lines.extend(f"{INDENT}  {line}" for line in rest)
    return "\n".join(lines).rstrip()


def configure_logging(
    level: int | str = logging.INFO,
    *,
    log_file: Path | None = None,
    console: Console | None = None,
) -> None:
    """Install a rich console handler (and optionally a file handler) on the root logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level '{level}'")

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_filecat_handler", False):
            root.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    console_handler.setLevel(level)
    console_handler._filecat_handler = True  # type: ignore[attr-defined]
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        file_handler._filecat_handler = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    root.setLevel(min(level, logging.DEBUG) if log_file is not None else level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


__all__ = ["configure_logging", "render_fields_block", "render_section_block"]
