from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest
from rich.console import Console
from rich.logging import RichHandler

from filecat.logging_utils import configure_logging, render_fields_block, render_section_block


def _filecat_handlers() -> list[logging.Handler]:
    return [handler for handler in logging.getLogger().handlers if getattr(handler, "_filecat_handler", False)]


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in _filecat_handlers():
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)


class TestRenderFieldsBlock:
    def test_aligns_labels(self) -> None:
        block = render_fields_block("Service Ready", {"Origin": "/in", "Environment": "prod"}, pad_top=False)

        assert block.splitlines() == [
            "Service Ready",
            "-------------",
            "    Origin     : /in",
            "    Environment: prod",
        ]

    def test_wraps_long_values_and_joins_lists(self) -> None:
        block = render_fields_block("Files", [("Names", ["a.mkv", "b.mkv"]), ("Long", "word " * 40)])
        lines = block.splitlines()

        assert lines[0] == ""
        assert "Names   : a.mkv, b.mkv" in block
        assert len(lines) > 5
        assert all(len(line) <= 110 for line in lines)

    def test_none_renders_empty(self) -> None:
        assert render_fields_block("T", {"Model": None}, pad_top=False).splitlines()[-1] == "    Model   :"


def test_render_section_block() -> None:
    block = render_section_block(
        "Move job errors",
        [("Failed", ["File 9 not found", None]), ("Skipped", [])],
        pad_top=False,
    )

    assert block.splitlines() == [
        "Move job errors",
        "---------------",
        "",
        "Failed:",
        "    - File 9 not found",
        "",
        "Skipped:",
        "    (none)",
    ]


class TestConfigureLogging:
    def test_installs_a_single_console_handler(self, restore_root_logger) -> None:
        console = Console(file=io.StringIO())

        configure_logging("debug", console=console)
        configure_logging(logging.WARNING, console=console)

        handlers = _filecat_handlers()
        assert len(handlers) == 1
        assert isinstance(handlers[0], RichHandler)
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_file_handler_captures_debug(self, restore_root_logger, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "filecat.log"

        configure_logging(logging.INFO, log_file=log_file, console=Console(file=io.StringIO()))
        logging.getLogger("filecat.test").debug("detail for the file")
        for handler in _filecat_handlers():
            handler.flush()

        assert logging.getLogger().level == logging.DEBUG
        assert "DEBUG    filecat.test: detail for the file" in log_file.read_text(encoding="utf-8")

    def test_unknown_level(self, restore_root_logger) -> None:
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging("chatty")
