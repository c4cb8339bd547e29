from __future__ import annotations

import argparse
import io

from rich.console import Console

from filecat.help_formatter import COMMAND_HELP, CommandHelp, formatter_for, get_command_help


def _parser(command: str, console: Console) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=f"filecat {command}", formatter_class=formatter_for(command, console))
    parser.add_argument("--batch-size", type=int, help="Files classified per batch")
    return parser


def test_unknown_command_has_empty_help() -> None:
    assert get_command_help("does-not-exist") == CommandHelp()
    assert set(COMMAND_HELP) == {"serve", "refresh", "move", "validate-config"}


def test_plain_output_appends_extras() -> None:
    console = Console(file=io.StringIO(), force_terminal=False)

    text = _parser("move", console).format_help()

    assert text.startswith("usage: filecat move")
    assert "--batch-size BATCH_SIZE" in text
    assert "examples:\n  Move file 12 into the Video directory\n    $ filecat move 12:Video" in text
    assert "environment variables:\n  FILECAT_CONFIG" in text
    assert "tips:" not in text


def test_terminal_output_is_styled() -> None:
    console = Console(file=io.StringIO(), force_terminal=True, color_system="standard", width=100)

    text = _parser("serve", console).format_help()

    assert "\x1b[" in text
    assert "Examples:" in text
    assert "Environment Variables:" in text
    assert "LOG_LEVEL" in text
    assert "* Clients receive job and move notifications from GET /notifications" in text


def test_command_without_extras_is_plain_argparse() -> None:
    console = Console(file=io.StringIO(), force_terminal=False)

    text = argparse.ArgumentParser(prog="filecat train", formatter_class=formatter_for("train", console)).format_help()

    assert text.splitlines()[0] == "usage: filecat train [-h]"
    assert "examples:" not in text
