from __future__ import annotations

import argparse
import shutil
from dataclasses import dataclass, field

from rich.console import Console
from rich.table import Table
from rich.text import Text


@dataclass
class CommandHelp:
    """Extra help content shown below a command's usage."""

    examples: list[tuple[str, str]] = field(default_factory=list)
    env_vars: list[tuple[str, str]] = field(default_factory=list)
    tips: list[str] = field(default_factory=list)


_CONFIG_ENV = ("FILECAT_CONFIG", "Path to the YAML configuration file (default: ./config/filecat.yaml)")
_LOG_ENV = ("LOG_LEVEL", "Console log level when --verbose is not given (default: INFO)")

COMMAND_HELP: dict[str, CommandHelp] = {
    "serve": CommandHelp(
        examples=[
            ("Serve the API on the configured host and port", "filecat serve"),
            ("Serve and refresh whenever the origin directory changes", "filecat serve --watch"),
        ],
        env_vars=[_CONFIG_ENV, _LOG_ENV],
        tips=["Clients receive job and move notifications from GET /notifications"],
    ),
    "refresh": CommandHelp(
        examples=[
            ("Scan the origin directory and categorize new files", "filecat refresh"),
            ("Only look at video files", "filecat refresh --extension .mkv --extension .mp4"),
        ],
        env_vars=[_CONFIG_ENV],
        tips=["Refreshing twice with no filesystem changes adds nothing"],
    ),
    "move": CommandHelp(
        examples=[
            ("Move file 12 into the Video directory", "filecat move 12:Video"),
            ("Stop at the first failure", "filecat move 12:Video 13:Music --stop-on-error"),
        ],
        env_vars=[_CONFIG_ENV],
    ),
    "validate-config": CommandHelp(
        examples=[("Check a configuration file before deploying it", "filecat validate-config --config ./filecat.yaml")],
        env_vars=[_CONFIG_ENV],
        tips=["Validation reports every problem at once, not just the first"],
    ),
}


def get_command_help(command: str) -> CommandHelp:
    return COMMAND_HELP.get(command, CommandHelp())


class RichHelpFormatter(argparse.HelpFormatter):
    """Argparse formatter that styles section titles and appends the command's extra help.

    Falls back to plain argparse output when the console is not a terminal.
    """

    def __init__(
        self,
        prog: str,
        indent_increment: int = 2,
        max_help_position: int = 24,
        width: int | None = None,
        console: Console | None = None,
    ) -> None:
        if width is None:
            width = min(shutil.get_terminal_size().columns, 120)
        super().__init__(
            prog=prog,
            indent_increment=indent_increment,
            max_help_position=max_help_position,
            width=width,
        )
        self.console = console or Console()
        self._extra = CommandHelp()

    def add_command_help(self, command_help: CommandHelp) -> None:
        self._extra = command_help

    def format_help(self) -> str:
        standard_help = super().format_help()
        if not self.console.is_terminal:
            return standard_help + self._plain_extras()

        parts: list[str] = []
        title: str | None = None
        body: list[str] = []
        for line in standard_help.split("\n"):
            if line and not line[0].isspace() and line.endswith(":"):
                if title is not None:
                    parts.append(self._render_section(title, body))
                title, body = line[:-1], []
            elif title is None and line.startswith("usage:"):
                parts.append(self._styled(Text(line, style="bold bright_cyan")))
            else:
                body.append(line)
        if title is not None:
            parts.append(self._render_section(title, body))
        else:
            parts.extend(body)

        if self._extra.examples:
            parts.append(self._render_examples())
        if self._extra.env_vars:
            parts.append(self._render_env_vars())
        if self._extra.tips:
            parts.append(self._render_tips())
        return "\n".join(parts)

    def _styled(self, renderable) -> str:
        with self.console.capture() as capture:
            self.console.print(renderable)
        return capture.get()

    def _render_section(self, title: str, body: list[str]) -> str:
        heading = self._styled(Text(title, style="bold bright_cyan"))
        content = "\n".join(body)
        return f"{heading}{content}\n" if content.strip() else heading

    def _render_examples(self) -> str:
        with self.console.capture() as capture:
            self.console.print(Text("Examples:", style="bold bright_cyan"))
            for index, (description, command) in enumerate(self._extra.examples, 1):
                line = Text()
                line.append(f"  {index}. ", style="dim cyan")
                line.append(description, style="bright_white")
                self.console.print(line)
                self.console.print(f"     $ {command}", style="bright_yellow")
        return capture.get()

    def _render_env_vars(self) -> str:
        with self.console.capture() as capture:
            self.console.print(Text("Environment Variables:", style="bold bright_cyan"))
            table = Table(show_header=False, box=None, padding=(0, 2))
            table.add_column("Variable", style="bright_green bold", no_wrap=True)
            table.add_column("Description", style="bright_white")
            for name, description in self._extra.env_vars:
                table.add_row(name, description)
            self.console.print(table)
        return capture.get()

    def _render_tips(self) -> str:
        with self.console.capture() as capture:
            self.console.print(Text("Tips:", style="bold bright_cyan"))
            for tip in self._extra.tips:
                self.console.print(Text(f"  * {tip}", style="bright_white"))
        return capture.get()

    def _plain_extras(self) -> str:
        lines: list[str] = []
        if self._extra.examples:
            lines.append("\nexamples:")
            lines.extend(f"  {description}\n    $ {command}" for description, command in self._extra.examples)
        if self._extra.env_vars:
            lines.append("\nenvironment variables:")
            lines.extend(f"  {name:<16} {description}" for name, description in self._extra.env_vars)
        if self._extra.tips:
            lines.append("\ntips:")
            lines.extend(f"  * {tip}" for tip in self._extra.tips)
        return "\n".join(lines) + ("\n" if lines else "")


def formatter_for(command: str, console: Console | None = None):
    """Return a ``formatter_class`` for argparse bound to ``command``'s help content."""
    command_help = get_command_help(command)

    def factory(prog: str) -> RichHelpFormatter:
        formatter = RichHelpFormatter(prog, console=console)
        formatter.add_command_help(command_help)
        return formatter

    return factory


__all__ = ["COMMAND_HELP", "CommandHelp", "RichHelpFormatter", "formatter_for", "get_command_help"]
