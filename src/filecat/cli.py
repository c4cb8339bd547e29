from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from .client import ApiClient, PushListener, build_store
from .client.actions import Action
from .config import AppConfig, load_config
from .contracts import ForceCategorizeRequest, MoveFileItem, MoveFilesRequest, RefreshFilesRequest
from .errors import FilecatError
from .help_formatter import formatter_for
from .logging_utils import configure_logging, render_fields_block
from .models import BatchJob, FileFilter, JobStatus
from .server import FileCatServer
from .service import FileCategorizationService
from .utils import load_yaml_file
from .validation import validate_config_data
from .version import __version__
from .watcher import FileWatcherLoop

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/filecat.yaml")

_FILTERS = {
    "all": FileFilter.ALL,
    "categorized": FileFilter.CATEGORIZED,
    "to-categorize": FileFilter.TO_CATEGORIZE,
    "new": FileFilter.NEW,
}


def _default_config_path() -> Path:
    return Path(os.environ.get("FILECAT_CONFIG") or DEFAULT_CONFIG_PATH)


def _parse_move_item(value: str) -> MoveFileItem:
    file_id, sep, category = value.partition(":")
    if not sep or not file_id.strip().isdigit() or not category.strip():
        raise argparse.ArgumentTypeError(f"expected ID:CATEGORY, got '{value}'")
    return MoveFileItem(id=int(file_id), category=category.strip())


def build_parser(console: Console | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="filecat", description="Categorize files and move them into place.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="Configuration file (env: FILECAT_CONFIG)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write a debug log to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add(name: str, help_text: str) -> argparse.ArgumentParser:
        return subparsers.add_parser(name, help=help_text, formatter_class=formatter_for(name, console))

    serve = add("serve", "Serve the REST API and notification stream")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    watch = serve.add_mutually_exclusive_group()
    watch.add_argument("--watch", dest="watch", action="store_true", default=None)
    watch.add_argument("--no-watch", dest="watch", action="store_false")

    refresh = add("refresh", "Scan the origin directory and categorize new files")
    refresh.add_argument("--extension", action="append", default=[], dest="extensions")
    refresh.add_argument("--batch-size", type=int, default=None)

    force = add("force-categorize", "Classify every file still waiting for a category")
    force.add_argument("--force", action="store_true", help="Re-classify already categorized files too")

    move = add("move", "Move files into their category directories")
    move.add_argument("items", nargs="+", type=_parse_move_item, metavar="ID:CATEGORY")
    move.add_argument("--stop-on-error", action="store_true")
    move.add_argument("--no-create-dirs", action="store_true")
    move.add_argument("--skip-category-check", action="store_true")

    add("train", "Train a new classification model from the training data")

    listing = add("list", "List tracked files")
    listing.add_argument("--filter", choices=sorted(_FILTERS), default="all")

    add("categories", "List known categories")

    jobs = add("jobs", "Show jobs of a running server")
    jobs.add_argument("job_id", nargs="?", default=None)

    add("monitor", "Follow notifications from a running server")
    add("validate-config", "Validate the configuration file")
    return parser


def _print_job(console: Console, job: BatchJob) -> None:
    style = {JobStatus.SUCCEEDED: "green", JobStatus.PARTIALLY_FAILED: "yellow"}.get(job.status, "red")
    console.print(job.summary(), style=style)
    for error in job.errors[:20]:
        console.print(f"  - {error}", style="dim")


def _run_job(service: FileCategorizationService, console: Console, job_id: str) -> int:
    job = service.jobs.wait(job_id)
    _print_job(console, job)
    return 0 if job.status is JobStatus.SUCCEEDED else 1


def _serve(config: AppConfig, args: argparse.Namespace) -> int:
    settings = config.settings
    with FileCategorizationService(config) as service:
        service.start()
        server = FileCatServer(
            service,
            args.host or settings.server.host,
            args.port or settings.server.port,
        )
        watcher: FileWatcherLoop | None = None
        watch_enabled = settings.file_watcher.enabled if args.watch is None else args.watch
        if watch_enabled:
            watcher = FileWatcherLoop(settings.origin_dir, service.refresh_files, settings.file_watcher)
            threading.Thread(target=watcher.run_forever, name="filecat-watcher", daemon=True).start()
        try:
            server.serve_forever()
        finally:
            if watcher is not None:
                watcher.stop()
    return 0


def _monitor(config: AppConfig, console: Console) -> int:
    store = build_store(config.client)
    printed = 0

    def echo(state, action: Action) -> None:
        nonlocal printed
        for line in state.console_messages[printed:]:
            console.print(line)
        printed = len(state.console_messages)

    store.subscribe(echo)
    listener = PushListener(config.client, store.dispatch)
    try:
        listener.run()
    except KeyboardInterrupt:
        listener.stop()
    return 0


def _remote_jobs(config: AppConfig, console: Console, job_id: str | None) -> int:
    with ApiClient(config.client) as api:
        jobs = [api.job_status(job_id)] if job_id else api.list_jobs()
    table = Table(title="Jobs")
    for column in ("Job", "Kind", "Status", "Progress", "Processed", "Failed", "Skipped"):
        table.add_column(column)
    for job in jobs:
        table.add_row(
            job.job_id,
            job.kind.value,
            job.status.value,
            f"{job.progress_percentage:.0f}%",
            str(job.processed_items),
            str(job.failed_items),
            str(job.skipped_items),
        )
    console.print(table)
    return 0


def _validate(path: Path, console: Console) -> int:
    data: Any = load_yaml_file(path)
    report = validate_config_data(data)
    for issue in report.errors + report.warnings:
        style = "red" if issue.severity == "error" else "yellow"
        line = f"{issue.severity.upper()} {issue.path or '<root>'}: {issue.message}"
        if issue.fix_suggestion:
            line += f" (hint: {issue.fix_suggestion})"
        console.print(line, style=style)
    if report.is_valid:
        console.print(f"{path} is valid", style="green")
        return 0
    return 1


def run(argv: list[str] | None = None, *, console: Console | None = None) -> int:
    console = console or Console()
    parser = build_parser(console)
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else os.environ.get("LOG_LEVEL", "INFO")
    configure_logging(level, log_file=args.log_file, console=console)
    config_path = args.config or _default_config_path()

    try:
        if args.command == "validate-config":
            return _validate(config_path, console)

        config = load_config(config_path)
        LOGGER.debug(render_fields_block("Configuration", {"Path": config_path, "Version": __version__}))

        if args.command == "serve":
            return _serve(config, args)
        if args.command == "monitor":
            return _monitor(config, console)
        if args.command == "jobs":
            return _remote_jobs(config, console, args.job_id)

        with FileCategorizationService(config) as service:
            service.start()
            return _run_local(service, args, console)
    except FilecatError as exc:
        console.print(f"Error: {exc}", style="bold red")
        return 1
    except (OSError, ValueError) as exc:
        console.print(f"Error: {exc}", style="bold red")
        return 2


def _run_local(service: FileCategorizationService, args: argparse.Namespace, console: Console) -> int:
    if args.command == "refresh":
        request = RefreshFilesRequest(
            file_extension_filters=args.extensions,
            batch_size=args.batch_size or service.settings.scan.batch_size,
        )
        return _run_job(service, console, service.refresh_files(request))
    if args.command == "force-categorize":
        request = ForceCategorizeRequest(force_recategorization=args.force)
        return _run_job(service, console, service.force_categorize(request))
    if args.command == "move":
        request = MoveFilesRequest(
            files_to_move=args.items,
            continue_on_error=not args.stop_on_error,
            create_directories=not args.no_create_dirs,
            validate_categories=not args.skip_category_check,
        )
        return _run_job(service, console, service.move_files(request))
    if args.command == "train":
        result = service.train_model()
        console.print(result.message, style="green" if result.success else "red")
        return 0 if result.success else 1
    if args.command == "list":
        table = Table(title="Files")
        for column in ("Id", "Name", "Category", "New", "Excluded"):
            table.add_column(column)
        for record in service.list_files(_FILTERS[args.filter]):
            table.add_row(
                str(record.id),
                record.name,
                record.category or "-",
                "yes" if record.is_new else "",
                "yes" if record.exclude_from_move else "",
            )
        console.print(table)
        return 0
    if args.command == "categories":
        for category in service.categories():
            console.print(category)
        return 0
    raise ValueError(f"Unknown command '{args.command}'")


def main() -> None:
    sys.exit(run())


__all__ = ["build_parser", "main", "run"]
