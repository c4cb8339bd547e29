"""HTTP front end: a small JSON REST API plus a server-sent events stream."""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from .contracts import (
    BatchJobDTO,
    ConfigEntryDTO,
    FileRecordDTO,
    JobAcceptedResponse,
    TrainModelResponse,
)
from .errors import NotFoundError, ValidationError
from .models import FileFilter
from .notifications import QueueChannel
from .service import FileCategorizationService

LOGGER = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0

Response = tuple[HTTPStatus, Any]
RouteHandler = Callable[[re.Match[str], dict[str, list[str]], Any], Response]


def _parse_filter(query: dict[str, list[str]]) -> FileFilter:
    raw = (query.get("filter") or ["1"])[0]
    try:
        return FileFilter(int(raw))
    except ValueError as exc:
        allowed = ", ".join(str(member.value) for member in FileFilter)
        raise ValidationError(f"filter: must be one of {allowed}") from exc


class ApiRoutes:
    """Maps (method, path) pairs onto service calls."""

    def __init__(self, service: FileCategorizationService) -> None:
        self.service = service
        self._routes: list[tuple[str, re.Pattern[str], RouteHandler]] = [
            ("GET", re.compile(r"^/files$"), self.list_files),
            ("GET", re.compile(r"^/files/latest$"), self.latest_files),
            ("GET", re.compile(r"^/files/category/(?P<name>[^/]+)$"), self.files_by_category),
            ("GET", re.compile(r"^/files/(?P<id>\d+)$"), self.get_file),
            ("PUT", re.compile(r"^/files/(?P<id>\d+)$"), self.update_file),
            ("PATCH", re.compile(r"^/files/(?P<id>\d+)/not-show-again$"), self.not_show_again),
            ("DELETE", re.compile(r"^/files/(?P<id>\d+)$"), self.delete_file),
            ("GET", re.compile(r"^/categories$"), self.categories),
            ("GET", re.compile(r"^/configs$"), self.list_configs),
            ("POST", re.compile(r"^/configs$"), self.add_config),
            ("PUT", re.compile(r"^/configs/(?P<id>\d+)$"), self.update_config),
            ("DELETE", re.compile(r"^/configs/(?P<id>\d+)$"), self.delete_config),
            ("POST", re.compile(r"^/actions/refresh-files$"), self.refresh_files),
            ("POST", re.compile(r"^/actions/force-categorize$"), self.force_categorize),
            ("POST", re.compile(r"^/actions/move-files$"), self.move_files),
            ("POST", re.compile(r"^/actions/train-model$"), self.train_model),
            ("GET", re.compile(r"^/actions/jobs$"), self.list_jobs),
            ("GET", re.compile(r"^/actions/jobs/(?P<job_id>[0-9a-f]+)/status$"), self.job_status),
            ("DELETE", re.compile(r"^/actions/jobs/(?P<job_id>[0-9a-f]+)$"), self.cancel_job),
        ]

    def resolve(self, method: str, path: str) -> tuple[RouteHandler, re.Match[str]] | None:
        path_known = False
        for route_method, pattern, handler in self._routes:
            match = pattern.match(path)
            if match is None:
                continue
            path_known = True
            if route_method == method:
                return handler, match
        if path_known:
            raise _MethodNotAllowed(method)
        return None

    # files
    def list_files(self, match, query, body) -> Response:
        records = self.service.list_files(_parse_filter(query))
        return HTTPStatus.OK, [FileRecordDTO.from_record(record).to_wire() for record in records]

    def latest_files(self, match, query, body) -> Response:
        return HTTPStatus.OK, [FileRecordDTO.from_record(r).to_wire() for r in self.service.latest_per_category()]

    def files_by_category(self, match, query, body) -> Response:
        records = self.service.list_by_category(unquote(match["name"]))
        return HTTPStatus.OK, [FileRecordDTO.from_record(record).to_wire() for record in records]

    def get_file(self, match, query, body) -> Response:
        return HTTPStatus.OK, FileRecordDTO.from_record(self.service.get_file(int(match["id"]))).to_wire()

    def update_file(self, match, query, body) -> Response:
        record = self.service.update_category(int(match["id"]), body)
        return HTTPStatus.OK, FileRecordDTO.from_record(record).to_wire()

    def not_show_again(self, match, query, body) -> Response:
        record = self.service.mark_not_show_again(int(match["id"]))
        return HTTPStatus.OK, FileRecordDTO.from_record(record).to_wire()

    def delete_file(self, match, query, body) -> Response:
        file_id = int(match["id"])
        if not self.service.delete_file(file_id):
            raise NotFoundError(f"File {file_id} not found")
        return HTTPStatus.NO_CONTENT, None

    def categories(self, match, query, body) -> Response:
        return HTTPStatus.OK, self.service.categories()

    # configs
    def list_configs(self, match, query, body) -> Response:
        return HTTPStatus.OK, [ConfigEntryDTO.from_entry(entry).to_wire() for entry in self.service.list_configs()]

    def add_config(self, match, query, body) -> Response:
        return HTTPStatus.CREATED, ConfigEntryDTO.from_entry(self.service.add_config(body)).to_wire()

    def update_config(self, match, query, body) -> Response:
        entry = self.service.update_config(int(match["id"]), body)
        return HTTPStatus.OK, ConfigEntryDTO.from_entry(entry).to_wire()

    def delete_config(self, match, query, body) -> Response:
        entry_id = int(match["id"])
        if not self.service.delete_config(entry_id):
            raise NotFoundError(f"Config entry {entry_id} not found")
        return HTTPStatus.NO_CONTENT, None

    # actions
    def refresh_files(self, match, query, body) -> Response:
        return HTTPStatus.ACCEPTED, JobAcceptedResponse(job_id=self.service.refresh_files(body)).to_wire()

    def force_categorize(self, match, query, body) -> Response:
        return HTTPStatus.ACCEPTED, JobAcceptedResponse(job_id=self.service.force_categorize(body)).to_wire()

    def move_files(self, match, query, body) -> Response:
        return HTTPStatus.ACCEPTED, JobAcceptedResponse(job_id=self.service.move_files(body)).to_wire()

    def train_model(self, match, query, body) -> Response:
        result = self.service.train_model()
        response = TrainModelResponse(
            success=result.success,
            message=result.message,
            model_version=result.model_version,
            model_path=str(result.model_path) if result.model_path else None,
            model_size_bytes=result.model_size_bytes,
            training_samples=result.training_samples,
            training_duration=result.training_duration.total_seconds(),
            metrics=result.metrics,
        )
        return HTTPStatus.OK, response.to_wire()

    def list_jobs(self, match, query, body) -> Response:
        return HTTPStatus.OK, [BatchJobDTO.from_job(job).to_wire() for job in self.service.list_jobs()]

    def job_status(self, match, query, body) -> Response:
        return HTTPStatus.OK, BatchJobDTO.from_job(self.service.job_status(match["job_id"])).to_wire()

    def cancel_job(self, match, query, body) -> Response:
        return HTTPStatus.OK, {"jobId": match["job_id"], "cancelled": self.service.cancel_job(match["job_id"])}


class _MethodNotAllowed(Exception):
    pass


class FileCatServer:
    """Serve the REST API and the notification stream from a background thread."""

    def __init__(
        self,
        service: FileCategorizationService,
        host: str = "127.0.0.1",
        port: int = 5000,
        *,
        keepalive_seconds: float = KEEPALIVE_SECONDS,
    ) -> None:
        self.service = service
        self.host = host
        self.port = port
        self.keepalive_seconds = keepalive_seconds
        self.routes = ApiRoutes(service)
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._stopping = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        if self._server is None:
            return self.host, self.port
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    @property
    def url(self) -> str:
        host, port = self.address
        return f"http://{host}:{port}/"

    def start(self) -> None:
        """Start the HTTP server in a background thread."""
        if self._server is not None:
            return
        self._stopping.clear()
        self._server = ThreadingHTTPServer((self.host, self.port), self._build_handler())
        self._server.daemon_threads = True
        self._thread = threading.Thread(target=self._server.serve_forever, name="filecat-http", daemon=True)
        self._thread.start()
        LOGGER.info("HTTP API listening on %s", self.url)

    def serve_forever(self) -> None:
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(timeout=1.0)
        except KeyboardInterrupt:
            LOGGER.info("Interrupted; stopping HTTP API")
        finally:
            self.stop()

    def stop(self) -> None:
        if self._server is None:
            return
        self._stopping.set()
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _build_handler(self):
        routes = self.routes
        hub = self.service.hub
        queue_size = self.service.settings.notifications.queue_size
        keepalive = self.keepalive_seconds
        stopping = self._stopping

        class Handler(BaseHTTPRequestHandler):
            protocol_version = "HTTP/1.1"

            def do_GET(self) -> None:
                if urlparse(self.path).path == "/notifications":
                    self._stream_notifications()
                    return
                self._dispatch("GET")

            def do_POST(self) -> None:
                self._dispatch("POST")

            def do_PUT(self) -> None:
                self._dispatch("PUT")

            def do_PATCH(self) -> None:
                self._dispatch("PATCH")

            def do_DELETE(self) -> None:
                self._dispatch("DELETE")

            def _read_body(self) -> Any:
                length = int(self.headers.get("Content-Length") or 0)
                if length <= 0:
                    return None
                raw = self.rfile.read(length)
                try:
                    return json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                    raise ValidationError(f"<body>: invalid JSON ({exc})") from exc

            def _dispatch(self, method: str) -> None:
                parsed = urlparse(self.path)
                path = parsed.path.rstrip("/") or "/"
                try:
                    body = self._read_body()
                    resolved = routes.resolve(method, path)
                    if resolved is None:
                        self._send_json(HTTPStatus.NOT_FOUND, {"error": f"No route for {path}"})
                        return
                    handler, match = resolved
                    status, payload = handler(match, parse_qs(parsed.query), body)
                except _MethodNotAllowed:
                    self._send_json(HTTPStatus.METHOD_NOT_ALLOWED, {"error": f"{method} not allowed on {path}"})
                except ValidationError as exc:
                    self._send_json(HTTPStatus.BAD_REQUEST, {"error": str(exc), "errors": exc.messages})
                except NotFoundError as exc:
                    self._send_json(HTTPStatus.NOT_FOUND, {"error": str(exc)})
                except Exception as exc:  # noqa: BLE001
                    LOGGER.exception("Unhandled error serving %s %s", method, path)
                    self._send_json(HTTPStatus.INTERNAL_SERVER_ERROR, {"error": str(exc)})
                else:
                    self._send_json(status, payload)

            def _send_json(self, status: HTTPStatus, payload: Any) -> None:
                if status == HTTPStatus.NO_CONTENT:
                    self.send_response(status)
                    self.send_header("Content-Length", "0")
                    self.end_headers()
                    return
                encoded = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

            def _stream_notifications(self) -> None:
                channel = QueueChannel(maxsize=queue_size, label=f"sse:{self.client_address[0]}")
                channel_id = hub.connect(channel)
                self.close_connection = True
                try:
                    self.send_response(HTTPStatus.OK)
                    self.send_header("Content-Type", "text/event-stream")
                    self.send_header("Cache-Control", "no-cache")
                    self.send_header("Connection", "close")
                    self.end_headers()
                    hello = json.dumps({"connectionId": channel_id})
                    self.wfile.write(f"event: connected\ndata: {hello}\n\n".encode("utf-8"))
                    self.wfile.flush()
                    while not stopping.is_set() and not channel.closed:
                        message = channel.get(timeout=keepalive)
                        frame = message.to_sse() if message is not None else b": keepalive\n\n"
                        self.wfile.write(frame)
                        self.wfile.flush()
                except (BrokenPipeError, ConnectionResetError):
                    LOGGER.debug("Notification stream %s closed by client", channel_id)
                finally:
                    hub.disconnect(channel_id)

            def log_message(self, format: str, *args) -> None:
                LOGGER.debug("HTTP: " + format, *args)

        return Handler


__all__ = ["ApiRoutes", "FileCatServer"]
