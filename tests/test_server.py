"""Tests for the REST routes and a live round trip through the HTTP server."""

from __future__ import annotations

import datetime as dt
import re
from http import HTTPStatus

import pytest

from filecat.classifier import TrainingDataLog
from filecat.client import ApiClient
from filecat.config import AppConfig, ClientSettings, RetryPolicy
from filecat.contracts import MoveFileItem
from filecat.errors import NotFoundError, TransportError, ValidationError
from filecat.models import JobStatus
from filecat.server import ApiRoutes, FileCatServer, _MethodNotAllowed
from filecat.service import FileCategorizationService


@pytest.fixture
def service(app_config: AppConfig):
    service = FileCategorizationService(app_config)
    service.start()
    yield service
    service.close()


@pytest.fixture
def routes(service: FileCategorizationService) -> ApiRoutes:
    return ApiRoutes(service)


def _call(routes: ApiRoutes, method: str, path: str, body=None, query=None):
    resolved = routes.resolve(method, path)
    assert resolved is not None, f"no route for {method} {path}"
    handler, match = resolved
    return handler(match, query or {}, body)


def _seed(service: FileCategorizationService) -> None:
    (service.settings.origin_dir / "holiday.movie.mkv").write_text("m", encoding="utf-8")
    (service.settings.origin_dir / "live.song.mp3").write_text("s", encoding="utf-8")
    log = TrainingDataLog(service.settings.classifier.training_data)
    log.append(100, "Video", "old.movie.mkv")
    log.append(101, "Music", "old.song.mp3")


class TestApiRoutes:
    def test_unknown_path_and_wrong_method(self, routes: ApiRoutes) -> None:
        assert routes.resolve("GET", "/nope") is None
        with pytest.raises(_MethodNotAllowed):
            routes.resolve("POST", "/categories")

    def test_file_listing_filter_validation(self, routes: ApiRoutes) -> None:
        status, payload = _call(routes, "GET", "/files", query={"filter": ["3"]})
        assert (status, payload) == (HTTPStatus.OK, [])

        with pytest.raises(ValidationError):
            _call(routes, "GET", "/files", query={"filter": ["9"]})

    def test_refresh_then_categorize_and_update(self, routes: ApiRoutes, service: FileCategorizationService) -> None:
        _seed(service)
        status, trained = _call(routes, "POST", "/actions/train-model")
        assert status is HTTPStatus.OK
        assert trained["success"] is True
        assert trained["trainingSamples"] == 2

        status, accepted = _call(routes, "POST", "/actions/refresh-files", body={"batchSize": 10})
        assert status is HTTPStatus.ACCEPTED
        job = service.jobs.wait(accepted["jobId"], timeout=10)
        assert job.status is JobStatus.SUCCEEDED

        _, files = _call(routes, "GET", "/files", query={"filter": ["2"]})
        categories = {item["name"]: item["category"] for item in files}
        assert categories == {"holiday.movie.mkv": "Video", "live.song.mp3": "Music"}

        file_id = files[0]["id"]
        status, updated = _call(routes, "PUT", f"/files/{file_id}", body={"category": "Archive"})
        assert status is HTTPStatus.OK
        assert updated["category"] == "Archive"
        _, names = _call(routes, "GET", "/categories")
        assert "Archive" in names

    def test_not_show_again_and_delete(self, routes: ApiRoutes, service: FileCategorizationService) -> None:
        record = service.registry.upsert("/in/movie.mkv", 1, dt.datetime(2024, 1, 1))

        _, excluded = _call(routes, "PATCH", f"/files/{record.id}/not-show-again")
        assert excluded["excludeFromMove"] is True

        status, payload = _call(routes, "DELETE", f"/files/{record.id}")
        assert (status, payload) == (HTTPStatus.NO_CONTENT, None)
        with pytest.raises(NotFoundError):
            _call(routes, "DELETE", f"/files/{record.id}")
        with pytest.raises(NotFoundError):
            _call(routes, "GET", f"/files/{record.id}")

    def test_config_crud(self, routes: ApiRoutes) -> None:
        status, created = _call(routes, "POST", "/configs", body={"key": "origin", "value": "/in"})
        assert status is HTTPStatus.CREATED

        _, updated = _call(routes, "PUT", f"/configs/{created['id']}", body={"value": "/new"})
        assert updated["value"] == "/new"

        _, entries = _call(routes, "GET", "/configs")
        assert [(e["key"], e["value"]) for e in entries] == [("origin", "/new")]

        status, _ = _call(routes, "DELETE", f"/configs/{created['id']}")
        assert status is HTTPStatus.NO_CONTENT

    def test_move_request_is_validated(self, routes: ApiRoutes) -> None:
        with pytest.raises(ValidationError):
            _call(routes, "POST", "/actions/move-files", body={"filesToMove": [{"id": 1, "category": "../etc"}]})

    def test_unknown_job(self, routes: ApiRoutes) -> None:
        with pytest.raises(NotFoundError):
            _call(routes, "GET", "/actions/jobs/abc123/status")


class TestLiveServer:
    @pytest.fixture
    def client(self, service: FileCategorizationService):
        server = FileCatServer(service, port=0, keepalive_seconds=0.1)
        server.start()
        client = ApiClient(
            ClientSettings(base_url=server.url, timeout=5.0, retry=RetryPolicy(max_retries=0)),
        )
        yield client
        client.close()
        server.stop()

    def test_round_trip(self, client: ApiClient, service: FileCategorizationService) -> None:
        _seed(service)
        assert client.train_model().success is True

        job_id = client.refresh_files()
        service.jobs.wait(job_id, timeout=10)
        status = client.job_status(job_id)
        assert status.status is JobStatus.SUCCEEDED
        assert status.processed_items == 2

        movie = next(f for f in client.get_files() if f.name == "holiday.movie.mkv")
        assert client.get_file(movie.id).category == "Video"
        assert [f.id for f in client.get_files_by_category("Video")] == [movie.id]
        assert {f.category for f in client.get_latest_files()} == {"Music", "Video"}

        move_job = client.move_files([MoveFileItem(id=movie.id, category="Video")])
        assert service.jobs.wait(move_job, timeout=10).status is JobStatus.SUCCEEDED
        assert (service.settings.destination_dir / "Video" / "holiday.movie.mkv").exists()
        assert any(job.job_id == move_job for job in client.list_jobs())

    def test_errors_map_to_exceptions(self, client: ApiClient) -> None:
        with pytest.raises(NotFoundError):
            client.get_file(999)
        with pytest.raises(TransportError) as excinfo:
            client.update_file(999, "not/valid")
        assert excinfo.value.status_code == 400
        assert re.search(r"category", str(excinfo.value))
