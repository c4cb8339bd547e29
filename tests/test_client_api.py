from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from filecat.client import ApiClient
from filecat.config import ClientSettings, RetryPolicy
from filecat.contracts import MoveFileItem, RefreshFilesRequest
from filecat.errors import NotFoundError, TransportError
from filecat.models import FileFilter, JobStatus

FILE_PAYLOAD = {
    "id": 1,
    "name": "movie.mkv",
    "path": "/in/movie.mkv",
    "size": 10,
    "modifiedAt": "2024-01-02T03:04:05",
    "category": None,
    "needsCategorization": True,
    "isNew": True,
    "excludeFromMove": False,
    "movedAt": None,
}


def _client(handler, sleeps: List[float] | None = None, max_retries: int = 3) -> ApiClient:
    settings = ClientSettings(
        base_url="http://filecat.test/api/",
        retry=RetryPolicy(max_retries=max_retries, backoff_multiplier=2.0, initial_delay=0.5),
    )
    recorder = sleeps.append if sleeps is not None else (lambda seconds: None)
    return ApiClient(settings, transport=httpx.MockTransport(handler), sleep=recorder)


class TestRequests:
    def test_get_files_sends_filter_and_parses_records(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[FILE_PAYLOAD])

        with _client(handler) as client:
            files = client.get_files(FileFilter.TO_CATEGORIZE)

        assert seen[0].url.path == "/api/files"
        assert seen[0].url.params["filter"] == "3"
        assert files[0].name == "movie.mkv"
        assert files[0].needs_categorization is True

    def test_move_files_posts_camel_case_body(self) -> None:
        bodies: List[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(202, json={"jobId": "abc"})

        with _client(handler) as client:
            job_id = client.move_files([MoveFileItem(id=1, category="Video")], continue_on_error=False)

        assert job_id == "abc"
        assert bodies[0]["filesToMove"] == [{"id": 1, "category": "Video"}]
        assert bodies[0]["continueOnError"] is False
        assert bodies[0]["createDirectories"] is True

    def test_refresh_returns_job_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["fileExtensionFilters"] == [".mkv"]
            return httpx.Response(202, json={"jobId": "job-1"})

        with _client(handler) as client:
            assert client.refresh_files(RefreshFilesRequest(file_extension_filters=[".mkv"])) == "job-1"

    def test_missing_job_id_is_a_transport_error(self) -> None:
        with _client(lambda request: httpx.Response(202, json={})) as client:
            with pytest.raises(TransportError, match="job id"):
                client.force_categorize()

    def test_job_status_and_cancel(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "DELETE":
                return httpx.Response(200, json={"jobId": "j1", "cancelled": True})
            return httpx.Response(200, json={"jobId": "j1", "kind": "move", "status": "running", "totalItems": 3})

        with _client(handler) as client:
            status = client.job_status("j1")
            cancelled = client.cancel_job("j1")

        assert status.status is JobStatus.RUNNING
        assert status.total_items == 3
        assert cancelled is True

    def test_delete_handles_empty_response(self) -> None:
        with _client(lambda request: httpx.Response(204)) as client:
            client.delete_file(1)


class TestRetries:
    def test_transient_errors_are_retried_with_backoff(self) -> None:
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json=["Video"])])
        sleeps: List[float] = []

        with _client(lambda request: next(responses), sleeps) as client:
            assert client.get_categories() == ["Video"]

        assert sleeps == [0.5, 1.0]

    def test_network_errors_exhaust_retries(self) -> None:
        calls: List[int] = []
        sleeps: List[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ConnectError("connection refused", request=request)

        with _client(handler, sleeps, max_retries=2) as client:
            with pytest.raises(TransportError, match="after 3 attempt"):
                client.get_categories()

        assert len(calls) == 3
        assert sleeps == [0.5, 1.0]

    def test_timed_out_move_is_sent_once(self) -> None:
        calls: List[str] = []
        sleeps: List[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(f"{request.method} {request.url.path}")
            raise httpx.ReadTimeout("timed out", request=request)

        with _client(handler, sleeps) as client:
            with pytest.raises(TransportError, match="after 1 attempt"):
                client.move_files([MoveFileItem(id=1, category="Video")])

        assert calls == ["POST /api/actions/move-files"]
        assert sleeps == []

    def test_unsafe_methods_are_not_retried_on_transient_status(self) -> None:
        calls: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            return httpx.Response(503)

        with _client(handler) as client:
            with pytest.raises(TransportError) as excinfo:
                client.update_file(1, "Video")
            with pytest.raises(TransportError):
                client.delete_file(1)

        assert calls == ["PUT", "DELETE"]
        assert excinfo.value.status_code == 503

    def test_not_found_is_not_retried(self) -> None:
        calls: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(404, json={"error": "File 9 not found"})

        with _client(handler) as client:
            with pytest.raises(NotFoundError, match="File 9 not found"):
                client.get_file(9)

        assert len(calls) == 1

    def test_bad_request_raises_with_validation_messages(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid", "errors": ["category: String should match pattern"]})

        with _client(handler) as client:
            with pytest.raises(TransportError) as excinfo:
                client.update_file(1, "bad/name")

        assert excinfo.value.status_code == 400
        assert "category: String should match pattern" in str(excinfo.value)

    def test_invalid_json_body(self) -> None:
        with _client(lambda request: httpx.Response(200, content=b"<html>")) as client:
            with pytest.raises(TransportError, match="invalid JSON"):
                client.get_categories()
