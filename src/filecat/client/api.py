"""HTTP client for the filecat REST API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

import httpx

from ..config import ClientSettings
from ..contracts import (
    BatchJobDTO,
    ConfigEntryDTO,
    FileRecordDTO,
    ForceCategorizeRequest,
    MoveFileItem,
    MoveFilesRequest,
    RefreshFilesRequest,
    TrainModelResponse,
)
from ..errors import NotFoundError, TransportError
from ..models import FileFilter

LOGGER = logging.getLogger(__name__)

MAX_BACKOFF = 30.0
_RETRYABLE_STATUS = {429, 502, 503, 504}
_RETRYABLE_METHODS = {"GET"}


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:200] or response.reason_phrase
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if errors:
            return "; ".join(str(item) for item in errors)
        if payload.get("error"):
            return str(payload["error"])
    return response.reason_phrase


class ApiClient:
    """Thin typed wrapper over the REST API with retry and backoff.

    GET requests that hit a network error, a timeout or a transient status code
    (429 and 502-504) are retried ``settings.retry.max_retries`` times with
    exponential backoff. Every other method is sent exactly once, since a
    request that timed out may still have been applied by the server.
    A 404 raises :class:`NotFoundError`; every other failure ends in
    :class:`TransportError`.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or ClientSettings()
        base_url = self.settings.base_url.rstrip("/")
        self._client = httpx.Client(base_url=base_url, timeout=self.settings.timeout, transport=transport)
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        retry = self.settings.retry
        attempts = max(1, retry.max_retries + 1) if method.upper() in _RETRYABLE_METHODS else 1
        backoff = retry.initial_delay
        last_error: str = "no attempt made"
        last_status: int | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.RequestError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                last_status = None
            else:
                if response.status_code == 404:
                    raise NotFoundError(_error_detail(response) or f"Resource not found: {path}")
                if response.status_code < 400:
                    return response
                last_error = _error_detail(response)
                last_status = response.status_code
                if response.status_code not in _RETRYABLE_STATUS:
                    raise TransportError(
                        f"{method} {path} failed with {response.status_code}: {last_error}",
                        status_code=response.status_code,
                    )

            if attempt < attempts:
                LOGGER.debug("Request %s %s failed (attempt %d/%d): %s", method, path, attempt, attempts, last_error)
                self._sleep(backoff)
                backoff = min(backoff * retry.backoff_multiplier, MAX_BACKOFF)

        raise TransportError(
            f"{method} {path} failed after {attempts} attempt(s): {last_error}",
            status_code=last_status,
        )

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._request(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON", status_code=response.status_code) from exc

    # files

    def get_files(self, file_filter: FileFilter | int = FileFilter.ALL) -> list[FileRecordDTO]:
        payload = self._json("GET", "/files", params={"filter": int(file_filter)})
        return [FileRecordDTO.model_validate(item) for item in payload or []]

    def get_files_by_category(self, category: str) -> list[FileRecordDTO]:
        payload = self._json("GET", f"/files/category/{category}")
        return [FileRecordDTO.model_validate(item) for item in payload or []]

    def get_latest_files(self) -> list[FileRecordDTO]:
        payload = self._json("GET", "/files/latest")
        return [FileRecordDTO.model_validate(item) for item in payload or []]

    def get_file(self, file_id: int) -> FileRecordDTO:
        return FileRecordDTO.model_validate(self._json("GET", f"/files/{file_id}"))

    def update_file(self, file_id: int, category: str) -> FileRecordDTO:
        payload = self._json("PUT", f"/files/{file_id}", json={"category": category})
        return FileRecordDTO.model_validate(payload)

    def not_show_again(self, file_id: int) -> FileRecordDTO:
        return FileRecordDTO.model_validate(self._json("PATCH", f"/files/{file_id}/not-show-again"))

    def delete_file(self, file_id: int) -> None:
        self._request("DELETE", f"/files/{file_id}")

    def get_categories(self) -> list[str]:
        return [str(item) for item in self._json("GET", "/categories") or []]

    # configs

    def get_configs(self) -> list[ConfigEntryDTO]:
        return [ConfigEntryDTO.model_validate(item) for item in self._json("GET", "/configs") or []]

    def add_config(self, key: str, value: str) -> ConfigEntryDTO:
        return ConfigEntryDTO.model_validate(self._json("POST", "/configs", json={"key": key, "value": value}))

    def update_config(self, entry_id: int, value: str) -> ConfigEntryDTO:
        return ConfigEntryDTO.model_validate(self._json("PUT", f"/configs/{entry_id}", json={"value": value}))

    def delete_config(self, entry_id: int) -> None:
        self._request("DELETE", f"/configs/{entry_id}")

    # actions

    def refresh_files(self, request: RefreshFilesRequest | None = None) -> str:
        body = (request or RefreshFilesRequest()).model_dump(mode="json", by_alias=True)
        return self._job_id(self._json("POST", "/actions/refresh-files", json=body))

    def force_categorize(self, request: ForceCategorizeRequest | None = None) -> str:
        body = (request or ForceCategorizeRequest()).model_dump(mode="json", by_alias=True)
        return self._job_id(self._json("POST", "/actions/force-categorize", json=body))

    def move_files(
        self,
        items: MoveFilesRequest | Iterable[MoveFileItem],
        *,
        continue_on_error: bool = True,
    ) -> str:
        if isinstance(items, MoveFilesRequest):
            request = items
        else:
            request = MoveFilesRequest(files_to_move=list(items), continue_on_error=continue_on_error)
        body = request.model_dump(mode="json", by_alias=True)
        return self._job_id(self._json("POST", "/actions/move-files", json=body))

    def train_model(self) -> TrainModelResponse:
        return TrainModelResponse.model_validate(self._json("POST", "/actions/train-model"))

    def list_jobs(self) -> list[BatchJobDTO]:
        return [BatchJobDTO.model_validate(item) for item in self._json("GET", "/actions/jobs") or []]

    def job_status(self, job_id: str) -> BatchJobDTO:
        return BatchJobDTO.model_validate(self._json("GET", f"/actions/jobs/{job_id}/status"))

    def cancel_job(self, job_id: str) -> bool:
        payload = self._json("DELETE", f"/actions/jobs/{job_id}") or {}
        return bool(payload.get("cancelled"))

    @staticmethod
    def _job_id(payload: Any) -> str:
        if not isinstance(payload, dict) or not payload.get("jobId"):
            raise TransportError("Server response did not include a job id")
        return str(payload["jobId"])


__all__ = ["ApiClient"]
