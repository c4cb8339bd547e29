"""Pydantic request/response models shared by the HTTP server and the client.

Wire names are camelCase; Python attribute names stay snake_case. Requests
accept either spelling.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import ValidationError
from .models import BatchJob, ConfigEntry, FileRecord, JobKind, JobStatus

CATEGORY_REGEX = r"^[A-Za-z0-9_\-\s]+$"
EXTENSION_REGEX = r"^\.[A-Za-z0-9]+$"
MAX_MOVE_ITEMS = 1000

_EXTENSION_PATTERN = re.compile(EXTENSION_REGEX)


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class _ResponseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class MoveFileItem(_RequestModel):
    id: int = Field(gt=0)
    category: str = Field(min_length=1, max_length=100, pattern=CATEGORY_REGEX)


class MoveFilesRequest(_RequestModel):
    files_to_move: list[MoveFileItem] = Field(min_length=1, max_length=MAX_MOVE_ITEMS)
    continue_on_error: bool = True
    validate_categories: bool = True
    create_directories: bool = True


class RefreshFilesRequest(_RequestModel):
    file_extension_filters: list[str] = Field(default_factory=list, max_length=50)
    batch_size: int = Field(default=100, ge=10, le=1000)
    force_recategorization: bool = False

    @pydantic.field_validator("file_extension_filters")
    @classmethod
    def _check_extensions(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for entry in value:
            entry = entry.strip().lower()
            if not _EXTENSION_PATTERN.fullmatch(entry):
                raise ValueError(f"'{entry}' is not a file extension like '.mkv'")
            cleaned.append(entry)
        return cleaned


class ForceCategorizeRequest(_RequestModel):
    batch_size: int = Field(default=100, ge=10, le=1000)
    force_recategorization: bool = False


class UpdateFileRequest(_RequestModel):
    category: str = Field(min_length=1, max_length=100, pattern=CATEGORY_REGEX)


class ConfigEntryRequest(_RequestModel):
    key: str = Field(min_length=1, max_length=100)
    value: str = Field(max_length=500)


class ConfigUpdateRequest(_RequestModel):
    value: str = Field(max_length=500)


def parse_request[T: BaseModel](model: type[T], payload: Any) -> T:
    """Validate ``payload`` into ``model``.

    Raises:
        ValidationError: With one message per offending field
    """
    if payload is None:
        payload = {}
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "<body>"
            messages.append(f"{location}: {error.get('msg', 'invalid value')}")
        raise ValidationError(messages) from exc


class FileRecordDTO(_ResponseModel):
    id: int
    name: str
    path: str
    size: int
    modified_at: datetime
    category: str | None = None
    needs_categorization: bool = True
    is_new: bool = True
    exclude_from_move: bool = False
    moved_at: datetime | None = None

    @classmethod
    def from_record(cls, record: FileRecord) -> FileRecordDTO:
        return cls(
            id=record.id,
            name=record.name,
            path=record.path,
            size=record.size,
            modified_at=record.modified_at,
            category=record.category,
            needs_categorization=record.needs_categorization,
            is_new=record.is_new,
            exclude_from_move=record.exclude_from_move,
            moved_at=record.moved_at,
        )


class ConfigEntryDTO(_ResponseModel):
    id: int | None = None
    key: str
    value: str
    environment: str = "prod"

    @classmethod
    def from_entry(cls, entry: ConfigEntry) -> ConfigEntryDTO:
        return cls(id=entry.id, key=entry.key, value=entry.value, environment=entry.environment)


class BatchJobDTO(_ResponseModel):
    job_id: str
    kind: JobKind
    status: JobStatus
    start_time: datetime | None = None
    end_time: datetime | None = None
    total_items: int = 0
    processed_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    progress_percentage: float = 0.0
    estimated_time_remaining: float | None = None
    errors: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    note: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_job(cls, job: BatchJob) -> BatchJobDTO:
        remaining = job.estimated_time_remaining
        return cls(
            job_id=job.job_id,
            kind=job.kind,
            status=job.status,
            start_time=job.started_at,
            end_time=job.finished_at,
            total_items=job.total,
            processed_items=job.processed,
            failed_items=job.failed,
            skipped_items=job.skipped,
            progress_percentage=round(job.progress_percentage, 2),
            estimated_time_remaining=remaining.total_seconds() if remaining is not None else None,
            errors=list(job.errors),
            metadata=dict(job.metadata),
            note=job.note,
        )


class JobAcceptedResponse(_ResponseModel):
    job_id: str


class TrainModelResponse(_ResponseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        protected_namespaces=(),
    )

    success: bool
    message: str
    model_version: str | None = None
    model_path: str | None = None
    model_size_bytes: int = 0
    training_samples: int = 0
    training_duration: float = 0.0
    metrics: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "BatchJobDTO",
    "ConfigEntryDTO",
    "ConfigEntryRequest",
    "ConfigUpdateRequest",
    "FileRecordDTO",
    "ForceCategorizeRequest",
    "JobAcceptedResponse",
    "MoveFileItem",
    "MoveFilesRequest",
    "RefreshFilesRequest",
    "TrainModelResponse",
    "UpdateFileRequest",
    "parse_request",
]
