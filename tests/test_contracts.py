from __future__ import annotations

import datetime as dt

import pytest

from filecat.contracts import (
    BatchJobDTO,
    FileRecordDTO,
    MoveFilesRequest,
    RefreshFilesRequest,
    UpdateFileRequest,
    parse_request,
)
from filecat.errors import ValidationError
from filecat.models import BatchJob, FileRecord, JobKind, JobStatus


class TestParseRequest:
    def test_accepts_camel_case_and_snake_case(self) -> None:
        camel = parse_request(MoveFilesRequest, {"filesToMove": [{"id": 1, "category": "Video"}], "continueOnError": False})
        snake = parse_request(MoveFilesRequest, {"files_to_move": [{"id": 1, "category": "Video"}], "continue_on_error": False})

        assert camel == snake
        assert camel.continue_on_error is False
        assert camel.validate_categories is True
        assert camel.create_directories is True

    def test_none_payload_uses_defaults(self) -> None:
        request = parse_request(RefreshFilesRequest, None)

        assert request.batch_size == 100
        assert request.file_extension_filters == []

    def test_collects_one_message_per_field(self) -> None:
        with pytest.raises(ValidationError) as excinfo:
            parse_request(RefreshFilesRequest, {"batchSize": 5, "fileExtensionFilters": ["mkv"]})

        locations = sorted(message.split(":", 1)[0] for message in excinfo.value.messages)
        assert locations == ["batchSize", "fileExtensionFilters"]

    def test_extensions_are_normalised(self) -> None:
        request = parse_request(RefreshFilesRequest, {"fileExtensionFilters": [" .MKV ", ".mp3"]})

        assert request.file_extension_filters == [".mkv", ".mp3"]

    @pytest.mark.parametrize("category", ["", "Video/../etc", "Films!"])
    def test_rejects_invalid_categories(self, category: str) -> None:
        with pytest.raises(ValidationError):
            parse_request(UpdateFileRequest, {"category": category})

    def test_rejects_non_positive_file_ids(self) -> None:
        with pytest.raises(ValidationError):
            parse_request(MoveFilesRequest, {"filesToMove": [{"id": 0, "category": "Video"}]})


class TestResponseModels:
    def test_file_record_wire_format(self) -> None:
        record = FileRecord(id=1, path="/in/movie.mkv", name="movie.mkv", size=10, modified_at=dt.datetime(2024, 1, 2, 3, 4, 5))

        wire = FileRecordDTO.from_record(record).to_wire()

        assert wire["needsCategorization"] is True
        assert wire["excludeFromMove"] is False
        assert wire["modifiedAt"] == "2024-01-02T03:04:05"
        assert FileRecordDTO.model_validate(wire).id == 1

    def test_batch_job_from_job(self) -> None:
        job = BatchJob(kind=JobKind.MOVE)
        job.mark_running()
        job.add_total(4)
        job.record_success()
        job.record_failure("b.mkv: Permission denied")

        dto = BatchJobDTO.from_job(job)

        assert dto.status is JobStatus.RUNNING
        assert dto.is_terminal is False
        assert dto.progress_percentage == 50.0
        assert dto.estimated_time_remaining is not None
        wire = dto.to_wire()
        assert wire["processedItems"] == 1
        assert wire["failedItems"] == 1
        assert wire["errors"] == ["b.mkv: Permission denied"]
        assert wire["kind"] == "move"
