from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from filecat.batch import RunOutcome
from filecat.config import JobSettings
from filecat.errors import NotFoundError, ValidationError
from filecat.events import JobUpdated
from filecat.jobs import JobCoordinator, resolve_status
from filecat.models import BatchJob, JobKind, JobStatus


def _job(total: int, processed: int, failed: int) -> BatchJob:
    job = BatchJob(kind=JobKind.MOVE)
    job.mark_running()
    job.add_total(total)
    for _ in range(processed):
        job.record_success()
    for _ in range(failed):
        job.record_failure("boom")
    return job


class TestResolveStatus:
    def test_all_succeeded(self) -> None:
        assert resolve_status(_job(2, 2, 0), RunOutcome.COMPLETED) == (JobStatus.SUCCEEDED, None)

    def test_empty_job_succeeds(self) -> None:
        assert resolve_status(_job(0, 0, 0), RunOutcome.COMPLETED) == (JobStatus.SUCCEEDED, None)

    def test_mixed_results_partially_fail(self) -> None:
        assert resolve_status(_job(3, 2, 1), RunOutcome.COMPLETED) == (JobStatus.PARTIALLY_FAILED, None)

    def test_no_successes_fail(self) -> None:
        assert resolve_status(_job(2, 0, 2), RunOutcome.COMPLETED) == (JobStatus.FAILED, None)

    def test_abort_and_cancel_fail_with_note(self) -> None:
        assert resolve_status(_job(3, 1, 1), RunOutcome.ABORTED) == (JobStatus.FAILED, "Aborted after first failure")
        assert resolve_status(_job(3, 3, 0), RunOutcome.CANCELLED) == (JobStatus.FAILED, "Cancelled by user")


@pytest.fixture
def engine() -> MagicMock:
    engine = MagicMock()
    engine.refresh.return_value = RunOutcome.COMPLETED
    engine.force_categorize.return_value = RunOutcome.COMPLETED
    engine.move.return_value = RunOutcome.COMPLETED
    return engine


@pytest.fixture
def published() -> list:
    return []


@pytest.fixture
def coordinator(engine: MagicMock, published: list):
    coordinator = JobCoordinator(engine, JobSettings(max_workers=2), emit=published.append)
    yield coordinator
    coordinator.shutdown()


class TestJobCoordinator:
    def test_refresh_job_runs_to_success(self, coordinator: JobCoordinator, engine: MagicMock) -> None:
        job_id = coordinator.submit_refresh({"batchSize": 50})

        job = coordinator.wait(job_id, timeout=5)

        assert job.status is JobStatus.SUCCEEDED
        assert job.kind is JobKind.REFRESH
        assert job.started_at is not None and job.finished_at is not None
        request = engine.refresh.call_args.args[1]
        assert request.batch_size == 50

    def test_publishes_every_transition(self, coordinator: JobCoordinator, published: list) -> None:
        job_id = coordinator.submit_force_categorize()
        coordinator.wait(job_id, timeout=5)

        statuses = [event.job.status for event in published if isinstance(event, JobUpdated)]
        assert statuses == [JobStatus.PENDING, JobStatus.RUNNING, JobStatus.SUCCEEDED]
        assert all(event.job.job_id == job_id for event in published)

    def test_progress_callback_publishes_snapshots(
        self, coordinator: JobCoordinator, engine: MagicMock, published: list
    ) -> None:
        def run(job, request, progress):
            job.add_total(2)
            job.record_success()
            progress(job)
            job.record_success()
            progress(job)
            return RunOutcome.COMPLETED

        engine.move.side_effect = run
        job_id = coordinator.submit_move({"filesToMove": [{"id": 1, "category": "Video"}, {"id": 2, "category": "Video"}]})
        coordinator.wait(job_id, timeout=5)

        running = [event.job.processed for event in published if event.job.status is JobStatus.RUNNING]
        assert running == [0, 1, 2]

    def test_crashing_runner_fails_job(self, coordinator: JobCoordinator, engine: MagicMock) -> None:
        engine.refresh.side_effect = OSError("disk gone")

        job = coordinator.wait(coordinator.submit_refresh(), timeout=5)

        assert job.status is JobStatus.FAILED
        assert job.note == "Crashed: disk gone"

    def test_cancel_running_job(self, coordinator: JobCoordinator, engine: MagicMock) -> None:
        started = threading.Event()
        release = threading.Event()

        def run(job, request, progress):
            started.set()
            release.wait(5)
            return RunOutcome.CANCELLED if job.cancel_requested else RunOutcome.COMPLETED

        engine.refresh.side_effect = run
        job_id = coordinator.submit_refresh()
        assert started.wait(5)

        assert coordinator.cancel(job_id) is True
        release.set()
        job = coordinator.wait(job_id, timeout=5)

        assert job.status is JobStatus.FAILED
        assert job.note == "Cancelled by user"
        assert coordinator.cancel(job_id) is False

    def test_unknown_job(self, coordinator: JobCoordinator) -> None:
        with pytest.raises(NotFoundError):
            coordinator.get("missing")
        with pytest.raises(NotFoundError):
            coordinator.cancel("missing")

    def test_invalid_move_request_rejected_before_queueing(
        self, coordinator: JobCoordinator, engine: MagicMock
    ) -> None:
        with pytest.raises(ValidationError) as excinfo:
            coordinator.submit_move({"filesToMove": []})

        assert excinfo.value.messages[0].startswith("filesToMove")
        assert coordinator.list_jobs() == []
        engine.move.assert_not_called()

    def test_move_batch_limit(self, engine: MagicMock) -> None:
        coordinator = JobCoordinator(engine, JobSettings(max_move_batch=2))
        try:
            with pytest.raises(ValidationError, match="at most 2 files"):
                coordinator.submit_move({"filesToMove": [{"id": i, "category": "Video"} for i in range(1, 4)]})
        finally:
            coordinator.shutdown()

    def test_only_recent_finished_jobs_are_retained(self, engine: MagicMock) -> None:
        coordinator = JobCoordinator(engine, JobSettings(max_workers=1, retained_jobs=2))
        try:
            ids = [coordinator.submit_refresh() for _ in range(3)]
            coordinator.wait(ids[-1], timeout=5)

            assert [job.job_id for job in coordinator.list_jobs()] == ids[1:]
            with pytest.raises(NotFoundError):
                coordinator.get(ids[0])
        finally:
            coordinator.shutdown()

    def test_snapshots_are_independent(self, coordinator: JobCoordinator) -> None:
        job_id = coordinator.submit_refresh()
        job = coordinator.wait(job_id, timeout=5)

        job.errors.append("local edit")

        assert coordinator.get(job_id).errors == []

    def test_submit_after_shutdown(self, engine: MagicMock) -> None:
        coordinator = JobCoordinator(engine)
        coordinator.shutdown()

        with pytest.raises(RuntimeError):
            coordinator.submit_refresh()
