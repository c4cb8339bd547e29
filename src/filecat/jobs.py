"""Background execution of batch operations on a worker pool."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any

from .batch import BatchOperationEngine, ProgressCallback, RunOutcome
from .config import JobSettings
from .contracts import ForceCategorizeRequest, MoveFilesRequest, RefreshFilesRequest, parse_request
from .errors import NotFoundError, ValidationError
from .events import EventSink, JobUpdated, discard_event
from .logging_utils import render_fields_block
from .models import BatchJob, JobKind, JobStatus

LOGGER = logging.getLogger(__name__)

CANCELLED_NOTE = "Cancelled by user"
ABORTED_NOTE = "Aborted after first failure"
SHUTDOWN_NOTE = "Cancelled by shutdown"

Runner = Callable[[BatchJob, ProgressCallback], RunOutcome]


def resolve_status(job: BatchJob, outcome: RunOutcome) -> tuple[JobStatus, str | None]:
    """Terminal status for a job whose runner returned ``outcome``."""
    if outcome is RunOutcome.CANCELLED:
        return JobStatus.FAILED, CANCELLED_NOTE
    if outcome is RunOutcome.ABORTED:
        return JobStatus.FAILED, ABORTED_NOTE
    if job.failed == 0:
        return JobStatus.SUCCEEDED, None
    if job.processed == 0:
        return JobStatus.FAILED, None
    return JobStatus.PARTIALLY_FAILED, None


class JobCoordinator:
    """Accepts batch requests and runs them on a thread pool while tracking progress.

    Every status transition and every progress callback is published as a
    :class:`~filecat.events.JobUpdated` carrying a snapshot of the job. Only
    the most recent ``retained_jobs`` terminal jobs are kept in memory.
    """

    def __init__(
        self,
        engine: BatchOperationEngine,
        settings: JobSettings | None = None,
        *,
        emit: EventSink = discard_event,
    ) -> None:
        self._engine = engine
        self._settings = settings or JobSettings()
        self._emit = emit
        self._executor = ThreadPoolExecutor(
            max_workers=self._settings.max_workers,
            thread_name_prefix="filecat-job",
        )
        self._lock = threading.Lock()
        self._jobs: OrderedDict[str, BatchJob] = OrderedDict()
        self._futures: dict[str, Future[None]] = {}
        self._finished: deque[str] = deque()
        self._closed = False

    # ---------------------------------------------------------------- submit

    def submit_refresh(self, request: RefreshFilesRequest | dict[str, Any] | None = None) -> str:
        if not isinstance(request, RefreshFilesRequest):
            request = parse_request(RefreshFilesRequest, request)
        return self._submit(JobKind.REFRESH, lambda job, progress: self._engine.refresh(job, request, progress))

    def submit_force_categorize(self, request: ForceCategorizeRequest | dict[str, Any] | None = None) -> str:
        if not isinstance(request, ForceCategorizeRequest):
            request = parse_request(ForceCategorizeRequest, request)
        return self._submit(
            JobKind.FORCE_CATEGORIZE,
            lambda job, progress: self._engine.force_categorize(job, request, progress),
        )

    def submit_move(self, request: MoveFilesRequest | dict[str, Any]) -> str:
        if not isinstance(request, MoveFilesRequest):
            request = parse_request(MoveFilesRequest, request)
        limit = self._settings.max_move_batch
        if len(request.files_to_move) > limit:
            raise ValidationError(f"filesToMove: at most {limit} files can be moved per request")
        return self._submit(JobKind.MOVE, lambda job, progress: self._engine.move(job, request, progress))

    def _submit(self, kind: JobKind, runner: Runner) -> str:
        job = BatchJob(kind=kind)
        with self._lock:
            if self._closed:
                raise RuntimeError("Job coordinator has been shut down")
            self._jobs[job.job_id] = job
        self._publish(job)
        with self._lock:
            self._futures[job.job_id] = self._executor.submit(self._run, job, runner)
        LOGGER.debug("Queued %s job %s", kind.value, job.job_id)
        return job.job_id

    # ---------------------------------------------------------------- worker

    def _run(self, job: BatchJob, runner: Runner) -> None:
        job.mark_running()
        self._publish(job)
        if job.cancel_requested:
            self._finish(job, JobStatus.FAILED, CANCELLED_NOTE)
            return

        LOGGER.info("Started %s job %s", job.kind.value, job.job_id)
        try:
            outcome = runner(job, self._publish)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Job %s crashed", job.job_id)
            self._finish(job, JobStatus.FAILED, f"Crashed: {exc}")
            return
        status, note = resolve_status(job, outcome)
        self._finish(job, status, note)

    def _finish(self, job: BatchJob, status: JobStatus, note: str | None) -> None:
        job.mark_finished(status, note)
        LOGGER.info(
            render_fields_block(
                "Job Finished",
                {
                    "Job": job.job_id,
                    "Kind": job.kind.value,
                    "Status": job.status.value,
                    "Processed": job.processed,
                    "Failed": job.failed,
                    "Skipped": job.skipped,
                    "Note": job.note,
                },
            )
        )
        with self._lock:
            self._finished.append(job.job_id)
            self._evict_locked()
        self._publish(job)

    def _evict_locked(self) -> None:
        while len(self._finished) > self._settings.retained_jobs:
            evicted = self._finished.popleft()
            self._jobs.pop(evicted, None)
            self._futures.pop(evicted, None)
            LOGGER.debug("Evicted finished job %s", evicted)

    def _publish(self, job: BatchJob) -> None:
        try:
            self._emit(JobUpdated(job=job.snapshot()))
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to publish update for job %s", job.job_id)

    # ---------------------------------------------------------------- queries

    def get(self, job_id: str) -> BatchJob:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job.snapshot()

    def list_jobs(self) -> list[BatchJob]:
        with self._lock:
            jobs = list(self._jobs.values())
        return [job.snapshot() for job in jobs]

    def cancel(self, job_id: str) -> bool:
        """Request cancellation; False when the job already finished.

        Raises:
            NotFoundError: If the job is unknown or was evicted
        """
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        accepted = job.request_cancel()
        if accepted:
            LOGGER.info("Cancellation requested for job %s", job_id)
        return accepted

    def wait(self, job_id: str, timeout: float | None = None) -> BatchJob:
        """Block until the job is terminal (or ``timeout`` elapses) and return a snapshot."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            wait_futures([future], timeout=timeout)
        return self.get(job_id)

    # --------------------------------------------------------------- lifecycle

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = [(self._jobs[job_id], future) for job_id, future in self._futures.items() if job_id in self._jobs]
        for job, future in pending:
            if future.cancel():
                self._finish(job, JobStatus.FAILED, SHUTDOWN_NOTE)
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> JobCoordinator:
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()


__all__ = ["JobCoordinator", "resolve_status"]
