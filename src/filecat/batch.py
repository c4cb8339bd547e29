"""Refresh, Force-Categorize and Move batch operations.

Each operation runs against a :class:`~filecat.models.BatchJob` owned by the
caller. Per-item problems are recorded on the job and never escape the item
boundary; anything raised out of these methods is a crash of the whole job.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from pathlib import Path

from rapidfuzz import fuzz, process

from .classifier import ClassifierAdapter, TrainingDataLog
from .config import Settings
from .contracts import ForceCategorizeRequest, MoveFileItem, MoveFilesRequest, RefreshFilesRequest
from .errors import ModelNotTrainedError, NotFoundError
from .events import CategoryListChanged, DomainEvent, EventSink, FileMoved, discard_event
from .filesystem import DirectoryLister, FileMover, MoveError
from .logging_utils import render_fields_block
from .models import BatchJob, FileFilter, FileRecord, MoveResult
from .persistence import FileRegistry

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchJob], None]

SUGGESTION_CUTOFF = 60.0


class RunOutcome(str, Enum):
    """How an operation left its loop."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


def closest_category(candidate: str, known: Iterable[str]) -> str | None:
    """Best fuzzy match for ``candidate`` among ``known``, if any is close enough."""
    choices = list(known)
    if not choices:
        return None
    match = process.extractOne(candidate, choices, scorer=fuzz.WRatio, score_cutoff=SUGGESTION_CUTOFF)
    return match[0] if match else None


def _notify(progress: ProgressCallback | None, job: BatchJob) -> None:
    if progress is not None:
        progress(job)


class BatchOperationEngine:
    def __init__(
        self,
        registry: FileRegistry,
        classifier: ClassifierAdapter,
        settings: Settings,
        *,
        lister: DirectoryLister | None = None,
        mover: FileMover | None = None,
        training_log: TrainingDataLog | None = None,
        emit: EventSink = discard_event,
    ) -> None:
        self._registry = registry
        self._classifier = classifier
        self._settings = settings
        self._lister = lister or DirectoryLister(
            settings.origin_dir,
            extensions=settings.scan.extensions,
            include_hidden=settings.scan.include_hidden,
        )
        self._mover = mover or FileMover()
        self._training_log = training_log or TrainingDataLog(settings.classifier.training_data)
        self._emit = emit

    def known_categories(self) -> list[str]:
        return sorted(set(self._registry.categories()) | set(self._settings.categories))

    def _publish(self, event: DomainEvent) -> None:
        try:
            self._emit(event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Event sink failed for %s", type(event).__name__)

    # ------------------------------------------------------------------ refresh

    def refresh(
        self,
        job: BatchJob,
        request: RefreshFilesRequest,
        progress: ProgressCallback | None = None,
    ) -> RunOutcome:
        """Scan the origin directory, register new files, then classify."""
        categories_before = self._registry.categories()
        scan = self._lister.scan(request.file_extension_filters or None)

        job.add_total(len(scan.failures))
        for failure in scan.failures:
            job.record_failure(f"Unable to read {failure.path}: {failure.reason}")

        added = 0
        for discovered in scan.files:
            if job.cancel_requested:
                return RunOutcome.CANCELLED
            path = str(discovered.path)
            existed = self._registry.get_by_path(path) is not None
            self._registry.upsert(path, discovered.size, discovered.modified_at)
            if not existed:
                added += 1
                LOGGER.debug("Registered new file %s", path)

        job.set_metadata("discovered", len(scan.files))
        job.set_metadata("added", added)
        _notify(progress, job)

        outcome = self._classify_candidates(job, request.force_recategorization, request.batch_size, progress)
        self._announce_categories(categories_before)
        LOGGER.info(
            render_fields_block(
                "Refresh Finished",
                {
                    "Origin": self._settings.origin_dir,
                    "Discovered": len(scan.files),
                    "Added": added,
                    "Classified": job.processed,
                    "Failed": job.failed,
                },
            )
        )
        return outcome

    def force_categorize(
        self,
        job: BatchJob,
        request: ForceCategorizeRequest,
        progress: ProgressCallback | None = None,
    ) -> RunOutcome:
        categories_before = self._registry.categories()
        outcome = self._classify_candidates(job, request.force_recategorization, request.batch_size, progress)
        self._announce_categories(categories_before)
        return outcome

    def _candidates(self, include_categorized: bool) -> list[FileRecord]:
        if include_categorized:
            return self._registry.list_files(FileFilter.ALL)
        return self._registry.list_files(FileFilter.TO_CATEGORIZE)

    def _classify_candidates(
        self,
        job: BatchJob,
        include_categorized: bool,
        batch_size: int,
        progress: ProgressCallback | None,
    ) -> RunOutcome:
        candidates = self._candidates(include_categorized)
        job.add_total(len(candidates))
        batch_size = max(1, batch_size)
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start : start + batch_size]
            if job.cancel_requested:
                return RunOutcome.CANCELLED
            if self._classify_batch(job, batch) is RunOutcome.CANCELLED:
                return RunOutcome.CANCELLED
            _notify(progress, job)
        return RunOutcome.COMPLETED

    def _classify_batch(self, job: BatchJob, batch: Sequence[FileRecord]) -> RunOutcome:
        try:
            predictions = self._classifier.classify_many([record.name for record in batch])
        except ModelNotTrainedError as exc:
            for record in batch:
                job.record_failure(f"{record.name}: {exc}")
            return RunOutcome.COMPLETED

        threshold = self._classifier.min_confidence
        for record, prediction in zip(batch, predictions):
            if job.cancel_requested:
                return RunOutcome.CANCELLED
            if prediction.confidence < threshold:
                job.record_failure(
                    f"{record.name}: confidence {prediction.confidence:.2f} for '{prediction.category}' "
                    f"is below {threshold:.2f}"
                )
                continue
            try:
                self._registry.set_category(record.id, prediction.category)
            except NotFoundError as exc:
                job.record_failure(f"{record.name}: {exc}")
                continue
            job.record_success()
        return RunOutcome.COMPLETED

    def _announce_categories(self, before: Sequence[str]) -> None:
        after = self._registry.categories()
        if list(after) != list(before):
            self._publish(CategoryListChanged(categories=tuple(self.known_categories())))

    # --------------------------------------------------------------------- move

    def move(
        self,
        job: BatchJob,
        request: MoveFilesRequest,
        progress: ProgressCallback | None = None,
    ) -> RunOutcome:
        """Move each requested file into ``destination_dir/<category>/``.

        With ``continue_on_error`` disabled the first failure aborts the job and
        the remaining items are counted as skipped.
        """
        items = request.files_to_move
        job.add_total(len(items))
        known = set(self.known_categories()) if request.validate_categories else None

        for index, item in enumerate(items):
            if job.cancel_requested:
                job.record_skipped(len(items) - index)
                return RunOutcome.CANCELLED
            error = self._move_one(item, request.create_directories, known)
            if error is None:
                job.record_success()
            else:
                job.record_failure(error)
                if not request.continue_on_error:
                    job.record_skipped(len(items) - index - 1)
                    LOGGER.warning("Move job %s aborted after failure: %s", job.job_id, error)
                    _notify(progress, job)
                    return RunOutcome.ABORTED
            _notify(progress, job)
        return RunOutcome.COMPLETED

    def _fail_move(self, file_id: int, message: str, result: MoveResult = MoveResult.FAILED) -> str:
        LOGGER.warning("Move of file %s failed: %s", file_id, message)
        self._publish(FileMoved(file_id=file_id, result_text=message, result=result))
        return message

    def _move_one(self, item: MoveFileItem, create_directories: bool, known: set[str] | None) -> str | None:
        record = self._registry.get(item.id)
        if record is None:
            return self._fail_move(item.id, f"File {item.id} not found", MoveResult.ID_NOT_PRESENT)

        if known is not None and item.category not in known:
            message = f"Unknown category '{item.category}' for {record.name}"
            suggestion = closest_category(item.category, known)
            if suggestion:
                message += f" (did you mean '{suggestion}'?)"
            return self._fail_move(record.id, message)

        destination = self._settings.destination_dir / item.category / record.name
        occupant = self._registry.get_by_path(str(destination))
        if occupant is not None and occupant.id != record.id:
            return self._fail_move(
                record.id, f"{record.name}: destination {destination} is already tracked as file {occupant.id}"
            )

        source = Path(record.path)
        try:
            self._mover.move(source, destination, create_directories=create_directories)
        except MoveError as exc:
            return self._fail_move(record.id, f"{record.name}: {exc}")

        try:
            self._registry.record_moved(record.id, str(destination), item.category)
        except (NotFoundError, sqlite3.Error) as exc:
            self._undo_move(destination, source)
            return self._fail_move(
                record.id, f"{record.name}: move could not be recorded, file returned to {source}: {exc}"
            )

        try:
            self._training_log.append(record.id, item.category, record.name)
        except OSError as exc:
            LOGGER.warning("Unable to append training sample for %s: %s", record.name, exc)
        self._publish(
            FileMoved(
                file_id=record.id,
                result_text=f"{record.name} moved to {item.category}",
                result=MoveResult.COMPLETED,
            )
        )
        return None

    def _undo_move(self, destination: Path, source: Path) -> None:
        try:
            self._mover.move(destination, source, create_directories=True)
        except MoveError as exc:
            LOGGER.error("Unable to return %s to %s: %s", destination, source, exc)


__all__ = ["BatchOperationEngine", "ProgressCallback", "RunOutcome", "closest_category"]
