"""Application facade over the file registry and the job layer."""

from __future__ import annotations

import logging
from typing import Any

from .batch import BatchOperationEngine
from .classifier import ClassifierAdapter, ModelRepository, TrainingDataLog, TrainModelResult
from .config import AppConfig
from .contracts import (
    ConfigEntryRequest,
    ConfigUpdateRequest,
    ForceCategorizeRequest,
    MoveFilesRequest,
    RefreshFilesRequest,
    UpdateFileRequest,
    parse_request,
)
from .errors import NotFoundError
from .events import CategoryListChanged
from .filesystem import DirectoryLister, FileMover
from .jobs import JobCoordinator
from .logging_utils import render_fields_block
from .models import BatchJob, ConfigEntry, FileFilter, FileRecord
from .notifications import NotificationHub, build_channels
from .persistence import ConfigStore, FileRegistry

LOGGER = logging.getLogger(__name__)


class FileCategorizationService:
    """Everything the HTTP server and the CLI need, behind one object.

    Synchronous operations raise :class:`~filecat.errors.ValidationError` or
    :class:`~filecat.errors.NotFoundError`; batch operations return a job id
    straight away and report through the notification hub.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        registry: FileRegistry | None = None,
        config_store: ConfigStore | None = None,
        classifier: ClassifierAdapter | None = None,
        hub: NotificationHub | None = None,
        lister: DirectoryLister | None = None,
        mover: FileMover | None = None,
    ) -> None:
        settings = config.settings
        self.config = config
        self.settings = settings
        self.registry = registry or FileRegistry(settings.database_path)
        self.config_store = config_store or ConfigStore(settings.database_path, settings.environment)
        self.model_repository = ModelRepository(settings.classifier.model_dir)
        self.classifier = classifier or ClassifierAdapter(
            self.model_repository,
            smoothing=settings.classifier.smoothing,
            min_confidence=settings.classifier.min_confidence,
        )
        self.training_log = TrainingDataLog(settings.classifier.training_data)
        self.hub = hub or NotificationHub()
        self.engine = BatchOperationEngine(
            self.registry,
            self.classifier,
            settings,
            lister=lister,
            mover=mover,
            training_log=self.training_log,
            emit=self.hub.publish,
        )
        self.jobs = JobCoordinator(self.engine, settings.jobs, emit=self.hub.publish)
        for channel in build_channels(settings.notifications):
            self.hub.connect(channel)

    def start(self) -> None:
        """Load the most recent stored model, if any."""
        try:
            loaded = self.classifier.load_latest()
        except (OSError, ValueError) as exc:
            LOGGER.warning("Unable to load stored classification model: %s", exc)
            loaded = False
        LOGGER.info(
            render_fields_block(
                "Service Ready",
                {
                    "Environment": self.settings.environment,
                    "Origin": self.settings.origin_dir,
                    "Destination": self.settings.destination_dir,
                    "Database": self.settings.database_path,
                    "Model": self.classifier.current_version if loaded else "not trained",
                },
            )
        )

    def close(self) -> None:
        self.jobs.shutdown(wait=True)
        self.hub.close()
        self.registry.close()
        self.config_store.close()

    def __enter__(self) -> FileCategorizationService:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------ files

    def list_files(self, file_filter: FileFilter | int = FileFilter.ALL) -> list[FileRecord]:
        return self.registry.list_files(FileFilter(file_filter))

    def list_by_category(self, category: str) -> list[FileRecord]:
        return self.registry.list_by_category(category)

    def latest_per_category(self) -> list[FileRecord]:
        return self.registry.latest_per_category()

    def get_file(self, file_id: int) -> FileRecord:
        record = self.registry.get(file_id)
        if record is None:
            raise NotFoundError(f"File {file_id} not found")
        return record

    def update_category(self, file_id: int, request: UpdateFileRequest | dict[str, Any]) -> FileRecord:
        if not isinstance(request, UpdateFileRequest):
            request = parse_request(UpdateFileRequest, request)
        before = set(self.engine.known_categories())
        record = self.registry.set_category(file_id, request.category)
        if record.category not in before:
            self.hub.publish(CategoryListChanged(categories=tuple(self.engine.known_categories())))
        return record

    def mark_not_show_again(self, file_id: int) -> FileRecord:
        return self.registry.mark_excluded(file_id)

    def delete_file(self, file_id: int) -> bool:
        return self.registry.soft_delete(file_id)

    def categories(self) -> list[str]:
        return self.engine.known_categories()

    # ---------------------------------------------------------------- configs

    def list_configs(self) -> list[ConfigEntry]:
        return self.config_store.list_entries()

    def add_config(self, request: ConfigEntryRequest | dict[str, Any]) -> ConfigEntry:
        if not isinstance(request, ConfigEntryRequest):
            request = parse_request(ConfigEntryRequest, request)
        return self.config_store.add(request.key, request.value)

    def update_config(self, entry_id: int, request: ConfigUpdateRequest | dict[str, Any]) -> ConfigEntry:
        if not isinstance(request, ConfigUpdateRequest):
            request = parse_request(ConfigUpdateRequest, request)
        return self.config_store.update(entry_id, request.value)

    def delete_config(self, entry_id: int) -> bool:
        return self.config_store.delete(entry_id)

    # ---------------------------------------------------------------- actions

    def refresh_files(self, request: RefreshFilesRequest | dict[str, Any] | None = None) -> str:
        return self.jobs.submit_refresh(request)

    def force_categorize(self, request: ForceCategorizeRequest | dict[str, Any] | None = None) -> str:
        return self.jobs.submit_force_categorize(request)

    def move_files(self, request: MoveFilesRequest | dict[str, Any]) -> str:
        return self.jobs.submit_move(request)

    def training_samples(self) -> list[tuple[str, str]]:
        """Samples from the training log, or the categorized registry when the log is empty."""
        samples = self.training_log.read_samples()
        if samples:
            return samples
        return [
            (record.name, record.category)
            for record in self.registry.list_files(FileFilter.CATEGORIZED)
            if record.category
        ]

    def train_model(self) -> TrainModelResult:
        result = self.classifier.train_with_report(self.training_samples())
        if not result.success:
            LOGGER.warning("Model training failed: %s", result.message)
        return result

    def job_status(self, job_id: str) -> BatchJob:
        return self.jobs.get(job_id)

    def cancel_job(self, job_id: str) -> bool:
        return self.jobs.cancel(job_id)

    def list_jobs(self) -> list[BatchJob]:
        return self.jobs.list_jobs()


__all__ = ["FileCategorizationService"]
