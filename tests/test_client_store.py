"""Tests for the client reducers, the queued store and the API effects."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from filecat.client import actions as a
from filecat.client import build_store
from filecat.client.cache import (
    CATEGORY_LIST_KEY,
    CacheInvalidationStrategy,
    FILES_TAG,
    CachePolicy,
    ClientCache,
    files_list_key,
)
from filecat.client.effects import FileEffects
from filecat.client.reducers import ReducerRegistry, reduce
from filecat.client.state import FileState, files_to_move, filtered_files, find_job, has_pending_operations
from filecat.client.store import Store
from filecat.config import ClientSettings
from filecat.contracts import BatchJobDTO, ConfigEntryDTO, FileRecordDTO, TrainModelResponse
from filecat.errors import TransportError
from filecat.models import JobKind, JobStatus, MoveResult

STAMP = datetime(2024, 6, 1, 8, 30, 0)


def _file(file_id: int, *, category: str | None = None, needs: bool = True, new: bool = True) -> FileRecordDTO:
    return FileRecordDTO(
        id=file_id,
        name=f"file{file_id}.mkv",
        path=f"/in/file{file_id}.mkv",
        size=1,
        modified_at=datetime(2024, 1, 1),
        category=category,
        needs_categorization=needs,
        is_new=new,
    )


def _job(job_id: str, status: JobStatus = JobStatus.RUNNING) -> BatchJobDTO:
    return BatchJobDTO(job_id=job_id, kind=JobKind.MOVE, status=status)


class TestReducers:
    def test_console_lines_are_timestamped(self) -> None:
        state = reduce(FileState(), a.AddConsoleMessage(message="hello", timestamp=STAMP))

        assert state.console_messages == ("2024-06-01 08:30:00 - hello",)

    def test_errors_are_logged_to_console(self) -> None:
        state = reduce(FileState(is_training=True), a.TrainModelFailure(error="no samples", timestamp=STAMP))

        assert state.is_training is False
        assert state.error == "no samples"
        assert state.console_messages == ("2024-06-01 08:30:00 - ERROR: no samples",)

    def test_set_error_resets_progress_flags(self) -> None:
        state = FileState(is_loading=True, is_refreshing=True, is_training=True)

        state = reduce(state, a.SetError(error="boom"))

        assert has_pending_operations(state) is False
        assert state.error == "boom"

    def test_load_files_success_prunes_schedule(self) -> None:
        state = FileState(scheduled_ids=frozenset({1, 2}), is_loading=True)

        state = reduce(state, a.LoadFilesSuccess(files=(_file(1),)))

        assert state.scheduled_ids == frozenset({1})
        assert state.is_loading is False

    def test_update_file_detail_success_adds_category(self) -> None:
        state = FileState(files=(_file(1), _file(2)), categories=("Music", "video"))

        state = reduce(state, a.UpdateFileDetailSuccess(file=_file(1, category="Archive", needs=False)))

        assert state.files[0].category == "Archive"
        assert state.categories == ("Archive", "Music", "video")

    def test_add_new_category_ignores_blank_and_duplicates(self) -> None:
        state = FileState(categories=("Music",))

        assert reduce(state, a.AddNewCategory(category="  ")) is state
        assert reduce(state, a.AddNewCategory(category="Music")) is state
        assert reduce(state, a.AddNewCategory(category="art")).categories == ("art", "Music")

    def test_schedule_and_move_selectors(self) -> None:
        state = FileState(files=(_file(1, category="Video", needs=False), _file(2), _file(3, category="Music", needs=False)))
        for file_id in (1, 2, 3):
            state = reduce(state, a.ScheduleFile(file_id=file_id))
        state = reduce(state, a.RevertFile(file_id=3))

        assert [item.id for item in files_to_move(state)] == [1]

    def test_not_show_again_updates_local_copy(self) -> None:
        state = FileState(files=(_file(1, category="Video", needs=False),), scheduled_ids=frozenset({1}))

        state = reduce(state, a.NotShowAgainFile(file_id=1))

        assert state.files[0].exclude_from_move is True
        assert state.files[0].is_new is False
        assert state.scheduled_ids == frozenset()
        assert files_to_move(state) == ()

    def test_not_show_again_leaves_categorization_alone(self) -> None:
        state = FileState(files=(_file(1),))

        state = reduce(state, a.NotShowAgainFile(file_id=1))

        assert state.files[0].exclude_from_move is True
        assert state.files[0].needs_categorization is True
        assert state.files[0].category is None

    def test_not_show_again_failure_restores_previous_record(self) -> None:
        original = _file(1, category="Video", needs=False)
        state = FileState(files=(original, _file(2)), scheduled_ids=frozenset({1}))

        state = reduce(state, a.NotShowAgainFile(file_id=1))
        state = reduce(state, a.NotShowAgainFileFailure(error="File 1 not found", file_id=1, timestamp=STAMP))

        assert state.files[0] == original
        assert state.scheduled_ids == frozenset({1})
        assert state.pending_exclusions == ()
        assert state.console_messages == ("2024-06-01 08:30:00 - ERROR: File 1 not found",)

    def test_not_show_again_success_drops_saved_copy(self) -> None:
        state = reduce(FileState(files=(_file(1),)), a.NotShowAgainFile(file_id=1))
        confirmed = _file(1, new=False).model_copy(update={"exclude_from_move": True})

        state = reduce(state, a.NotShowAgainFileSuccess(file=confirmed))

        assert state.files == (confirmed,)
        assert state.pending_exclusions == ()

    def test_filtered_files(self) -> None:
        files = (_file(1), _file(2, category="Video", needs=False, new=False))

        assert [f.id for f in filtered_files(FileState(files=files, search_parameter=1))] == [1, 2]
        assert [f.id for f in filtered_files(FileState(files=files, search_parameter=2))] == [2]
        assert [f.id for f in filtered_files(FileState(files=files, search_parameter=3))] == [1]
        assert [f.id for f in filtered_files(FileState(files=files, search_parameter=4))] == [1]

    def test_completed_move_push_removes_file(self) -> None:
        state = FileState(files=(_file(1), _file(2)), scheduled_ids=frozenset({1}))

        state = reduce(state, a.PushFileMoved(file_id=1, result_text="file1.mkv moved to Video", result=MoveResult.COMPLETED))
        state = reduce(state, a.PushFileMoved(file_id=2, result_text="file2.mkv: refused", result=MoveResult.FAILED))

        assert [item.id for item in state.files] == [2]
        assert state.scheduled_ids == frozenset()
        assert [line.split(" - ", 1)[1] for line in state.console_messages] == [
            "file1.mkv moved to Video",
            "file2.mkv: refused",
        ]

    def test_job_pushes_upsert_jobs(self) -> None:
        state = reduce(FileState(), a.PushJobUpdated(job=_job("j1")))
        state = reduce(state, a.PushJobCompleted(result_text="done", result=MoveResult.COMPLETED, job=_job("j1", JobStatus.SUCCEEDED)))

        assert len(state.jobs) == 1
        assert find_job(state, "j1").status is JobStatus.SUCCEEDED
        assert find_job(state, "j2") is None

    def test_connection_lifecycle(self) -> None:
        state = reduce(FileState(), a.PushConnected(connection_id="abc"))
        assert state.is_connected is True

        state = reduce(state, a.PushDisconnected(reason="stream closed"))

        assert state.is_connected is False
        assert state.console_messages[-1].endswith("Disconnected from notifications: stream closed")

    def test_unknown_action_leaves_state(self) -> None:
        state = FileState()

        assert ReducerRegistry().reduce(state, a.ClearConsole()) is state


class TestStore:
    def test_effect_dispatches_are_queued_in_order(self) -> None:
        store = Store()
        seen: list[str] = []

        def effect(action, store):
            store.dispatch(a.AddConsoleMessage(message="from effect"))
            seen.append("effect returned")

        store.register_effect(a.ClearConsole, effect)
        store.subscribe(lambda state, action: seen.append(type(action).__name__))

        store.dispatch(a.ClearConsole())

        assert seen == ["ClearConsole", "effect returned", "AddConsoleMessage"]
        assert len(store.state.console_messages) == 1
        assert store.select(lambda state: len(state.console_messages)) == 1

    def test_failing_subscriber_and_effect_do_not_break_dispatch(self, caplog) -> None:
        store = Store()
        store.subscribe(lambda state, action: 1 / 0)
        store.register_effect(a.SetLoading, MagicMock(side_effect=RuntimeError("effect failed")))

        store.dispatch(a.SetLoading(is_loading=True))
        store.dispatch(a.SetLoading(is_loading=False))

        assert store.state.is_loading is False
        assert "Effect failed for SetLoading" in caplog.text

    def test_unsubscribe(self) -> None:
        store = Store()
        calls: list[object] = []
        unsubscribe = store.subscribe(lambda state, action: calls.append(action))

        store.dispatch(a.ClearConsole())
        unsubscribe()
        store.dispatch(a.ClearConsole())

        assert len(calls) == 1

    def test_set_category_success_invalidates_cached_reads(self) -> None:
        cache = ClientCache()
        cache.set(files_list_key(3), (_file(1),), CachePolicy.FILE_LIST)
        cache.set(CATEGORY_LIST_KEY, ("Video",), CachePolicy.CATEGORIES)
        cache.set("configs:list", (), CachePolicy.CONFIGURATIONS)
        store = Store(cache=cache)

        store.dispatch(a.UpdateFileDetailSuccess(file=_file(1, category="Video", needs=False)))

        assert cache.keys() == ["configs:list"]

    def test_executor_runs_effects_off_thread(self) -> None:
        executor = MagicMock()
        store = Store(effect_executor=executor)
        effect = MagicMock()
        store.register_effect(a.ClearConsole, effect)

        store.dispatch(a.ClearConsole())

        effect.assert_not_called()
        executor.submit.assert_called_once()


@pytest.fixture
def api() -> MagicMock:
    api = MagicMock()
    api.get_files.return_value = [_file(1), _file(2)]
    api.get_categories.return_value = ["Music", "Video"]
    api.get_configs.return_value = [ConfigEntryDTO(id=1, key="origin", value="/in")]
    api.refresh_files.return_value = "job-refresh"
    api.force_categorize.return_value = "job-force"
    api.move_files.return_value = "job-move"
    return api


@pytest.fixture
def cache() -> ClientCache:
    return ClientCache()


@pytest.fixture
def store(api: MagicMock, cache: ClientCache) -> Store:
    store = Store(cache=cache)
    FileEffects(api, cache).register(store)
    return store


def _messages(store: Store) -> list[str]:
    return [line.split(" - ", 1)[1] for line in store.state.console_messages]


class TestEffects:
    def test_load_files_fetches_then_serves_from_cache(self, store: Store, api: MagicMock, cache: ClientCache) -> None:
        store.dispatch(a.LoadFiles(search_parameter=3))
        store.dispatch(a.LoadFiles(search_parameter=3))

        api.get_files.assert_called_once_with(3)
        assert [item.id for item in store.state.files] == [1, 2]
        assert store.state.is_loading is False
        assert _messages(store) == ["File list updated", "File list loaded from cache"]
        stats = cache.statistics()
        assert (stats.hit_count, stats.miss_count) == (1, 1)
        assert store.state.last_cache_update is not None

    def test_load_files_failure(self, store: Store, api: MagicMock) -> None:
        api.get_files.side_effect = TransportError("GET /files failed after 4 attempt(s): timeout")

        store.dispatch(a.LoadFiles(search_parameter=1))

        assert store.state.is_loading is False
        assert "timeout" in store.state.error
        assert files_list_key(1) not in store.cache

    def test_rejected_not_show_again_is_rolled_back(self, store: Store, api: MagicMock) -> None:
        original = _file(1, category="Video", needs=False)
        store.dispatch(a.LoadFilesSuccess(files=(original,)))
        store.dispatch(a.ScheduleFile(file_id=1))
        api.not_show_again.side_effect = TransportError("PATCH /files/1/not-show-again failed after 1 attempt(s): timeout")

        store.dispatch(a.NotShowAgainFile(file_id=1))

        assert store.state.files == (original,)
        assert store.state.scheduled_ids == frozenset({1})
        assert "timeout" in store.state.error

    def test_list_invalidated_during_fetch_is_not_cached(self, store: Store, api: MagicMock, cache: ClientCache) -> None:
        fresh = [_file(1, category="Video", needs=False)]

        def fetch_while_category_changes(search_parameter: int) -> list[FileRecordDTO]:
            store.cache.invalidate_by_tags(FILES_TAG)
            return [_file(1)]

        api.get_files.side_effect = fetch_while_category_changes
        store.dispatch(a.LoadFiles(search_parameter=3))

        assert files_list_key(3) not in cache
        assert [item.id for item in store.state.files] == [1]

        api.get_files.side_effect = None
        api.get_files.return_value = fresh
        store.dispatch(a.LoadFiles(search_parameter=3))

        assert api.get_files.call_count == 2
        assert store.state.files[0].category == "Video"
        assert cache.get(files_list_key(3)) == tuple(fresh)

    def test_update_file_detail_reloads_fresh_list(self, store: Store, api: MagicMock) -> None:
        store.dispatch(a.LoadFiles(search_parameter=3))
        api.update_file.return_value = _file(1, category="Video", needs=False)

        store.dispatch(a.UpdateFileDetail(file_id=1, category="Video"))
        store.dispatch(a.LoadFiles(search_parameter=3))

        assert api.get_files.call_count == 2
        assert store.state.files[0].category is None
        assert "Category of file1.mkv set to Video" in _messages(store)

    def test_move_files_schedules_job_and_reloads(self, store: Store, api: MagicMock) -> None:
        files = (_file(1, category="Video", needs=False),)
        store.dispatch(a.LoadFilesSuccess(files=files))
        store.dispatch(a.ScheduleFile(file_id=1))

        store.dispatch(a.MoveFiles(files=files_to_move(store.state), continue_on_error=False))

        items = api.move_files.call_args.args[0]
        assert [(item.id, item.category) for item in items] == [(1, "Video")]
        assert api.move_files.call_args.kwargs == {"continue_on_error": False}
        assert store.state.scheduled_ids == frozenset()
        assert "Scheduled move job job-move" in _messages(store)
        api.get_files.assert_called_once_with(3)

    def test_move_without_category_fails_locally(self, store: Store, api: MagicMock) -> None:
        store.dispatch(a.MoveFiles(files=(_file(5),)))

        api.move_files.assert_not_called()
        assert store.state.error is not None

    def test_refresh_schedules_job_and_reloads_categories(self, store: Store, api: MagicMock, cache: ClientCache) -> None:
        cache.set(CATEGORY_LIST_KEY, ("Stale",), CachePolicy.CATEGORIES)

        store.dispatch(a.RefreshData())

        assert store.state.is_refreshing is False
        assert store.state.categories == ("Music", "Video")
        assert "Scheduled refresh job job-refresh" in _messages(store)

    def test_force_category(self, store: Store, api: MagicMock) -> None:
        store.dispatch(a.ForceCategory(force_recategorization=True))

        request = api.force_categorize.call_args.args[0]
        assert request.force_recategorization is True
        assert "Scheduled categorization job job-force" in _messages(store)
        api.get_files.assert_called_once_with(3)

    def test_train_model_reports_server_failure(self, store: Store, api: MagicMock) -> None:
        api.train_model.return_value = TrainModelResponse(success=False, message="No training samples available")

        store.dispatch(a.TrainModel())

        assert store.state.is_training is False
        assert store.state.error == "No training samples available"

    def test_job_completed_push_reloads_current_view(self, store: Store, api: MagicMock) -> None:
        store.dispatch(a.SetSearchParameter(search_parameter=2))

        store.dispatch(a.PushJobCompleted(result_text="Move job succeeded", result=MoveResult.COMPLETED))

        api.get_files.assert_called_once_with(2)

    def test_update_configuration(self, store: Store, api: MagicMock) -> None:
        store.dispatch(a.LoadConfigurations())
        api.update_config.return_value = ConfigEntryDTO(id=1, key="origin", value="/new")

        store.dispatch(a.UpdateConfiguration(entry_id=1, value="/new"))
        store.dispatch(a.LoadConfigurations())

        assert api.get_configs.call_count == 2
        assert _messages(store)[-1] == "Configuration origin updated"

    def test_cache_management(self, store: Store, cache: ClientCache) -> None:
        store.dispatch(a.CacheWarmup())

        assert store.state.is_cache_warming is False
        assert set(cache.keys()) == {CATEGORY_LIST_KEY, "configs:list", files_list_key(3)}
        assert store.state.cache_statistics.total_items == 3
        assert store.state.categories == ("Music", "Video")
        assert _messages(store)[-1] == "File list loaded from cache"

        store.dispatch(a.CacheInvalidate(strategy=CacheInvalidationStrategy.FILE_DATA))
        assert files_list_key(3) not in cache
        assert _messages(store)[-1] == "Cache invalidated (file data)"

        store.dispatch(a.CacheClear())
        assert len(cache) == 0
        assert store.state.cache_statistics.total_items == 0


def test_build_store_registers_effects() -> None:
    api = MagicMock()
    api.get_categories.return_value = ["Video"]

    store = build_store(ClientSettings(cache_capacity=10), api=api)
    store.dispatch(a.LoadCategories())

    assert store.state.categories == ("Video",)
    assert store.cache is not None
