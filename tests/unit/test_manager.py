"""Tests for PipelineManager."""

import threading
import time
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from frameops.models.errors import FrameOpsError, ResourceError, StageErrorKind
from frameops.models.pipeline import RunStage, RunStatus
from frameops.pipeline.manager import PipelineManager
from frameops.pipeline.orchestrator import PipelineOrchestrator
from frameops.storage.document_store import JsonDocumentStore
from tests.conftest import FakeExtractor, FakeSynthesizer, FakeTranscriber, stage_error


def orchestrator(test_settings, extractor=None) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        frame_extractor=extractor or FakeExtractor(6),
        transcriber=FakeTranscriber(),
        synthesizer=FakeSynthesizer(),
        settings=test_settings,
    )


@pytest.fixture
def store(test_settings):
    return JsonDocumentStore(test_settings.document_store_dir)


@pytest.fixture
def manager(test_settings, store):
    return PipelineManager(
        orchestrator=orchestrator(test_settings), sink=store, settings=test_settings
    )


class TestRunRegistry:
    def test_create_run(self, manager):
        run = manager.create_run()
        assert run.current_stage == RunStage.INITIALIZED
        assert run.percentage == 0
        assert manager.get_run(run.id).id == run.id

    def test_runs_are_independent(self, manager):
        a = manager.create_run()
        b = manager.create_run()
        assert a.id != b.id

    def test_get_run_returns_snapshot(self, manager):
        run = manager.create_run()
        snapshot = manager.get_run(run.id)
        snapshot.push_log("mutated")
        assert manager.get_run(run.id).log == []

    def test_unknown_run(self, manager):
        assert manager.get_run("nope") is None
        assert manager.cancel_run("nope") is False
        assert manager.delete_run("nope") is False

    def test_process_unknown_run(self, manager, upload_source):
        with pytest.raises(FrameOpsError):
            manager.process("nope", upload_source)


class TestProcess:
    def test_completed_run_persisted(self, manager, store, upload_source):
        final = manager.start(upload_source, background=False)
        assert final.status == RunStatus.COMPLETED
        assert store.list_runs() == [final.id]
        assert len(store.load(final.id).document.steps) == 6

    def test_failed_run_not_persisted(self, test_settings, store, upload_source):
        failing = orchestrator(
            test_settings, FakeExtractor(error=stage_error(StageErrorKind.BAD_RESPONSE))
        )
        manager = PipelineManager(orchestrator=failing, sink=store, settings=test_settings)
        final = manager.start(upload_source, background=False)
        assert final.status == RunStatus.FAILED
        assert final.failed_stage == RunStage.EXTRACTING_FRAMES
        assert store.list_runs() == []

    def test_subscribers_receive_snapshots(self, manager, upload_source):
        run = manager.create_run()
        seen = []
        manager.subscribe(run.id, seen.append)
        manager.process(run.id, upload_source)
        assert seen[-1].status == RunStatus.COMPLETED
        assert [s.percentage for s in seen] == sorted(s.percentage for s in seen)

    def test_cancelled_run_fails(self, manager, upload_source):
        run = manager.create_run()
        assert manager.cancel_run(run.id) is True
        final = manager.process(run.id, upload_source)
        assert final.status == RunStatus.FAILED
        assert final.error == "cancelled"

    def test_background_start(self, manager, upload_source):
        run = manager.start(upload_source)
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            snapshot = manager.get_run(run.id)
            if snapshot.is_terminal:
                break
            time.sleep(0.01)
        assert manager.get_run(run.id).status == RunStatus.COMPLETED

    def test_delete_run_removes_document(self, manager, store, upload_source):
        final = manager.start(upload_source, background=False)
        assert manager.delete_run(final.id) is True
        assert manager.get_run(final.id) is None
        assert store.list_runs() == []


class TestRetention:
    def test_persisted_result_released_from_memory(self, manager, store, upload_source):
        final = manager.start(upload_source, background=False)
        assert final.result is not None
        held = manager.get_run(final.id)
        assert held.status == RunStatus.COMPLETED
        assert held.result is None
        assert store.load(final.id).document.title == final.result.document.title

    def test_result_kept_when_persistence_fails(self, test_settings, upload_source):
        sink = MagicMock()
        sink.save.side_effect = OSError("disk full")
        manager = PipelineManager(
            orchestrator=orchestrator(test_settings), sink=sink, settings=test_settings
        )
        final = manager.start(upload_source, background=False)
        assert manager.get_run(final.id).result is not None

    def test_expired_runs_forgotten(self, manager, store, upload_source):
        runs = [manager.start(upload_source, background=False) for _ in range(3)]
        active = manager.create_run()
        for run in runs:
            manager._runs[run.id].completed_at = datetime.now(UTC) - timedelta(hours=2)

        assert manager.cleanup_expired() == 3
        assert all(manager.get_run(run.id) is None for run in runs)
        assert manager.get_run(active.id) is not None
        assert sorted(store.list_runs()) == sorted(run.id for run in runs)

    def test_recent_terminal_runs_kept(self, manager, upload_source):
        final = manager.start(upload_source, background=False)
        assert manager.cleanup_expired() == 0
        assert manager.get_run(final.id).status == RunStatus.COMPLETED

    def test_cancel_flag_cleared_when_run_ends(self, manager, upload_source):
        run = manager.create_run()
        manager.cancel_run(run.id)
        manager.process(run.id, upload_source)
        assert manager.is_cancelled(run.id) is False

    def test_idle_recordings_expire(self, manager):
        idle = manager.start_recording()
        idle.last_activity_at = datetime.now(UTC) - timedelta(hours=1)
        fresh = manager.start_recording()

        assert manager.get_recording(idle.id) is None
        assert manager.get_recording(fresh.id) is fresh


class TestHealthShortCircuit:
    def test_unreachable_services_raise(self, test_settings, store, upload_source):
        probe = MagicMock()
        probe.check.return_value = False
        manager = PipelineManager(
            orchestrator=orchestrator(test_settings),
            sink=store,
            health_probe=probe,
            settings=test_settings,
        )
        with pytest.raises(ResourceError):
            manager.start(upload_source, background=False)

    def test_reachable_services_run(self, test_settings, store, upload_source):
        probe = MagicMock()
        probe.check.return_value = True
        manager = PipelineManager(
            orchestrator=orchestrator(test_settings),
            sink=store,
            health_probe=probe,
            settings=test_settings,
        )
        assert manager.start(upload_source, background=False).status == RunStatus.COMPLETED


class TestRecordings:
    def test_recording_lifecycle(self, manager):
        session = manager.start_recording(title="Bench")
        assert manager.get_recording(session.id) is session
        session.add_chunk(b"abc")
        assert manager.pop_recording(session.id) is session
        assert manager.get_recording(session.id) is None

    def test_recording_lookup_waits_for_registry_lock(self, manager):
        session = manager.start_recording()
        found = []
        with manager._lock:
            reader = threading.Thread(
                target=lambda: found.append(manager.get_recording(session.id))
            )
            reader.start()
            reader.join(timeout=0.1)
            assert found == []
        reader.join(timeout=5)
        assert found == [session]
