"""Pipeline manager: owns the run registry and launches runs."""

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from frameops.config import Settings, get_settings
from frameops.models.errors import FrameOpsError, ResourceError, RunFailedError
from frameops.models.pipeline import PipelineRun
from frameops.models.request import GenerationRequest
from frameops.models.source import VideoSource
from frameops.pipeline.orchestrator import PipelineOrchestrator
from frameops.sources.recording import RecordingSession
from frameops.stages.health import ServiceHealthProbe
from frameops.storage.document_store import DocumentSink, JsonDocumentStore

logger = logging.getLogger(__name__)

Subscriber = Callable[[PipelineRun], None]


class PipelineManager:
    """Creates runs, executes them and exposes their snapshots.

    Every request gets its own PipelineRun; runs are never shared. Completed
    results are handed to the document sink.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator | None = None,
        sink: DocumentSink | None = None,
        health_probe: ServiceHealthProbe | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.orchestrator = orchestrator or PipelineOrchestrator.from_settings(self.settings)
        self.sink = sink if sink is not None else JsonDocumentStore()
        self.health_probe = health_probe
        if self.health_probe is None and self.settings.check_health_before_run:
            self.health_probe = ServiceHealthProbe.from_settings(self.settings)
        self._runs: dict[str, PipelineRun] = {}
        self._cancelled: set[str] = set()
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._recordings: dict[str, RecordingSession] = {}
        self._lock = threading.Lock()

    def create_run(self) -> PipelineRun:
        """Register a new run in the initialized stage."""
        self.cleanup_expired()
        run = PipelineRun(id=str(uuid.uuid4()), log_capacity=self.settings.log_capacity)
        with self._lock:
            self._runs[run.id] = run
        return run

    def get_run(self, run_id: str) -> PipelineRun | None:
        """Return a snapshot of a run, or None if unknown."""
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run is not None else None

    def subscribe(self, run_id: str, callback: Subscriber) -> None:
        """Receive a snapshot after every mutation of the run."""
        with self._lock:
            self._subscribers.setdefault(run_id, []).append(callback)

    def cancel_run(self, run_id: str) -> bool:
        """Request cancellation; honored at the next stage boundary."""
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                return False
            if not run.is_terminal:
                self._cancelled.add(run_id)
        logger.info(f"Cancellation requested for run {run_id}")
        return True

    def is_cancelled(self, run_id: str) -> bool:
        return run_id in self._cancelled

    def delete_run(self, run_id: str) -> bool:
        """Forget a run and remove its stored document."""
        with self._lock:
            known = self._runs.pop(run_id, None) is not None
            self._cancelled.discard(run_id)
            self._subscribers.pop(run_id, None)
        delete = getattr(self.sink, "delete", None)
        if delete is not None:
            delete(run_id)
        return known

    def ensure_services_available(self) -> None:
        """Short-circuit before any stage runs when the cluster is down."""
        if self.health_probe is not None and not self.health_probe.check():
            raise ResourceError(
                "Processing services are not reachable",
                details={"service_url": self.settings.service_url},
            )

    def process(
        self,
        run_id: str,
        source: VideoSource,
        request: GenerationRequest | None = None,
    ) -> PipelineRun:
        """Execute a registered run to a terminal state.

        Returns the final snapshot. A failed run does not raise; its stage
        and cause are recorded on the run.
        """
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise FrameOpsError(f"Run {run_id} not found", component="pipeline")

        try:
            self.orchestrator.execute(
                run,
                source,
                request,
                is_cancelled=lambda: self.is_cancelled(run_id),
                on_update=lambda snapshot: self._publish(run_id, snapshot),
            )
        except RunFailedError as e:
            logger.warning(f"Run {run_id} failed at {e.stage}: {e.cause}")
            self._finish(run_id)
            return self.get_run(run_id) or run

        final = self.get_run(run_id) or run.model_copy(deep=True)
        if run.result is not None:
            try:
                self.sink.save(run_id, run.result)
            except OSError as e:
                logger.error(f"Run {run_id}: could not persist SOP document: {e}")
            else:
                # frames now live in the store; status stays until retention expires
                with self._lock:
                    run.result = None
        self._finish(run_id)
        return final

    def cleanup_expired(self, ttl_seconds: int | None = None) -> int:
        """Forget terminal runs and idle recordings older than the retention window.

        Stored documents are kept; reads of a forgotten run fall back to the
        document sink.
        """
        ttl = ttl_seconds if ttl_seconds is not None else self.settings.run_retention_seconds
        now = datetime.now(UTC)
        with self._lock:
            expired_runs = [
                rid
                for rid, run in self._runs.items()
                if run.is_terminal
                and run.completed_at is not None
                and (now - run.completed_at).total_seconds() > ttl
            ]
            for rid in expired_runs:
                del self._runs[rid]
                self._cancelled.discard(rid)
                self._subscribers.pop(rid, None)

            idle_ttl = self.settings.recording_idle_ttl_seconds
            expired_recordings = [
                sid
                for sid, session in self._recordings.items()
                if (now - session.last_activity_at).total_seconds() > idle_ttl
            ]
            for sid in expired_recordings:
                del self._recordings[sid]

        if expired_runs or expired_recordings:
            logger.info(
                f"Expired {len(expired_runs)} runs and {len(expired_recordings)} recordings"
            )
        return len(expired_runs) + len(expired_recordings)

    def start(
        self,
        source: VideoSource,
        request: GenerationRequest | None = None,
        background: bool = True,
    ) -> PipelineRun:
        """Create a run and execute it (on a worker thread by default)."""
        self.ensure_services_available()
        run = self.create_run()
        if background:
            thread = threading.Thread(
                target=self.process,
                args=(run.id, source, request),
                name=f"run-{run.id[:8]}",
                daemon=True,
            )
            thread.start()
            return run.model_copy(deep=True)
        return self.process(run.id, source, request)

    # Live capture sessions

    def start_recording(self, mime_type: str = "video/webm", title: str | None = None):
        self.cleanup_expired()
        session = RecordingSession(
            mime_type=mime_type,
            title=title,
            max_chunks=self.settings.recording_max_chunks,
            max_bytes=self.settings.recording_max_size_mb * 1024 * 1024,
        )
        session.start()
        with self._lock:
            self._recordings[session.id] = session
        return session

    def get_recording(self, session_id: str) -> RecordingSession | None:
        with self._lock:
            return self._recordings.get(session_id)

    def pop_recording(self, session_id: str) -> RecordingSession | None:
        with self._lock:
            return self._recordings.pop(session_id, None)

    def _finish(self, run_id: str) -> None:
        with self._lock:
            self._cancelled.discard(run_id)
            self._subscribers.pop(run_id, None)

    def _publish(self, run_id: str, snapshot: PipelineRun) -> None:
        for callback in list(self._subscribers.get(run_id, [])):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning(f"Run {run_id}: subscriber raised {e}")
