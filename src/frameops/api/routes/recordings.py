"""Live capture endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import BaseModel, Field

from frameops.api.dependencies import get_pipeline_manager, get_source_provider
from frameops.api.routes.runs import launch_run
from frameops.models.errors import RunNotFoundError
from frameops.models.frames import DetailLevel
from frameops.models.request import GenerationRequest
from frameops.pipeline.manager import PipelineManager
from frameops.sources.provider import SourceProvider

router = APIRouter(prefix="/api/v1", tags=["recordings"])


class StartRecordingRequest(BaseModel):
    mime_type: str = "video/webm"
    title: str | None = None


class StopRecordingRequest(BaseModel):
    detail_level: DetailLevel = DetailLevel.NORMAL
    context: str = Field(default="", max_length=5000)


@router.post("/recordings", status_code=201)
async def start_recording(
    body: StartRecordingRequest | None = None,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    """Open a bounded recording session."""
    body = body or StartRecordingRequest()
    session = manager.start_recording(mime_type=body.mime_type, title=body.title)
    return {
        "recording_id": session.id,
        "state": session.state.value,
        "max_chunks": session.max_chunks,
        "max_bytes": session.max_bytes,
    }


@router.post("/recordings/{recording_id}/chunks")
async def add_chunk(
    recording_id: str,
    request: Request,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    """Append one media chunk (raw request body)."""
    session = manager.get_recording(recording_id)
    if session is None:
        raise RunNotFoundError(f"Recording {recording_id} not found")
    size = session.add_chunk(await request.body())
    return {"recording_id": recording_id, "chunks": session.chunk_count, "size_bytes": size}


@router.post("/recordings/{recording_id}/stop", status_code=202)
async def stop_recording(
    recording_id: str,
    background_tasks: BackgroundTasks,
    body: StopRecordingRequest | None = None,
    manager: PipelineManager = Depends(get_pipeline_manager),
    provider: SourceProvider = Depends(get_source_provider),
):
    """Finish the recording and start a run on it."""
    manager.ensure_services_available()
    session = manager.pop_recording(recording_id)
    if session is None:
        raise RunNotFoundError(f"Recording {recording_id} not found")
    body = body or StopRecordingRequest()
    source = provider.from_recording(session)
    request = GenerationRequest(
        title=session.title,
        detail_level=body.detail_level,
        additional_instructions=body.context,
    )
    return launch_run(manager, background_tasks, source, request)
