"""Run endpoints: start a generation, poll it, cancel it."""

from fastapi import APIRouter, BackgroundTasks, Depends, Form, UploadFile
from pydantic import BaseModel, Field

from frameops.api.dependencies import get_pipeline_manager, get_source_provider
from frameops.models.errors import RunNotFoundError
from frameops.models.frames import DetailLevel
from frameops.models.pipeline import PipelineRun
from frameops.models.request import GenerationRequest
from frameops.models.source import VideoSource
from frameops.pipeline.manager import PipelineManager
from frameops.sources.provider import SourceProvider

router = APIRouter(prefix="/api/v1", tags=["runs"])


class RemoteRunRequest(BaseModel):
    url: str = Field(..., min_length=1)
    title: str | None = None
    detail_level: DetailLevel = DetailLevel.NORMAL
    context: str = Field(default="", max_length=5000)


def launch_run(
    manager: PipelineManager,
    background_tasks: BackgroundTasks,
    source: VideoSource,
    request: GenerationRequest,
) -> dict:
    """Register a run and schedule it after the response is sent."""
    manager.ensure_services_available()
    run = manager.create_run()
    background_tasks.add_task(manager.process, run.id, source, request)
    return {
        "run_id": run.id,
        "status": run.status.value,
        "stage": run.current_stage.value,
        "message": "Processing started",
    }


@router.post("/runs/upload", status_code=202)
async def start_upload_run(
    file: UploadFile,
    background_tasks: BackgroundTasks,
    title: str | None = Form(default=None),
    detail_level: DetailLevel = Form(default=DetailLevel.NORMAL),
    context: str = Form(default=""),
    manager: PipelineManager = Depends(get_pipeline_manager),
    provider: SourceProvider = Depends(get_source_provider),
):
    """Generate an SOP from an uploaded video file."""
    payload = await file.read()
    source = provider.from_upload(
        payload, filename=file.filename, mime_type=file.content_type, title=title
    )
    request = GenerationRequest(
        title=title, detail_level=detail_level, additional_instructions=context
    )
    return launch_run(manager, background_tasks, source, request)


@router.post("/runs/remote", status_code=202)
async def start_remote_run(
    body: RemoteRunRequest,
    background_tasks: BackgroundTasks,
    manager: PipelineManager = Depends(get_pipeline_manager),
    provider: SourceProvider = Depends(get_source_provider),
):
    """Generate an SOP from a remote video link."""
    source = provider.from_remote_url(body.url, title=body.title)
    request = GenerationRequest(
        title=body.title, detail_level=body.detail_level, additional_instructions=body.context
    )
    return launch_run(manager, background_tasks, source, request)


@router.get("/runs/{run_id}")
async def get_run_status(
    run_id: str,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    """Get the progress snapshot of a run."""
    run = manager.get_run(run_id)
    if not run:
        raise RunNotFoundError(f"Run {run_id} not found")
    return _status_body(run)


@router.delete("/runs/{run_id}")
async def cancel_run(
    run_id: str,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    """Request cancellation at the next stage boundary."""
    if not manager.cancel_run(run_id):
        raise RunNotFoundError(f"Run {run_id} not found")
    return {"run_id": run_id, "status": "cancelling"}


def _status_body(run: PipelineRun) -> dict:
    return {
        "run_id": run.id,
        "status": run.status.value,
        "stage": run.current_stage.value,
        "percentage": run.percentage,
        "log": run.log,
        "degradations": run.degradations,
        "failed_stage": run.failed_stage.value if run.failed_stage else None,
        "error": run.error,
        "created_at": run.created_at.isoformat(),
        "updated_at": run.updated_at.isoformat(),
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
    }
