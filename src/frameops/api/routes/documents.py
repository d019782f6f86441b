"""SOP document endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from frameops.api.dependencies import get_document_store, get_pipeline_manager
from frameops.models.errors import RunConflictError, RunFailedError, RunNotFoundError
from frameops.models.pipeline import RunStatus
from frameops.pipeline.manager import PipelineManager
from frameops.storage.document_store import JsonDocumentStore

router = APIRouter(prefix="/api/v1", tags=["documents"])


@router.get("/runs/{run_id}/sop")
async def get_sop(
    run_id: str,
    manager: PipelineManager = Depends(get_pipeline_manager),
    store: JsonDocumentStore = Depends(get_document_store),
):
    """Return the SOP document of a completed run."""
    run = manager.get_run(run_id)
    if run is not None:
        if run.status == RunStatus.RUNNING:
            raise RunConflictError(
                f"Run {run_id} is still {run.current_stage.value}",
                details={"percentage": run.percentage},
            )
        if run.status == RunStatus.FAILED:
            stage = run.failed_stage.value if run.failed_stage else run.current_stage.value
            raise RunFailedError(stage, run.error or "unknown error")
        if run.result is not None:
            return {"run_id": run_id, **run.result.document.model_dump(mode="json")}

    try:
        result = store.load(run_id)
    except FileNotFoundError:
        raise RunNotFoundError(f"Run {run_id} not found") from None
    return {"run_id": run_id, **result.document.model_dump(mode="json")}


@router.get("/runs/{run_id}/frames/{frame_index}")
async def get_frame_image(
    run_id: str,
    frame_index: int,
    store: JsonDocumentStore = Depends(get_document_store),
):
    """Download the stored image of a frame referenced by the SOP."""
    path = store.frame_path(run_id, frame_index)
    if path is None:
        raise RunNotFoundError(f"Frame {frame_index} of run {run_id} not found")
    return FileResponse(path=path, media_type="image/jpeg", filename=path.name)
