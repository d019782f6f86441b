"""Celery task definitions."""

import base64

from celery import Celery

from frameops.config import get_settings
from frameops.models.request import GenerationRequest

settings = get_settings()

celery_app = Celery(
    "frameops",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
)


@celery_app.task(bind=True, name="frameops.generate_sop")
def generate_sop_task(
    self,
    url: str | None = None,
    payload_b64: str | None = None,
    filename: str | None = None,
    request: dict | None = None,
):
    """Celery task wrapping PipelineManager.process().

    Exactly one of ``url`` (remote video) or ``payload_b64`` (base64 upload)
    must be given.
    """
    from frameops.pipeline.manager import PipelineManager
    from frameops.sources.provider import SourceProvider

    manager = PipelineManager()
    provider = SourceProvider()
    generation = GenerationRequest(**(request or {}))

    try:
        if url:
            source = provider.from_remote_url(url, title=generation.title)
        else:
            source = provider.from_upload(
                base64.b64decode(payload_b64 or ""), filename=filename, title=generation.title
            )
        manager.ensure_services_available()
    except Exception as e:
        return {"run_id": None, "status": "failed", "error": str(e)}

    run = manager.create_run()
    final = manager.process(run.id, source, generation)
    result = {
        "run_id": final.id,
        "status": final.status.value,
        "stage": final.current_stage.value,
        "error": final.error,
        "degradations": final.degradations,
    }
    if final.result is not None:
        result["document"] = final.result.document.model_dump(mode="json")
    return result
