"""FastAPI application factory."""

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from frameops.api.dependencies import get_health_probe
from frameops.api.middleware import frameops_error_handler
from frameops.api.routes import documents, recordings, runs
from frameops.config import get_settings
from frameops.logging_config import setup_logging
from frameops.models.errors import FrameOpsError
from frameops.stages.health import ServiceHealthProbe

VERSION = "0.1.0"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    setup_logging(get_settings())

    app = FastAPI(
        title="FrameOps",
        description="Turns procedure videos into step-by-step SOP documents",
        version=VERSION,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handlers
    app.add_exception_handler(FrameOpsError, frameops_error_handler)

    # Routes
    app.include_router(runs.router)
    app.include_router(recordings.router)
    app.include_router(documents.router)

    @app.get("/health")
    def health(probe: ServiceHealthProbe = Depends(get_health_probe)):
        return {"status": "ok", "version": VERSION, "services_reachable": probe.check()}

    return app


app = create_app()
