import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadflow import __version__
from leadflow.application import get_campaign_service, get_workflow_service
from leadflow.core.logs import configure_logging
from leadflow.core.settings import get_settings
from leadflow.domain.jobs import utcnow_iso
from leadflow.infrastructure.jobs import sweep_forever
from leadflow.routes import campaigns, workflows


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    service = get_workflow_service()
    sweeper = asyncio.create_task(
        sweep_forever(service.store, settings.job_sweep_interval_seconds),
        name="job-sweeper",
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await service.shutdown()
        get_campaign_service().locks.release_owned()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Leadflow Prospecting API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(workflows.router, prefix="/api")
    app.include_router(campaigns.router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "version": __version__,
            "running_jobs": get_workflow_service().running_jobs(),
            "timestamp": utcnow_iso(),
        }

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Leadflow Prospecting API",
                "docs": "/docs",
                "health": "/health",
            }
        )

    return app


app = create_app()
