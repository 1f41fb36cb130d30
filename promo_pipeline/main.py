"""FastAPI application for the promo video pipeline.

Startup builds the service graph (database, provider clients, pipeline
runner, background task manager) and starts the reconciliation loop.
Shutdown stops the loop, cancels in-flight runs and releases connections.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from promo_pipeline import __version__
from promo_pipeline.bootstrap import build_services
from promo_pipeline.config import get_database_url, get_storage_backend, get_storage_dir
from promo_pipeline.database import create_session_factory
from promo_pipeline.exceptions import ConfigurationError
from promo_pipeline.routes import jobs, quickclips, visuals
from promo_pipeline.services.storage import MEDIA_ROUTE

load_dotenv()

log = structlog.get_logger()

SERVICE_NAME = "promo-video-pipeline"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown of the pipeline services.

    Startup:
    - Build PipelineServices if DATABASE_URL and RUNWARE_API_KEY are set
    - Start the reconciliation loop as a background task

    Shutdown:
    - Cancel the reconciliation loop
    - Cancel running generations (their jobs stay generating for adoption)
    - Close HTTP clients and dispose the engine
    """
    services = None
    reconcile_task = None

    try:
        engine, session_factory = create_session_factory(get_database_url())
    except ValueError as e:
        log.warning("pipeline_disabled", reason=str(e))
    else:
        try:
            services = build_services(session_factory, engine)
        except ConfigurationError as e:
            log.warning("pipeline_disabled", reason=str(e))
            await engine.dispose()

    app.state.services = services
    if services is not None:
        if get_storage_backend() == "local":
            Path(get_storage_dir()).mkdir(parents=True, exist_ok=True)
        reconcile_task = asyncio.create_task(services.reconciler.run_forever())

    yield  # Application runs here

    if reconcile_task:
        log.info("shutting_down_reconciliation_loop")
        reconcile_task.cancel()
        try:
            await reconcile_task
        except asyncio.CancelledError:
            log.info("reconciliation_task_cancelled")

    if services is not None:
        await services.close()
    app.state.services = None


app = FastAPI(
    title="Promo Video Pipeline",
    description=(
        "Turns product scene descriptions and images into a composed promo video "
        "with crossfades, narration and background music"
    ),
    version=__version__,
    lifespan=lifespan,
)

app.include_router(jobs.router)
app.include_router(quickclips.router)
app.include_router(visuals.router)

# Local artifacts are served by the app itself
if get_storage_backend() == "local":
    app.mount(
        MEDIA_ROUTE,
        StaticFiles(directory=get_storage_dir(), check_dir=False),
        name="media",
    )


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> JSONResponse:
    """Health check endpoint for deployment validation.

    Returns:
        JSONResponse: Status and whether the pipeline services are configured
    """
    return JSONResponse(
        content={
            "status": "healthy",
            "service": SERVICE_NAME,
            "pipeline_configured": getattr(app.state, "services", None) is not None,
        }
    )


@app.get("/", status_code=status.HTTP_200_OK)
async def root() -> JSONResponse:
    """Root endpoint with API information.

    Returns:
        JSONResponse: API metadata
    """
    return JSONResponse(
        content={
            "service": "Promo Video Pipeline",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }
    )


if __name__ == "__main__":
    import uvicorn

    # Binding to 0.0.0.0 is intentional for container deployments
    uvicorn.run(
        "promo_pipeline.main:app",
        host="0.0.0.0",  # noqa: S104
        port=8000,
        reload=True,
    )
