"""Explicit construction of pipeline clients and services.

Nothing in the package creates clients or engines at import time. The app
lifespan calls build_services() once, keeps the returned PipelineServices on
app.state, and closes it on shutdown. Tests build their own container with
fakes and hand it to the routes through a dependency override.
"""

from dataclasses import dataclass
from pathlib import Path

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from promo_pipeline.clients.catbox import CatboxClient
from promo_pipeline.clients.runware import RunwareClient
from promo_pipeline.clients.tts import GoogleTTSClient
from promo_pipeline.config import (
    get_crossfade_seconds,
    get_ffmpeg_timeout_seconds,
    get_google_tts_api_key,
    get_max_concurrent_provider_calls,
    get_music_poll_budget_seconds,
    get_poll_interval_seconds,
    get_public_base_url,
    get_reconcile_interval_seconds,
    get_retention_days,
    get_runware_api_key,
    get_runware_api_url,
    get_storage_backend,
    get_storage_dir,
    get_video_poll_budget_seconds,
    get_workspace_root,
)
from promo_pipeline.services.job_repository import JobRepository
from promo_pipeline.services.media_compositor import MediaCompositor
from promo_pipeline.services.music import MusicGenerator
from promo_pipeline.services.narration import NarrationService
from promo_pipeline.services.pipeline import PipelineRunner
from promo_pipeline.services.quickclip import QuickClipFinisher
from promo_pipeline.services.reconciler import ReconciliationLoop
from promo_pipeline.services.scene_orchestrator import SceneOrchestrator
from promo_pipeline.services.status_poller import StatusPoller
from promo_pipeline.services.storage import build_storage
from promo_pipeline.services.task_manager import BackgroundTaskManager
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class PipelineServices:
    """Container for everything the HTTP layer and background loops use."""

    repository: JobRepository
    task_manager: BackgroundTaskManager
    runner: PipelineRunner
    reconciler: ReconciliationLoop
    runware_client: RunwareClient | None = None
    tts_client: GoogleTTSClient | None = None
    catbox_client: CatboxClient | None = None
    http_client: httpx.AsyncClient | None = None
    engine: AsyncEngine | None = None

    async def close(self) -> None:
        """Stop background runs, then release HTTP clients and the engine."""
        await self.task_manager.shutdown()
        for client in (self.runware_client, self.tts_client, self.catbox_client):
            if client is not None:
                await client.close()
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()
        log.info("pipeline_services_closed")


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    engine: AsyncEngine | None = None,
) -> PipelineServices:
    """Build the production service graph from environment configuration.

    Raises:
        ConfigurationError: If RUNWARE_API_KEY is missing or STORAGE_BACKEND is unknown.
    """
    api_key = get_runware_api_key()
    http_client = httpx.AsyncClient(timeout=120.0)
    runware = RunwareClient(
        api_key,
        base_url=get_runware_api_url(),
        max_concurrent=get_max_concurrent_provider_calls(),
    )
    tts_api_key = get_google_tts_api_key()
    tts = GoogleTTSClient(tts_api_key) if tts_api_key else None

    backend = get_storage_backend()
    catbox = CatboxClient() if backend == "catbox" else None
    storage = build_storage(backend, Path(get_storage_dir()), get_public_base_url(), catbox)

    repository = JobRepository(session_factory)
    poller = StatusPoller(runware, get_poll_interval_seconds())
    music = MusicGenerator(
        runware, poller, http_client, repository, get_music_poll_budget_seconds()
    )
    workspace_root = Path(get_workspace_root())
    compositor = MediaCompositor(
        http_client,
        storage,
        NarrationService(tts, http_client),
        music,
        workspace_root,
        crossfade_seconds=get_crossfade_seconds(),
        ffmpeg_timeout=get_ffmpeg_timeout_seconds(),
    )
    runner = PipelineRunner(
        repository,
        SceneOrchestrator(runware, repository, get_public_base_url()),
        poller,
        compositor,
        video_budget_seconds=get_video_poll_budget_seconds(),
        quickclip_finisher=QuickClipFinisher(
            http_client,
            storage,
            music,
            workspace_root,
            ffmpeg_timeout=get_ffmpeg_timeout_seconds(),
        ),
    )
    task_manager = BackgroundTaskManager()
    reconciler = ReconciliationLoop(
        repository,
        task_manager,
        runner,
        interval_seconds=get_reconcile_interval_seconds(),
        retention_days=get_retention_days(),
    )

    log.info(
        "pipeline_services_built",
        storage_backend=backend,
        narration_available=tts is not None,
    )
    return PipelineServices(
        repository=repository,
        task_manager=task_manager,
        runner=runner,
        reconciler=reconciler,
        runware_client=runware,
        tts_client=tts,
        catbox_client=catbox,
        http_client=http_client,
        engine=engine,
    )
