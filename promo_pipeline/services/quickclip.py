"""QuickClip Finisher: turns the variant clips of a quickclip job into results.

A quickclip job animates one image 1-4 times. Each variant is published on
its own; nothing is concatenated and no narration is added.

Without music the provider clip URLs are the results. With music a single
track is generated for the clip duration and muxed into every variant. A
variant whose download, mux or upload fails keeps its provider clip URL,
and a music failure leaves every variant silent.
"""

import asyncio
from pathlib import Path

import httpx

from promo_pipeline.exceptions import CompositionError
from promo_pipeline.models import Job, Scene
from promo_pipeline.services.media_compositor import CompositionResult, build_mux_args
from promo_pipeline.services.music import MusicGenerator, build_music_prompt
from promo_pipeline.services.storage import ArtifactStorage, download_to_file
from promo_pipeline.utils.ffmpeg import FFmpegError, run_ffmpeg
from promo_pipeline.utils.filesystem import cleanup_paths, get_job_workspace
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


class QuickClipFinisher:
    """Publishes the variants of a quickclip job, with optional music.

    Attributes:
        music: Background music generator, or None to never add music
        workspace_root: Parent directory of per-job scratch directories
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        storage: ArtifactStorage,
        music: MusicGenerator | None,
        workspace_root: Path,
        ffmpeg_timeout: int = 300,
    ) -> None:
        self.http_client = http_client
        self.storage = storage
        self.music = music
        self.workspace_root = workspace_root
        self.ffmpeg_timeout = ffmpeg_timeout

    async def finish(self, job: Job) -> CompositionResult:
        """Return the variant URLs of a job whose scenes all succeeded.

        Raises:
            CompositionError: If a scene has no clip URL.
        """
        scenes = sorted(job.scenes, key=lambda scene: scene.scene_index)
        missing = [scene.scene_index for scene in scenes if not scene.video_url]
        if not scenes or missing:
            raise CompositionError("download", f"variants without a clip: {missing}")

        config = job.config or {}
        duration = float(config.get("scene_duration") or 0.0)
        clip_urls = [scene.video_url or "" for scene in scenes]

        if not config.get("music_enabled") or self.music is None:
            return self._result(clip_urls, duration, has_music=False)

        job_log = log.bind(job_id=str(job.id))
        workspace = get_job_workspace(self.workspace_root, job.id)
        try:
            prompt = build_music_prompt(
                config.get("music_style"), [scenes[0].description]
            )
            music = await self.music.generate(job.id, prompt, duration, workspace)
            if music is None:
                job_log.warning("quickclip_music_unavailable")
                return self._result(clip_urls, duration, has_music=False)

            urls = await asyncio.gather(
                *(self._mux_variant(job, scene, music.path, workspace) for scene in scenes)
            )
            muxed = sum(1 for url, clip_url in zip(urls, clip_urls) if url != clip_url)
            job_log.info("quickclip_variants_muxed", variant_count=len(urls), muxed=muxed)
            return self._result(
                list(urls), duration, has_music=muxed > 0, music_cost_cents=music.cost_cents
            )
        finally:
            failures = cleanup_paths(workspace)
            if failures:
                job_log.warning("workspace_cleanup_incomplete", paths=failures)

    async def _mux_variant(
        self, job: Job, scene: Scene, music_path: Path, workspace: Path
    ) -> str:
        clip_url = scene.video_url or ""
        clip_path = workspace / f"variant_{scene.scene_index:03d}.mp4"
        output_path = workspace / f"variant_{scene.scene_index:03d}_music.mp4"
        try:
            await download_to_file(self.http_client, clip_url, clip_path)
            await run_ffmpeg(
                build_mux_args(clip_path, None, music_path, output_path),
                timeout=self.ffmpeg_timeout,
            )
            data = await asyncio.to_thread(output_path.read_bytes)
            return await self.storage.store(
                data, "video/mp4", f"quickclip_{job.id}_{scene.scene_index}.mp4"
            )
        except (httpx.HTTPError, FFmpegError, asyncio.TimeoutError, OSError, ValueError) as e:
            log.warning(
                "quickclip_mux_failed",
                job_id=str(job.id),
                scene_index=scene.scene_index,
                error=str(e),
            )
            return clip_url

    @staticmethod
    def _result(
        urls: list[str],
        duration: float,
        has_music: bool,
        music_cost_cents: int | None = None,
    ) -> CompositionResult:
        return CompositionResult(
            video_url=urls[0],
            duration_seconds=round(duration, 2),
            has_narration=False,
            has_music=has_music,
            music_cost_cents=music_cost_cents,
            variant_urls=urls,
        )
