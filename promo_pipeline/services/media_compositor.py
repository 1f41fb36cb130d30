"""Media Compositor: stitches finished scene clips into the final promo video.

Steps (per job, only once every scene succeeded):
    1. Download   every scene clip into the job workspace (fatal on failure)
    2. Concatenate in scene-index order with fixed-duration crossfades (fatal)
    3. Narration  custom voiceover or TTS from scene descriptions (non-fatal)
    4. Music      provider-generated background track (non-fatal)
    5. Mux        video stream copied, audio mixed and encoded to AAC (fatal)
    6. Publish    upload the result to durable storage (fatal)
    7. Cleanup    delete the job workspace on every exit path (never raises)

Fatal failures are raised as CompositionError(step, message); no partial
artifact is ever published.

Crossfade Filter:
    For clip durations d[0..n-1] and crossfade T, transition i (1-based)
    starts at offset max(sum(d[:i]) - i*T, 0) on the accumulated stream:
    [0:v][1:v]xfade=transition=fade:duration=T:offset=O1[v1];[v1][2:v]...[vout]
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

import httpx

from promo_pipeline.constants import (
    AUDIO_BITRATE,
    MUSIC_ONLY_VOLUME,
    MUSIC_UNDER_NARRATION_VOLUME,
    NARRATION_VOLUME,
)
from promo_pipeline.exceptions import CompositionError
from promo_pipeline.services.music import MusicGenerator, MusicResult, build_music_prompt
from promo_pipeline.services.narration import NarrationService
from promo_pipeline.services.storage import ArtifactStorage, download_to_file
from promo_pipeline.utils.ffmpeg import FFmpegError, probe_duration, run_ffmpeg
from promo_pipeline.utils.filesystem import cleanup_paths, get_job_workspace
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

# Used when ffprobe cannot read a downloaded clip
FALLBACK_CLIP_DURATION = 5.0


@dataclass
class SceneClip:
    scene_index: int
    video_url: str


@dataclass
class CompositionRequest:
    """Everything the compositor needs for one job.

    Attributes:
        clips: Successful scene clips (any order; sorted by scene_index here)
        descriptions: Scene descriptions in scene order (narration, music mood)
    """

    job_id: UUID
    clips: list[SceneClip]
    descriptions: list[str] = field(default_factory=list)
    language: str = "en"
    voice_type: str = "female"
    narration_enabled: bool = True
    music_enabled: bool = True
    music_style: str | None = None
    custom_voiceover_url: str | None = None


@dataclass
class CompositionResult:
    video_url: str
    duration_seconds: float
    has_narration: bool
    has_music: bool
    music_cost_cents: int | None = None
    variant_urls: list[str] = field(default_factory=list)


def expected_output_duration(durations: list[float], crossfade_seconds: float) -> float:
    """Length of the crossfaded video: each transition overlaps two clips."""
    if not durations:
        return 0.0
    return sum(durations) - (len(durations) - 1) * max(crossfade_seconds, 0.0)


def build_crossfade_filter(durations: list[float], crossfade_seconds: float) -> str:
    """Build the filter_complex graph joining len(durations) video inputs.

    A zero crossfade falls back to a plain concat filter.
    """
    count = len(durations)
    if count < 2:
        raise ValueError("crossfade needs at least two clips")

    if crossfade_seconds <= 0:
        inputs = "".join(f"[{i}:v]" for i in range(count))
        return f"{inputs}concat=n={count}:v=1:a=0[vout]"

    parts = []
    previous = "[0:v]"
    for i in range(1, count):
        offset = max(sum(durations[:i]) - i * crossfade_seconds, 0)
        label = "[vout]" if i == count - 1 else f"[v{i}]"
        parts.append(
            f"{previous}[{i}:v]xfade=transition=fade:duration={crossfade_seconds}"
            f":offset={offset:.3f}{label}"
        )
        previous = label
    return ";".join(parts)


def build_mux_args(
    video_path: Path,
    narration_path: Path | None,
    music_path: Path | None,
    output_path: Path,
) -> list[str]:
    """Build ffmpeg arguments combining the video with zero, one or two audio tracks."""
    if narration_path is None and music_path is None:
        return ["-i", str(video_path), "-c", "copy", "-movflags", "+faststart", str(output_path)]

    args = ["-i", str(video_path)]
    if narration_path is not None and music_path is not None:
        args += ["-i", str(narration_path), "-i", str(music_path)]
        audio_filter = (
            f"[1:a]volume={NARRATION_VOLUME}[voice];"
            f"[2:a]volume={MUSIC_UNDER_NARRATION_VOLUME}[music];"
            "[voice][music]amix=inputs=2:duration=first:dropout_transition=2[aout]"
        )
    elif narration_path is not None:
        args += ["-i", str(narration_path)]
        audio_filter = f"[1:a]volume={NARRATION_VOLUME}[aout]"
    else:
        args += ["-i", str(music_path)]
        audio_filter = f"[1:a]volume={MUSIC_ONLY_VOLUME}[aout]"

    return args + [
        "-filter_complex",
        audio_filter,
        "-map",
        "0:v",
        "-map",
        "[aout]",
        "-c:v",
        "copy",
        "-c:a",
        "aac",
        "-b:a",
        AUDIO_BITRATE,
        "-shortest",
        "-movflags",
        "+faststart",
        str(output_path),
    ]


class MediaCompositor:
    """Downloads, stitches, mixes and publishes a job's final video.

    Attributes:
        storage: Durable artifact storage backend
        narration: Narration track provider (non-fatal)
        music: Background music generator, or None to never add music
        workspace_root: Parent directory of per-job scratch directories
        crossfade_seconds: Transition length between consecutive scenes
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        storage: ArtifactStorage,
        narration: NarrationService,
        music: MusicGenerator | None,
        workspace_root: Path,
        crossfade_seconds: float = 0.5,
        ffmpeg_timeout: int = 300,
    ) -> None:
        self.http_client = http_client
        self.storage = storage
        self.narration = narration
        self.music = music
        self.workspace_root = workspace_root
        self.crossfade_seconds = crossfade_seconds
        self.ffmpeg_timeout = ffmpeg_timeout

    async def compose(self, request: CompositionRequest) -> CompositionResult:
        """Run all compositing steps for one job.

        Raises:
            CompositionError: If download, concatenation, mux or publish fails.
        """
        job_log = log.bind(job_id=str(request.job_id))
        if not request.clips:
            raise CompositionError("download", "no scene clips to compose")

        workspace = get_job_workspace(self.workspace_root, request.job_id)
        try:
            clip_paths = await self.download_scenes(request.clips, workspace)
            durations = [await self._clip_duration(path) for path in clip_paths]

            concat_path = workspace / "concat.mp4"
            await self.concatenate(clip_paths, durations, concat_path)
            expected_duration = expected_output_duration(durations, self.crossfade_seconds)
            job_log.info(
                "scenes_concatenated",
                clip_count=len(clip_paths),
                expected_duration=round(expected_duration, 2),
            )

            narration_path, music_result = await asyncio.gather(
                self._prepare_narration(request, workspace),
                self._prepare_music(request, sum(durations), workspace),
            )
            music_path = music_result.path if music_result else None

            final_path = workspace / "final.mp4"
            await self.mux(concat_path, narration_path, music_path, final_path)

            try:
                duration = await probe_duration(final_path)
            except (FFmpegError, ValueError, FileNotFoundError, asyncio.TimeoutError):
                duration = expected_duration

            video_url = await self.publish(final_path, request.job_id)
            job_log.info(
                "composition_complete",
                video_url=video_url,
                duration=round(duration, 2),
                has_narration=narration_path is not None,
                has_music=music_path is not None,
            )
            return CompositionResult(
                video_url=video_url,
                duration_seconds=round(duration, 2),
                has_narration=narration_path is not None,
                has_music=music_path is not None,
                music_cost_cents=music_result.cost_cents if music_result else None,
            )
        finally:
            failures = cleanup_paths(workspace)
            if failures:
                job_log.warning("workspace_cleanup_incomplete", paths=failures)
            else:
                job_log.info("workspace_cleaned")

    async def download_scenes(self, clips: list[SceneClip], workspace: Path) -> list[Path]:
        """Download all clips in scene-index order; any failure aborts.

        Raises:
            CompositionError: step "download".
        """
        ordered = sorted(clips, key=lambda clip: clip.scene_index)
        destinations = [workspace / f"scene_{clip.scene_index:03d}.mp4" for clip in ordered]
        outcomes = await asyncio.gather(
            *(
                download_to_file(self.http_client, clip.video_url, destination)
                for clip, destination in zip(ordered, destinations)
            ),
            return_exceptions=True,
        )
        for clip, outcome in zip(ordered, outcomes):
            if isinstance(outcome, BaseException):
                log.error(
                    "scene_download_failed",
                    scene_index=clip.scene_index,
                    error=str(outcome),
                )
                raise CompositionError(
                    "download", f"scene {clip.scene_index}: {outcome}"
                ) from outcome
        return destinations

    async def concatenate(
        self, clip_paths: list[Path], durations: list[float], output_path: Path
    ) -> Path:
        """Join clips with crossfades; a single clip is copied through.

        Raises:
            CompositionError: step "concatenate".
        """
        if len(clip_paths) == 1:
            args = ["-i", str(clip_paths[0]), "-c", "copy", "-movflags", "+faststart"]
        else:
            args = []
            for path in clip_paths:
                args += ["-i", str(path)]
            args += [
                "-filter_complex",
                build_crossfade_filter(durations, self.crossfade_seconds),
                "-map",
                "[vout]",
                "-c:v",
                "libx264",
                "-preset",
                "medium",
                "-crf",
                "23",
                "-pix_fmt",
                "yuv420p",
                "-movflags",
                "+faststart",
            ]
        try:
            await run_ffmpeg([*args, str(output_path)], timeout=self.ffmpeg_timeout)
        except (FFmpegError, asyncio.TimeoutError) as e:
            raise CompositionError("concatenate", str(e)) from e
        return output_path

    async def mux(
        self,
        video_path: Path,
        narration_path: Path | None,
        music_path: Path | None,
        output_path: Path,
    ) -> Path:
        """Combine video and optional audio tracks.

        Raises:
            CompositionError: step "mux".
        """
        try:
            await run_ffmpeg(
                build_mux_args(video_path, narration_path, music_path, output_path),
                timeout=self.ffmpeg_timeout,
            )
        except (FFmpegError, asyncio.TimeoutError) as e:
            raise CompositionError("mux", str(e)) from e
        return output_path

    async def publish(self, final_path: Path, job_id: UUID) -> str:
        """Upload the final video and return its public URL.

        Raises:
            CompositionError: step "publish".
        """
        filename = f"promo_{job_id}_{uuid.uuid4().hex[:8]}.mp4"
        try:
            data = await asyncio.to_thread(final_path.read_bytes)
            return await self.storage.store(data, "video/mp4", filename)
        except (httpx.HTTPError, OSError, ValueError) as e:
            raise CompositionError("publish", str(e)) from e

    async def _clip_duration(self, path: Path) -> float:
        try:
            return await probe_duration(path)
        except (FFmpegError, ValueError, FileNotFoundError, asyncio.TimeoutError) as e:
            log.warning("clip_probe_failed", path=str(path), error=str(e))
            return FALLBACK_CLIP_DURATION

    async def _prepare_narration(
        self, request: CompositionRequest, workspace: Path
    ) -> Path | None:
        if not request.narration_enabled and not request.custom_voiceover_url:
            return None
        return await self.narration.prepare(
            request.descriptions,
            request.language,
            request.voice_type,
            workspace,
            custom_voiceover_url=request.custom_voiceover_url,
        )

    async def _prepare_music(
        self, request: CompositionRequest, total_duration: float, workspace: Path
    ) -> MusicResult | None:
        if not request.music_enabled or self.music is None:
            return None
        prompt = build_music_prompt(request.music_style, request.descriptions)
        return await self.music.generate(request.job_id, prompt, total_duration, workspace)
