"""Background music generation.

Music is requested from the provider's audio model with a mood prompt,
polled on its own budget (MUSIC_POLL_BUDGET_SECONDS) and downloaded into the
job workspace. Timeouts and provider failures are non-fatal; the video is
then produced without music.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import httpx

from promo_pipeline.clients.runware import ProviderTaskStatus, RunwareClient
from promo_pipeline.constants import (
    DEFAULT_MUSIC_MOOD,
    MUSIC_MODEL,
    MUSIC_MOOD_KEYWORDS,
    MUSIC_STYLE_PROMPTS,
)
from promo_pipeline.exceptions import ProviderError
from promo_pipeline.services.job_repository import JobRepository, SceneUsage
from promo_pipeline.services.status_poller import StatusPoller
from promo_pipeline.services.storage import download_to_file
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

MUSIC_USAGE = SceneUsage(provider="runware", endpoint="audioInference", model=MUSIC_MODEL)


def detect_music_mood(text: str) -> str:
    """Pick a music mood from keywords in scene descriptions."""
    lowered = text.lower()
    for mood, keywords in MUSIC_MOOD_KEYWORDS:
        if any(re.search(rf"\b{re.escape(keyword)}\b", lowered) for keyword in keywords):
            return mood
    return DEFAULT_MUSIC_MOOD


def build_music_prompt(style: str | None, descriptions: list[str]) -> str:
    """Prompt for the configured style, or for the mood detected from descriptions."""
    if style and style in MUSIC_STYLE_PROMPTS:
        return MUSIC_STYLE_PROMPTS[style]
    return f"{detect_music_mood(' '.join(descriptions))} background music"


@dataclass
class MusicResult:
    path: Path
    cost_cents: int | None = None


class MusicGenerator:
    """Generates and downloads a background music track."""

    def __init__(
        self,
        client: RunwareClient,
        poller: StatusPoller,
        http_client: httpx.AsyncClient,
        repository: JobRepository,
        budget_seconds: float = 120.0,
    ) -> None:
        self.client = client
        self.poller = poller
        self.http_client = http_client
        self.repository = repository
        self.budget_seconds = budget_seconds

    async def generate(
        self, job_id: UUID, prompt: str, duration_seconds: float, workspace: Path
    ) -> MusicResult | None:
        """Generate music; returns None on any failure or timeout."""
        try:
            task_id = await self.client.submit_music_task(prompt, duration_seconds)
        except ProviderError as e:
            log.warning("music_submit_failed", job_id=str(job_id), error=str(e))
            return None

        results = await self.poller.poll_until_terminal(
            [task_id],
            self.budget_seconds,
            timeout_message="Music generation timeout",
        )
        result = results[task_id]

        if result.cost_cents is not None:
            await self.repository.record_usage(
                job_id, task_id, result.cost_cents, MUSIC_USAGE, metadata={"prompt": prompt}
            )

        if result.status is not ProviderTaskStatus.SUCCESS or not result.result_url:
            log.warning("music_generation_failed", job_id=str(job_id), error=result.error)
            return None

        try:
            path = await download_to_file(
                self.http_client, result.result_url, workspace / "music.mp3"
            )
        except (httpx.HTTPError, ValueError, OSError) as e:
            log.warning("music_download_failed", job_id=str(job_id), error=str(e))
            return None

        log.info("music_ready", job_id=str(job_id), prompt=prompt, cost_cents=result.cost_cents)
        return MusicResult(path=path, cost_cents=result.cost_cents)
