"""Narration track preparation.

A job either supplies its own voiceover (custom_voiceover_url) or gets one
synthesized from its scene descriptions with Google Text-to-Speech. Every
failure here is non-fatal: the compositor simply produces a video without a
voice track.
"""

from pathlib import Path

import httpx

from promo_pipeline.clients.tts import GoogleTTSClient, TTSError
from promo_pipeline.services.storage import download_to_file
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


def build_narration_script(descriptions: list[str]) -> str:
    """Join scene descriptions as "Scene 1: ...". "Scene 2: ..."."""
    return ". ".join(
        f"Scene {index + 1}: {description.strip()}"
        for index, description in enumerate(descriptions)
        if description and description.strip()
    )


class NarrationService:
    """Produces the narration audio file for a job, if any.

    Attributes:
        tts_client: Google TTS client, or None when synthesis is unavailable
        http_client: Used to download custom voiceovers
    """

    def __init__(self, tts_client: GoogleTTSClient | None, http_client: httpx.AsyncClient) -> None:
        self.tts_client = tts_client
        self.http_client = http_client

    @property
    def available(self) -> bool:
        return self.tts_client is not None

    async def prepare(
        self,
        descriptions: list[str],
        language: str,
        voice_type: str,
        workspace: Path,
        custom_voiceover_url: str | None = None,
    ) -> Path | None:
        """Return a local narration file, or None to continue without one."""
        if custom_voiceover_url:
            try:
                return await download_to_file(
                    self.http_client, custom_voiceover_url, workspace / "voiceover_custom.audio"
                )
            except (httpx.HTTPError, ValueError, OSError) as e:
                log.warning("custom_voiceover_download_failed", error=str(e))
                return None

        if self.tts_client is None:
            log.info("narration_unavailable", reason="no TTS client configured")
            return None

        script = build_narration_script(descriptions)
        if not script:
            return None

        try:
            return await self.tts_client.synthesize(
                script, language, voice_type, workspace / "narration.mp3"
            )
        except (TTSError, OSError) as e:
            log.warning("narration_synthesis_failed", error=str(e), language=language)
            return None
