"""Google Cloud Text-to-Speech REST client.

Synthesizes narration audio as MP3 using the public ``text:synthesize``
endpoint with an API key. Only the four voices used for promo narration are
mapped (English/Mandarin, male/female).

Usage:
    client = GoogleTTSClient(api_key)
    path = await client.synthesize("Scene 1: ...", "en", "female", Path("narration.mp3"))
    await client.close()
"""

import base64
from pathlib import Path

import httpx

from promo_pipeline.constants import TTS_VOICES
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

# Google rejects requests whose input exceeds 5000 bytes
MAX_INPUT_BYTES = 5000


class TTSError(Exception):
    """Raised when speech synthesis fails."""


def resolve_voice(language: str, voice_type: str) -> tuple[str, str]:
    """Map (language, voice_type) to (voice name, language code).

    Unknown combinations fall back to the English female voice.
    """
    return TTS_VOICES.get((language, voice_type), TTS_VOICES[("en", "female")])


class GoogleTTSClient:
    """Client for Google Cloud Text-to-Speech.

    Attributes:
        base_url: Synthesis endpoint
        client: Async HTTP client
    """

    def __init__(self, api_key: str, http_client: httpx.AsyncClient | None = None) -> None:
        self.api_key = api_key
        self.base_url = "https://texttospeech.googleapis.com/v1/text:synthesize"
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=60.0)

    async def synthesize(
        self, text: str, language: str, voice_type: str, output_path: Path
    ) -> Path:
        """Synthesize text to an MP3 file.

        Args:
            text: Narration script
            language: "en" or "zh"
            voice_type: "male" or "female"
            output_path: Destination MP3 path (parent must exist)

        Returns:
            output_path after the audio has been written.

        Raises:
            TTSError: On HTTP failure or a response without audio content.
        """
        voice_name, language_code = resolve_voice(language, voice_type)
        encoded = text.encode("utf-8")
        if len(encoded) > MAX_INPUT_BYTES:
            text = encoded[:MAX_INPUT_BYTES].decode("utf-8", errors="ignore")

        try:
            response = await self.client.post(
                self.base_url,
                params={"key": self.api_key},
                json={
                    "input": {"text": text},
                    "voice": {"languageCode": language_code, "name": voice_name},
                    "audioConfig": {"audioEncoding": "MP3"},
                },
            )
            response.raise_for_status()
            audio_content = response.json().get("audioContent")
        except (httpx.HTTPError, ValueError) as e:
            raise TTSError(f"speech synthesis failed: {e}") from e

        if not audio_content:
            raise TTSError("speech synthesis returned no audio content")

        output_path.write_bytes(base64.b64decode(audio_content))
        log.info(
            "tts_synthesis_complete",
            voice=voice_name,
            characters=len(text),
            output_path=str(output_path),
        )
        return output_path

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
