"""Runware API client for image-to-video and music generation.

This module provides an async client for the Runware task API. Every
generation request returns an opaque task UUID immediately; completion is
discovered only by polling ``getResponse`` for that UUID.

It implements:
- Local validation (duration, prompt length, resolution whitelist) before any
  network call, raising ProviderValidationError
- Error classification: 401 → ProviderAuthError, 400 → ProviderRequestError,
  everything else (5xx, 429, timeouts, connection errors) → TransientProviderError
- Concurrency bound on submissions via asyncio.Semaphore and a request-rate
  cap via AsyncLimiter

No retries happen here; the status poller and the pipeline decide what to do
with transient failures.

Usage:
    client = RunwareClient(api_key)
    task_id = await client.submit_video_task(url, 3.0, "Slow zoom on the bottle", 544, 736)
    result = await client.get_task_status(task_id)
    await client.close()
"""

import asyncio
import enum
import uuid
from dataclasses import dataclass
from typing import Any

import httpx
from aiolimiter import AsyncLimiter

from promo_pipeline.constants import (
    MAX_MUSIC_DURATION,
    MAX_PROMPT_LENGTH,
    MAX_VIDEO_DURATION,
    MIN_MUSIC_DURATION,
    MIN_PROMPT_LENGTH,
    MIN_VIDEO_DURATION,
    MUSIC_MODEL,
    SUPPORTED_RESOLUTIONS,
    VIDEO_MODEL,
    VIDEO_RESULT_URL_TEMPLATE,
)
from promo_pipeline.exceptions import (
    ProviderAuthError,
    ProviderRequestError,
    ProviderValidationError,
    TransientProviderError,
)
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


class ProviderTaskStatus(enum.Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TaskStatusResult:
    """Outcome of one status check.

    Attributes:
        status: processing, success or failed
        result_url: Public URL of the generated media (success only)
        cost_cents: Provider cost in integer cents, when reported
        error: Provider error message (failed only)
    """

    task_id: str
    status: ProviderTaskStatus
    result_url: str | None = None
    cost_cents: int | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not ProviderTaskStatus.PROCESSING


def validate_video_request(
    image_url: str, duration_seconds: float, prompt: str, width: int, height: int
) -> tuple[float, str]:
    """Validate video request parameters against provider limits.

    Returns:
        Tuple of (duration rounded to 0.1s, trimmed prompt).

    Raises:
        ProviderValidationError: If any parameter is out of bounds.
    """
    if not image_url or not image_url.strip():
        raise ProviderValidationError("image URL is required")
    if not MIN_VIDEO_DURATION <= duration_seconds <= MAX_VIDEO_DURATION:
        raise ProviderValidationError(
            f"duration must be between {MIN_VIDEO_DURATION} and {MAX_VIDEO_DURATION} "
            f"seconds, got {duration_seconds}"
        )
    trimmed = (prompt or "").strip()
    if not MIN_PROMPT_LENGTH <= len(trimmed) <= MAX_PROMPT_LENGTH:
        raise ProviderValidationError(
            f"prompt must be {MIN_PROMPT_LENGTH}-{MAX_PROMPT_LENGTH} characters, "
            f"got {len(trimmed)}"
        )
    if (width, height) not in SUPPORTED_RESOLUTIONS:
        raise ProviderValidationError(f"unsupported resolution {width}x{height}")
    return round(duration_seconds, 1), trimmed


def _dollars_to_cents(cost: Any) -> int | None:
    if cost is None:
        return None
    try:
        return round(float(cost) * 100)
    except (TypeError, ValueError):
        return None


def _first_url(value: Any) -> str | None:
    """Return the first http(s) URL found in a string, dict or list value."""
    if isinstance(value, str):
        return value if value.startswith("http") else None
    if isinstance(value, dict):
        for key in ("videoURL", "audioURL", "video_url", "audio_url", "url", "outputURL", "output"):
            url = _first_url(value.get(key))
            if url:
                return url
        return None
    if isinstance(value, list) and value:
        return _first_url(value[0])
    return None


def parse_status_response(task_id: str, body: Any) -> TaskStatusResult:
    """Translate a getResponse body into a TaskStatusResult.

    Rules:
        - any entry in ``errors`` → failed with the first message
        - a media URL anywhere in the result → success, whatever ``status`` says
        - ``status == "success"`` with ``videoUUID`` → success with the CDN URL
        - ``status == "failed"`` or an ``error`` field → failed
        - otherwise still processing
    """
    if not isinstance(body, dict):
        return TaskStatusResult(task_id=task_id, status=ProviderTaskStatus.PROCESSING)

    errors = body.get("errors") or []
    if errors:
        first = errors[0]
        message = first.get("message") if isinstance(first, dict) else str(first)
        return TaskStatusResult(
            task_id=task_id,
            status=ProviderTaskStatus.FAILED,
            error=message or "provider reported an error",
        )

    data = body.get("data") or []
    result = next(
        (item for item in data if isinstance(item, dict) and item.get("taskUUID") == task_id),
        data[0] if data else None,
    )
    if not isinstance(result, dict):
        return TaskStatusResult(task_id=task_id, status=ProviderTaskStatus.PROCESSING)

    cost_cents = _dollars_to_cents(result.get("cost"))
    status = result.get("status")

    url = _first_url(result)
    for nested in ("outputs", "media", "assets", "data"):
        if url:
            break
        url = _first_url(result.get(nested))
    if not url and status == "success" and result.get("videoUUID"):
        url = VIDEO_RESULT_URL_TEMPLATE.format(video_uuid=result["videoUUID"])

    if url:
        return TaskStatusResult(
            task_id=task_id,
            status=ProviderTaskStatus.SUCCESS,
            result_url=url,
            cost_cents=cost_cents,
        )

    if status == "failed" or result.get("error"):
        return TaskStatusResult(
            task_id=task_id,
            status=ProviderTaskStatus.FAILED,
            cost_cents=cost_cents,
            error=str(result.get("error") or "generation failed"),
        )

    return TaskStatusResult(task_id=task_id, status=ProviderTaskStatus.PROCESSING)


class RunwareClient:
    """Runware task API client.

    Attributes:
        base_url: Runware API endpoint
        client: Async HTTP client (owned unless injected)
        semaphore: Bounds concurrent generation submissions
        rate_limiter: Caps total requests per second
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.runware.ai/v1",
        http_client: httpx.AsyncClient | None = None,
        max_concurrent: int = 2,
        rate_per_second: float = 5,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=60.0)
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.rate_limiter = AsyncLimiter(max_rate=rate_per_second, time_period=1)

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, payload: list[dict[str, Any]], operation: str) -> Any:
        """POST a task payload and classify failures.

        Raises:
            ProviderAuthError: HTTP 401
            ProviderRequestError: HTTP 400
            TransientProviderError: other HTTP errors, timeouts, network errors
        """
        try:
            async with self.rate_limiter:
                response = await self.client.post(
                    self.base_url, headers=self._get_headers(), json=payload
                )
        except httpx.TimeoutException as e:
            log.warning("runware_request_timeout", operation=operation)
            raise TransientProviderError(f"{operation} timed out") from e
        except httpx.TransportError as e:
            log.warning("runware_network_error", operation=operation, error=str(e))
            raise TransientProviderError(f"{operation} network error: {e}") from e

        if response.status_code == 401:
            log.error("runware_auth_failed", operation=operation)
            raise ProviderAuthError("API authentication failed. Check the Runware API key.")

        if response.status_code == 400:
            message = "Invalid request"
            try:
                errors = response.json().get("errors") or []
                if errors and isinstance(errors[0], dict):
                    message = errors[0].get("message") or message
            except (ValueError, AttributeError):
                pass
            log.error("runware_request_rejected", operation=operation, message=message)
            raise ProviderRequestError(f"{operation} request invalid: {message}")

        if response.status_code >= 400:
            log.warning(
                "runware_http_error", operation=operation, status_code=response.status_code
            )
            raise TransientProviderError(
                f"{operation} failed with HTTP {response.status_code}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientProviderError(f"{operation} returned invalid JSON") from e

    async def submit_video_task(
        self,
        image_url: str,
        duration_seconds: float,
        prompt: str,
        width: int,
        height: int,
    ) -> str:
        """Submit an image-to-video generation task.

        Args:
            image_url: Publicly reachable seed image URL
            duration_seconds: Clip length, 1.2-12 seconds
            prompt: Motion prompt, 10-2500 characters after trimming
            width: Output width (must be a supported resolution)
            height: Output height

        Returns:
            Provider task UUID.

        Raises:
            ProviderValidationError: Before any network call if parameters are invalid.
        """
        duration, trimmed_prompt = validate_video_request(
            image_url, duration_seconds, prompt, width, height
        )
        task_id = str(uuid.uuid4())
        payload = [
            {
                "taskType": "videoInference",
                "taskUUID": task_id,
                "model": VIDEO_MODEL,
                "positivePrompt": trimmed_prompt,
                "frameImages": [{"inputImage": image_url}],
                "duration": duration,
                "width": width,
                "height": height,
                "outputFormat": "mp4",
                "deliveryMethod": "async",
                "includeCost": True,
            }
        ]
        async with self.semaphore:
            await self._post(payload, "video generation")
        log.info(
            "runware_video_task_submitted",
            task_id=task_id,
            duration=duration,
            resolution=f"{width}x{height}",
        )
        return task_id

    async def submit_music_task(self, mood_prompt: str, duration_seconds: float) -> str:
        """Submit a background music generation task.

        Duration is clamped to the music model's supported range.

        Returns:
            Provider task UUID.
        """
        prompt = (mood_prompt or "").strip()
        if not prompt:
            raise ProviderValidationError("music prompt is required")
        duration = int(max(MIN_MUSIC_DURATION, min(MAX_MUSIC_DURATION, round(duration_seconds))))
        task_id = str(uuid.uuid4())
        payload = [
            {
                "taskType": "audioInference",
                "taskUUID": task_id,
                "positivePrompt": prompt,
                "duration": duration,
                "outputFormat": "mp3",
                "model": MUSIC_MODEL,
                "includeCost": True,
            }
        ]
        async with self.semaphore:
            await self._post(payload, "music generation")
        log.info("runware_music_task_submitted", task_id=task_id, duration=duration)
        return task_id

    async def get_task_status(self, task_id: str) -> TaskStatusResult:
        """Check the current status of a submitted task (one request)."""
        body = await self._post(
            [{"taskType": "getResponse", "taskUUID": task_id}], "status check"
        )
        result = parse_status_response(task_id, body)
        log.debug("runware_task_status", task_id=task_id, status=result.status.value)
        return result

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()
