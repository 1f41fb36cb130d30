"""Durable artifact storage and HTTP download helpers.

Backends implement ``store(data, content_type, filename) -> public URL``:

    LocalArtifactStorage  writes into STORAGE_DIR; files are served by the app
                          under /media and addressed through PUBLIC_BASE_URL
    CatboxArtifactStorage uploads to catbox.moe through CatboxClient

Downloads and uploads are retried with exponential backoff on transient
network errors (tenacity); HTTP error statuses are not retried.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Protocol

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from promo_pipeline.clients.catbox import CatboxClient
from promo_pipeline.exceptions import ConfigurationError
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

MEDIA_ROUTE = "/media"

_TRANSIENT_HTTP_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)


class ArtifactStorage(Protocol):
    async def store(self, data: bytes, content_type: str, filename: str | None = None) -> str:
        ...


@retry(
    retry=retry_if_exception_type(_TRANSIENT_HTTP_ERRORS),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
async def download_to_file(client: httpx.AsyncClient, url: str, destination: Path) -> Path:
    """Stream a URL into a local file.

    Raises:
        httpx.HTTPStatusError: On 4xx/5xx responses
        httpx.TransportError: After three failed network attempts
        ValueError: If the response body is empty
    """
    async with client.stream("GET", url, follow_redirects=True) as response:
        response.raise_for_status()
        with open(destination, "wb") as f:  # noqa: ASYNC230
            async for chunk in response.aiter_bytes():
                f.write(chunk)

    if destination.stat().st_size == 0:
        raise ValueError(f"Downloaded file is empty: {url}")
    log.info("download_complete", url=url[:200], path=str(destination))
    return destination


class LocalArtifactStorage:
    """Stores artifacts on the local filesystem.

    Attributes:
        storage_dir: Directory mounted by the app under MEDIA_ROUTE
        public_base_url: Base URL used to build returned URLs
    """

    def __init__(self, storage_dir: Path, public_base_url: str) -> None:
        self.storage_dir = storage_dir
        self.public_base_url = public_base_url.rstrip("/")

    async def store(self, data: bytes, content_type: str, filename: str | None = None) -> str:
        if not data:
            raise ValueError("Refusing to store empty artifact")
        name = filename or f"{uuid.uuid4()}{_extension_for(content_type)}"
        if "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid artifact filename: {name}")

        self.storage_dir.mkdir(parents=True, exist_ok=True)
        path = self.storage_dir / name
        await asyncio.to_thread(path.write_bytes, data)

        url = f"{self.public_base_url}{MEDIA_ROUTE}/{name}"
        log.info("artifact_stored", backend="local", path=str(path), size_bytes=len(data))
        return url


class CatboxArtifactStorage:
    """Stores artifacts on catbox.moe."""

    def __init__(self, client: CatboxClient) -> None:
        self.client = client

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_HTTP_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def store(self, data: bytes, content_type: str, filename: str | None = None) -> str:
        name = filename or f"{uuid.uuid4()}{_extension_for(content_type)}"
        return await self.client.upload_bytes(data, name, content_type)


def _extension_for(content_type: str) -> str:
    return {
        "video/mp4": ".mp4",
        "audio/mpeg": ".mp3",
    }.get(content_type, "")


def build_storage(
    backend: str,
    storage_dir: Path,
    public_base_url: str,
    catbox_client: CatboxClient | None = None,
) -> ArtifactStorage:
    """Create the configured storage backend.

    Raises:
        ConfigurationError: If backend is unknown.
    """
    if backend == "local":
        return LocalArtifactStorage(storage_dir, public_base_url)
    if backend == "catbox":
        return CatboxArtifactStorage(catbox_client or CatboxClient())
    raise ConfigurationError(f"Unknown STORAGE_BACKEND: {backend}")
