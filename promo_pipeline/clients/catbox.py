"""Catbox.moe file upload client.

Uploads finished promo videos to catbox.moe, a free file host that returns a
public URL without authentication. Used by the "catbox" artifact storage
backend.

Architecture Pattern:
    Simple HTTP client wrapper - retries are applied by the storage layer
    Async-only interface using httpx.AsyncClient

Usage:
    client = CatboxClient()
    url = await client.upload_bytes(data, "promo.mp4", "video/mp4")
    await client.close()
"""

import httpx

from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

# catbox.moe rejects uploads above 200MB
MAX_UPLOAD_BYTES = 200 * 1024 * 1024


class CatboxClient:
    """Client for uploading files to catbox.moe for public hosting.

    Attributes:
        base_url: catbox.moe API endpoint for file uploads
        client: Async HTTP client for making requests
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self.base_url = "https://catbox.moe/user/api.php"
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=120.0)

    async def upload_bytes(self, data: bytes, filename: str, content_type: str) -> str:
        """Upload file content and return its public URL.

        Raises:
            ValueError: If the payload is empty or too large
            httpx.HTTPStatusError: If catbox.moe returns HTTP error
            httpx.ConnectError: If network connection fails
        """
        if not data:
            raise ValueError(f"Upload is empty: {filename}")
        if len(data) > MAX_UPLOAD_BYTES:
            raise ValueError(f"Upload too large ({len(data)} bytes): {filename}")

        response = await self.client.post(
            self.base_url,
            data={"reqtype": "fileupload"},
            files={"fileToUpload": (filename, data, content_type)},
        )
        response.raise_for_status()

        url = response.text.strip()
        if not url.startswith("http"):
            raise ValueError(f"Unexpected catbox response: {url[:200]}")
        log.info("catbox_upload_success", filename=filename, size_bytes=len(data), url=url)
        return url

    async def close(self) -> None:
        """Close HTTP client connection if owned."""
        if self._owns_client:
            await self.client.aclose()
