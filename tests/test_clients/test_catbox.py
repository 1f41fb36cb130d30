"""Tests for CatboxClient.

Test Coverage:
- Successful upload returns the public URL
- Payload validation (empty, oversized)
- HTTP and network failures propagate
- Client shutdown
"""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from promo_pipeline.clients.catbox import MAX_UPLOAD_BYTES, CatboxClient


class TestCatboxClient:
    """Test suite for CatboxClient."""

    @pytest.fixture
    def client(self):
        return CatboxClient()

    @pytest.mark.asyncio
    async def test_upload_bytes_success(self, client):
        """Successful upload returns the URL from the response body."""
        expected_url = "https://files.catbox.moe/abc123.mp4"

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = Mock(text=f"{expected_url}\n", raise_for_status=Mock())

            result_url = await client.upload_bytes(b"video", "promo.mp4", "video/mp4")

            assert result_url == expected_url
            kwargs = mock_post.call_args.kwargs
            assert kwargs["data"] == {"reqtype": "fileupload"}
            assert kwargs["files"]["fileToUpload"] == ("promo.mp4", b"video", "video/mp4")

    @pytest.mark.asyncio
    async def test_upload_empty_rejected(self, client):
        with pytest.raises(ValueError, match="empty"):
            await client.upload_bytes(b"", "promo.mp4", "video/mp4")

    @pytest.mark.asyncio
    async def test_upload_too_large_rejected(self, client):
        with patch("promo_pipeline.clients.catbox.MAX_UPLOAD_BYTES", 4):
            with pytest.raises(ValueError, match="too large"):
                await client.upload_bytes(b"12345", "promo.mp4", "video/mp4")
        assert MAX_UPLOAD_BYTES == 200 * 1024 * 1024

    @pytest.mark.asyncio
    async def test_unexpected_response_body(self, client):
        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = Mock(text="Internal error", raise_for_status=Mock())
            with pytest.raises(ValueError, match="Unexpected catbox response"):
                await client.upload_bytes(b"video", "promo.mp4", "video/mp4")

    @pytest.mark.asyncio
    async def test_upload_http_error(self, client):
        """HTTP errors from catbox.moe propagate."""
        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_response = Mock()
            mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
                "500 Internal Server Error",
                request=Mock(),
                response=Mock(status_code=500),
            )
            mock_post.return_value = mock_response

            with pytest.raises(httpx.HTTPStatusError):
                await client.upload_bytes(b"video", "promo.mp4", "video/mp4")

    @pytest.mark.asyncio
    async def test_upload_network_error(self, client):
        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.side_effect = httpx.ConnectError("Connection failed")
            with pytest.raises(httpx.ConnectError):
                await client.upload_bytes(b"video", "promo.mp4", "video/mp4")

    @pytest.mark.asyncio
    async def test_close_client(self, client):
        with patch.object(client.client, "aclose", new_callable=AsyncMock) as mock_close:
            await client.close()
            mock_close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        http_client = AsyncMock()
        client = CatboxClient(http_client=http_client)
        await client.close()
        http_client.aclose.assert_not_called()
