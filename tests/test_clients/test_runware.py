"""Tests for RunwareClient.

Test Coverage:
- Local validation before any network call
- Request payloads for video, music and status checks
- HTTP error classification (401, 400, 5xx, timeouts)
- Status response parsing (success URL shapes, failures, processing, cost)
"""

import json

import httpx
import pytest

from promo_pipeline.clients.runware import (
    ProviderTaskStatus,
    RunwareClient,
    parse_status_response,
    validate_video_request,
)
from promo_pipeline.constants import MUSIC_MODEL, VIDEO_MODEL
from promo_pipeline.exceptions import (
    ProviderAuthError,
    ProviderRequestError,
    ProviderValidationError,
    TransientProviderError,
)

IMAGE_URL = "https://cdn.example.com/bottle.png"
PROMPT = "Slow zoom on the bottle with soft light"


def make_client(handler):
    """RunwareClient backed by an httpx.MockTransport handler."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RunwareClient("test-key", http_client=http_client, rate_per_second=1000)


class TestValidateVideoRequest:
    def test_valid_request_rounds_duration_and_trims_prompt(self):
        duration, prompt = validate_video_request(IMAGE_URL, 3.04, f"  {PROMPT}  ", 544, 736)
        assert duration == 3.0
        assert prompt == PROMPT

    @pytest.mark.parametrize("duration", [1.1, 12.1, 0])
    def test_duration_out_of_range(self, duration):
        with pytest.raises(ProviderValidationError, match="duration"):
            validate_video_request(IMAGE_URL, duration, PROMPT, 544, 736)

    @pytest.mark.parametrize("prompt", ["short", "   padded   ", "x" * 2501])
    def test_prompt_length(self, prompt):
        with pytest.raises(ProviderValidationError, match="prompt"):
            validate_video_request(IMAGE_URL, 3.0, prompt, 544, 736)

    def test_unsupported_resolution(self):
        with pytest.raises(ProviderValidationError, match="resolution"):
            validate_video_request(IMAGE_URL, 3.0, PROMPT, 500, 500)

    def test_missing_image(self):
        with pytest.raises(ProviderValidationError, match="image"):
            validate_video_request("  ", 3.0, PROMPT, 544, 736)


class TestSubmitTasks:
    @pytest.mark.asyncio
    async def test_video_payload(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": []})

        client = make_client(handler)
        task_id = await client.submit_video_task(IMAGE_URL, 3.0, PROMPT, 544, 736)

        task = captured["body"][0]
        assert captured["headers"]["Authorization"] == "Bearer test-key"
        assert task["taskType"] == "videoInference"
        assert task["taskUUID"] == task_id
        assert task["model"] == VIDEO_MODEL
        assert task["frameImages"] == [{"inputImage": IMAGE_URL}]
        assert task["duration"] == 3.0
        assert (task["width"], task["height"]) == (544, 736)
        assert task["includeCost"] is True

    @pytest.mark.asyncio
    async def test_validation_happens_before_network(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler)
        with pytest.raises(ProviderValidationError):
            await client.submit_video_task(IMAGE_URL, 30.0, PROMPT, 544, 736)
        assert calls == []

    @pytest.mark.asyncio
    async def test_music_duration_clamped(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": []})

        client = make_client(handler)
        await client.submit_music_task("calm ambient background music", 4.2)

        task = captured["body"][0]
        assert task["taskType"] == "audioInference"
        assert task["model"] == MUSIC_MODEL
        assert task["duration"] == 10

    @pytest.mark.asyncio
    async def test_music_requires_prompt(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ProviderValidationError):
            await client.submit_music_task("   ", 30)


class TestErrorClassification:
    @pytest.mark.asyncio
    async def test_401_is_auth_error(self):
        client = make_client(lambda request: httpx.Response(401, json={}))
        with pytest.raises(ProviderAuthError, match="authentication failed"):
            await client.submit_video_task(IMAGE_URL, 3.0, PROMPT, 544, 736)

    @pytest.mark.asyncio
    async def test_400_is_request_error_with_provider_message(self):
        body = {"errors": [{"message": "inputImage is not reachable"}]}
        client = make_client(lambda request: httpx.Response(400, json=body))
        with pytest.raises(ProviderRequestError, match="inputImage is not reachable"):
            await client.submit_video_task(IMAGE_URL, 3.0, PROMPT, 544, 736)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_other_http_errors_are_transient(self, status_code):
        client = make_client(lambda request: httpx.Response(status_code))
        with pytest.raises(TransientProviderError):
            await client.get_task_status("task-1")

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(TransientProviderError, match="timed out"):
            await client.get_task_status("task-1")

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(TransientProviderError):
            await client.get_task_status("task-1")


class TestParseStatusResponse:
    def test_video_url_means_success(self):
        body = {"data": [{"taskUUID": "t1", "videoURL": "https://vm.example.com/t1.mp4", "cost": 0.42}]}
        result = parse_status_response("t1", body)
        assert result.status is ProviderTaskStatus.SUCCESS
        assert result.result_url == "https://vm.example.com/t1.mp4"
        assert result.cost_cents == 42

    def test_url_wins_over_processing_status(self):
        body = {"data": [{"taskUUID": "t1", "status": "processing", "audioURL": "https://a.example.com/m.mp3"}]}
        assert parse_status_response("t1", body).status is ProviderTaskStatus.SUCCESS

    def test_nested_output_url(self):
        body = {"data": [{"taskUUID": "t1", "outputs": [{"url": "https://vm.example.com/x.mp4"}]}]}
        assert parse_status_response("t1", body).result_url == "https://vm.example.com/x.mp4"

    def test_success_with_video_uuid_builds_cdn_url(self):
        body = {"data": [{"taskUUID": "t1", "status": "success", "videoUUID": "abc"}]}
        result = parse_status_response("t1", body)
        assert result.status is ProviderTaskStatus.SUCCESS
        assert result.result_url.endswith("/abc.mp4")

    def test_errors_array_means_failed(self):
        body = {"errors": [{"message": "NSFW content detected"}]}
        result = parse_status_response("t1", body)
        assert result.status is ProviderTaskStatus.FAILED
        assert result.error == "NSFW content detected"

    def test_failed_status_keeps_cost(self):
        body = {"data": [{"taskUUID": "t1", "status": "failed", "cost": 0.1}]}
        result = parse_status_response("t1", body)
        assert result.status is ProviderTaskStatus.FAILED
        assert result.cost_cents == 10

    def test_processing(self):
        body = {"data": [{"taskUUID": "t1", "status": "processing"}]}
        result = parse_status_response("t1", body)
        assert result.status is ProviderTaskStatus.PROCESSING
        assert not result.is_terminal

    def test_empty_body_is_processing(self):
        assert parse_status_response("t1", {}).status is ProviderTaskStatus.PROCESSING
        assert parse_status_response("t1", None).status is ProviderTaskStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_get_task_status_round_trip(self):
        def handler(request):
            task = json.loads(request.content)[0]
            assert task == {"taskType": "getResponse", "taskUUID": "t9"}
            return httpx.Response(
                200, json={"data": [{"taskUUID": "t9", "videoURL": "https://vm.example.com/t9.mp4"}]}
            )

        client = make_client(handler)
        result = await client.get_task_status("t9")
        assert result.task_id == "t9"
        assert result.is_terminal
