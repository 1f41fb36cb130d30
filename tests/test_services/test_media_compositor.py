"""Tests for MediaCompositor.

Test Coverage:
- Crossfade filter graph and mux argument construction
- Full compose flow with ffmpeg, ffprobe and downloads mocked
- Fatal steps raise CompositionError; optional audio failures do not
- Workspace cleanup on success and on failure
"""

import uuid
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from promo_pipeline.exceptions import CompositionError
from promo_pipeline.services.media_compositor import (
    CompositionRequest,
    MediaCompositor,
    SceneClip,
    build_crossfade_filter,
    build_mux_args,
    expected_output_duration,
)
from promo_pipeline.services.music import MusicResult
from promo_pipeline.utils.ffmpeg import FFmpegError

MODULE = "promo_pipeline.services.media_compositor"


class TestCrossfadeFilter:
    def test_two_clips(self):
        assert build_crossfade_filter([3.0, 3.0], 0.5) == (
            "[0:v][1:v]xfade=transition=fade:duration=0.5:offset=2.500[vout]"
        )

    def test_three_clips_chain_offsets(self):
        graph = build_crossfade_filter([3.0, 4.0, 2.0], 0.5)
        assert graph.split(";") == [
            "[0:v][1:v]xfade=transition=fade:duration=0.5:offset=2.500[v1]",
            "[v1][2:v]xfade=transition=fade:duration=0.5:offset=6.000[vout]",
        ]

    def test_zero_crossfade_uses_concat(self):
        assert build_crossfade_filter([3.0, 3.0, 3.0], 0) == (
            "[0:v][1:v][2:v]concat=n=3:v=1:a=0[vout]"
        )

    def test_offsets_never_negative(self):
        assert "offset=0.000" in build_crossfade_filter([0.2, 3.0], 0.5)

    def test_single_clip_rejected(self):
        with pytest.raises(ValueError):
            build_crossfade_filter([3.0], 0.5)


class TestExpectedOutputDuration:
    def test_three_three_second_clips_with_half_second_crossfade(self):
        assert expected_output_duration([3.0, 3.0, 3.0], 0.5) == 8.0

    def test_single_clip_keeps_its_length(self):
        assert expected_output_duration([4.0], 0.5) == 4.0

    def test_zero_crossfade_is_plain_sum(self):
        assert expected_output_duration([3.0, 3.0], 0) == 6.0

    def test_no_clips(self):
        assert expected_output_duration([], 0.5) == 0.0


class TestMuxArgs:
    def test_no_audio_copies_streams(self):
        args = build_mux_args(Path("v.mp4"), None, None, Path("out.mp4"))
        assert args == ["-i", "v.mp4", "-c", "copy", "-movflags", "+faststart", "out.mp4"]

    def test_narration_and_music_are_mixed(self):
        args = build_mux_args(Path("v.mp4"), Path("n.mp3"), Path("m.mp3"), Path("out.mp4"))
        graph = args[args.index("-filter_complex") + 1]
        assert "[1:a]volume=1.0[voice]" in graph
        assert "[2:a]volume=0.3[music]" in graph
        assert "amix=inputs=2:duration=first" in graph
        assert args[args.index("-b:a") + 1] == "192k"
        assert "-shortest" in args

    def test_music_only_volume(self):
        args = build_mux_args(Path("v.mp4"), None, Path("m.mp3"), Path("out.mp4"))
        assert args[args.index("-filter_complex") + 1] == "[1:a]volume=0.5[aout]"
        assert args.count("-i") == 2

    def test_narration_only(self):
        args = build_mux_args(Path("v.mp4"), Path("n.mp3"), None, Path("out.mp4"))
        assert args[args.index("-filter_complex") + 1] == "[1:a]volume=1.0[aout]"


async def _fake_ffmpeg(args, timeout=300):
    Path(args[-1]).write_bytes(b"rendered")


async def _fake_download(client, url, destination):
    destination.write_bytes(b"clip")
    return destination


@pytest.fixture
def storage():
    storage = AsyncMock()
    storage.store.return_value = "https://promo.example.com/media/promo.mp4"
    return storage


@pytest.fixture
def narration():
    narration = AsyncMock()
    narration.prepare.return_value = None
    return narration


@pytest.fixture
def music():
    music = AsyncMock()
    music.generate.return_value = None
    return music


@pytest.fixture
def compositor(tmp_path, storage, narration, music):
    return MediaCompositor(AsyncMock(), storage, narration, music, tmp_path / "workspace")


def make_request(job_id, clip_count=2, **overrides):
    data = dict(
        job_id=job_id,
        clips=[SceneClip(i, f"https://vm/{i}.mp4") for i in reversed(range(clip_count))],
        descriptions=[f"Scene {i} with a bottle" for i in range(clip_count)],
    )
    data.update(overrides)
    return CompositionRequest(**data)


class TestCompose:
    @pytest.mark.asyncio
    async def test_full_flow_publishes_and_cleans_up(
        self, compositor, storage, narration, music, tmp_path
    ):
        job_id = uuid.uuid4()
        narration_file = tmp_path / "narration.mp3"
        narration.prepare.return_value = narration_file
        music.generate.return_value = MusicResult(path=tmp_path / "music.mp3", cost_cents=3)

        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)) as download,
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)) as ffmpeg,
            patch(f"{MODULE}.probe_duration", new=AsyncMock(side_effect=[3.0, 3.0, 5.5])),
        ):
            result = await compositor.compose(make_request(job_id))

        assert result.video_url == "https://promo.example.com/media/promo.mp4"
        assert result.duration_seconds == 5.5
        assert result.has_narration and result.has_music
        assert result.music_cost_cents == 3

        downloaded = [call.args[2].name for call in download.call_args_list]
        assert downloaded == ["scene_000.mp4", "scene_001.mp4"]

        concat_args = ffmpeg.call_args_list[0].args[0]
        assert "xfade" in concat_args[concat_args.index("-filter_complex") + 1]
        mux_args = ffmpeg.call_args_list[1].args[0]
        assert str(narration_file) in mux_args

        music_call = music.generate.call_args
        assert music_call.args[1] == "calm ambient background music"
        assert music_call.args[2] == 6.0

        data, content_type, filename = storage.store.call_args.args
        assert data == b"rendered"
        assert content_type == "video/mp4"
        assert filename.startswith(f"promo_{job_id}_")
        assert not (tmp_path / "workspace" / "jobs" / str(job_id)).exists()

    @pytest.mark.asyncio
    async def test_single_clip_is_copied_without_crossfade(self, compositor):
        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)) as ffmpeg,
            patch(f"{MODULE}.probe_duration", new=AsyncMock(return_value=3.0)),
        ):
            result = await compositor.compose(make_request(uuid.uuid4(), clip_count=1))

        concat_args = ffmpeg.call_args_list[0].args[0]
        assert "-filter_complex" not in concat_args
        assert concat_args[concat_args.index("-c") + 1] == "copy"
        assert not result.has_narration
        assert not result.has_music

    @pytest.mark.asyncio
    async def test_disabled_audio_is_skipped(self, compositor, narration, music):
        request = make_request(uuid.uuid4(), narration_enabled=False, music_enabled=False)
        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)),
            patch(f"{MODULE}.probe_duration", new=AsyncMock(return_value=3.0)),
        ):
            await compositor.compose(request)

        narration.prepare.assert_not_called()
        music.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_custom_voiceover_used_even_when_narration_disabled(self, compositor, narration):
        request = make_request(
            uuid.uuid4(), narration_enabled=False, custom_voiceover_url="https://cdn/v.mp3"
        )
        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)),
            patch(f"{MODULE}.probe_duration", new=AsyncMock(return_value=3.0)),
        ):
            await compositor.compose(request)

        assert narration.prepare.call_args.kwargs["custom_voiceover_url"] == "https://cdn/v.mp3"

    @pytest.mark.asyncio
    async def test_unreadable_clip_duration_falls_back_to_default(self, compositor):
        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)) as ffmpeg,
            patch(f"{MODULE}.probe_duration", new=AsyncMock(side_effect=ValueError("bad"))),
        ):
            result = await compositor.compose(make_request(uuid.uuid4()))

        graph = ffmpeg.call_args_list[0].args[0]
        assert "offset=4.500" in " ".join(graph)
        assert result.duration_seconds == 9.5

    @pytest.mark.asyncio
    async def test_three_clips_with_crossfade_last_about_eight_seconds(self, compositor):
        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)) as ffmpeg,
            patch(
                f"{MODULE}.probe_duration",
                new=AsyncMock(side_effect=[3.0, 3.0, 3.0, ValueError("unreadable")]),
            ),
        ):
            result = await compositor.compose(make_request(uuid.uuid4(), clip_count=3))

        concat_args = ffmpeg.call_args_list[0].args[0]
        graph = concat_args[concat_args.index("-filter_complex") + 1]
        assert graph.split(";") == [
            "[0:v][1:v]xfade=transition=fade:duration=0.5:offset=2.500[v1]",
            "[v1][2:v]xfade=transition=fade:duration=0.5:offset=5.000[vout]",
        ]
        assert result.duration_seconds == 8.0

    @pytest.mark.asyncio
    async def test_download_failure_is_fatal_and_cleans_up(self, compositor, storage, tmp_path):
        job_id = uuid.uuid4()

        async def failing_download(client, url, destination):
            if url.endswith("/1.mp4"):
                raise httpx.ConnectError("unreachable")
            return await _fake_download(client, url, destination)

        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=failing_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)) as ffmpeg,
        ):
            with pytest.raises(CompositionError) as exc_info:
                await compositor.compose(make_request(job_id))

        assert exc_info.value.step == "download"
        ffmpeg.assert_not_called()
        storage.store.assert_not_called()
        assert not (tmp_path / "workspace" / "jobs" / str(job_id)).exists()

    @pytest.mark.asyncio
    async def test_concat_failure_is_fatal(self, compositor, storage):
        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=FFmpegError("ffmpeg", 1, "boom"))),
            patch(f"{MODULE}.probe_duration", new=AsyncMock(return_value=3.0)),
        ):
            with pytest.raises(CompositionError, match="concatenate failed"):
                await compositor.compose(make_request(uuid.uuid4()))
        storage.store.assert_not_called()

    @pytest.mark.asyncio
    async def test_mux_failure_is_fatal(self, compositor, storage):
        calls = {"n": 0}

        async def ffmpeg(args, timeout=300):
            calls["n"] += 1
            if calls["n"] == 2:
                raise FFmpegError("ffmpeg", 1, "mux broke")
            await _fake_ffmpeg(args)

        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=ffmpeg)),
            patch(f"{MODULE}.probe_duration", new=AsyncMock(return_value=3.0)),
        ):
            with pytest.raises(CompositionError) as exc_info:
                await compositor.compose(make_request(uuid.uuid4()))
        assert exc_info.value.step == "mux"
        storage.store.assert_not_called()

    @pytest.mark.asyncio
    async def test_publish_failure_is_fatal(self, compositor, storage):
        storage.store.side_effect = httpx.ConnectError("catbox down")
        with (
            patch(f"{MODULE}.download_to_file", new=AsyncMock(side_effect=_fake_download)),
            patch(f"{MODULE}.run_ffmpeg", new=AsyncMock(side_effect=_fake_ffmpeg)),
            patch(f"{MODULE}.probe_duration", new=AsyncMock(return_value=3.0)),
        ):
            with pytest.raises(CompositionError, match="publish failed"):
                await compositor.compose(make_request(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_no_clips_rejected(self, compositor):
        with pytest.raises(CompositionError):
            await compositor.compose(make_request(uuid.uuid4(), clip_count=0))
