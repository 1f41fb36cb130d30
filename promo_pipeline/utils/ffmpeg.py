"""Async wrapper around the ffmpeg and ffprobe binaries.

Critical Pattern:
- Services MUST use this wrapper instead of calling subprocess.run() directly
- Ensures non-blocking execution via asyncio.to_thread()
- Enforces a timeout on every invocation
- Provides structured error handling with FFmpegError
"""

import asyncio
import json
import subprocess
from pathlib import Path

from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


class FFmpegError(Exception):
    """Raised when ffmpeg or ffprobe exits with a non-zero code.

    Attributes:
        command (str): Binary name ("ffmpeg" or "ffprobe")
        exit_code (int): Process exit code
        stderr (str): Captured stderr output
    """

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command: str = command
        self.exit_code: int = exit_code
        self.stderr: str = stderr
        super().__init__(f"{command} failed with exit code {exit_code}: {stderr[-500:]}")


async def _run(command: list[str], timeout: int) -> subprocess.CompletedProcess[str]:
    binary = command[0]
    try:
        result = await asyncio.to_thread(
            subprocess.run,
            command,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        log.error("ffmpeg_timeout", command=binary, timeout=timeout)
        raise asyncio.TimeoutError(f"{binary} exceeded timeout of {timeout}s") from e

    if result.returncode != 0:
        stderr_truncated = (
            result.stderr[-500:] if len(result.stderr) > 500 else result.stderr
        )
        log.error(
            "ffmpeg_error", command=binary, exit_code=result.returncode, stderr=stderr_truncated
        )
        raise FFmpegError(binary, result.returncode, result.stderr)

    return result


async def run_ffmpeg(args: list[str], timeout: int = 300) -> subprocess.CompletedProcess[str]:
    """Run ffmpeg with the given arguments without blocking the event loop.

    ``-y -hide_banner -loglevel error`` are always prepended so outputs are
    overwritten and stderr stays small.

    Raises:
        FFmpegError: If ffmpeg exits with non-zero code
        asyncio.TimeoutError: If ffmpeg exceeds timeout
    """
    command = ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error", *args]
    log.info("ffmpeg_start", args=[arg[:100] for arg in args], timeout=timeout)
    return await _run(command, timeout)


async def probe_duration(media_path: Path, timeout: int = 30) -> float:
    """Probe media duration in seconds using ffprobe JSON output.

    Raises:
        FileNotFoundError: If the file doesn't exist
        FFmpegError: If ffprobe fails
        ValueError: If ffprobe output has no valid duration
    """
    if not media_path.exists():
        raise FileNotFoundError(f"Media file not found: {media_path}")

    result = await _run(
        [
            "ffprobe",
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "json",
            str(media_path),
        ],
        timeout,
    )
    try:
        return float(json.loads(result.stdout)["format"]["duration"])
    except (ValueError, KeyError, TypeError) as e:
        raise ValueError(
            f"Invalid ffprobe output for {media_path}: {result.stdout.strip()[:200]}"
        ) from e
