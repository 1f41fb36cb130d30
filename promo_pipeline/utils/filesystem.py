"""Filesystem helpers for per-job compositing workspaces.

Every job run gets its own scratch directory under WORKSPACE_ROOT:

    {WORKSPACE_ROOT}/jobs/{job_id}/
    ├── scene_000.mp4, scene_001.mp4, ...   downloaded clips
    ├── concat.mp4                           crossfaded video
    ├── narration.mp3, music.mp3             optional audio
    └── final.mp4                            muxed output

Nothing in this directory outlives the compositing run; it is removed on
every exit path with cleanup_paths().

Security:
    Job ids are validated and resolved paths are verified to stay within
    the workspace root.
"""

import re
import shutil
from pathlib import Path
from uuid import UUID

from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

JOBS_DIR_NAME = "jobs"

# Validation pattern: alphanumeric, underscores, dashes only
_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def _validate_identifier(identifier: str, name: str) -> None:
    if not identifier:
        raise ValueError(f"{name} cannot be empty")
    if not _ID_PATTERN.match(identifier):
        raise ValueError(
            f"Invalid {name}: '{identifier}'. "
            f"Only alphanumeric characters, underscores, and dashes are allowed."
        )


def get_job_workspace(workspace_root: Path, job_id: str | UUID) -> Path:
    """Create and return the scratch directory for a job.

    Args:
        workspace_root: Base workspace directory
        job_id: Job identifier

    Raises:
        ValueError: If job_id is invalid or the path escapes workspace_root
    """
    job_key = str(job_id)
    _validate_identifier(job_key, "job_id")

    path = workspace_root / JOBS_DIR_NAME / job_key
    if not path.resolve().is_relative_to(workspace_root.resolve()):
        raise ValueError(f"Path escapes workspace: {path}")

    path.mkdir(parents=True, exist_ok=True)
    return path


def cleanup_paths(*paths: Path) -> list[str]:
    """Delete files or directories, best effort.

    Failures are logged and returned, never raised.

    Returns:
        String paths that could not be removed.
    """
    failures: list[str] = []
    for path in paths:
        try:
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
        except OSError as e:
            log.warning("cleanup_failed", path=str(path), error=str(e))
            failures.append(str(path))
    return failures
