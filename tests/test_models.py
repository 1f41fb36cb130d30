"""Tests for Job, Scene, ProjectVisual and ApiUsage models.

Test Coverage:
- Job and Scene status state machines (allowed and rejected transitions)
- Persistence defaults (ids, timestamps, draft/pending statuses)
- Scene ordering and the per-job unique scene_index constraint
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from promo_pipeline.exceptions import InvalidStateTransitionError
from promo_pipeline.models import ApiUsage, Job, JobStatus, ProjectVisual, Scene, SceneStatus


class TestJobStateMachine:
    """Job status transitions enforced by @validates."""

    @pytest.mark.parametrize(
        "start, target",
        [
            (JobStatus.DRAFT, JobStatus.GENERATING),
            (JobStatus.DRAFT, JobStatus.FAILED),
            (JobStatus.GENERATING, JobStatus.COMPLETED),
            (JobStatus.GENERATING, JobStatus.FAILED),
            (JobStatus.COMPLETED, JobStatus.GENERATING),
            (JobStatus.FAILED, JobStatus.GENERATING),
        ],
    )
    def test_allowed_transitions(self, start, target):
        job = Job(project_id="p", status=start, config={})
        job.status = target
        assert job.status is target

    @pytest.mark.parametrize(
        "start, target",
        [
            (JobStatus.DRAFT, JobStatus.COMPLETED),
            (JobStatus.COMPLETED, JobStatus.FAILED),
            (JobStatus.FAILED, JobStatus.COMPLETED),
            (JobStatus.GENERATING, JobStatus.DRAFT),
        ],
    )
    def test_rejected_transitions(self, start, target):
        job = Job(project_id="p", status=start, config={})
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            job.status = target
        assert exc_info.value.from_status is start
        assert exc_info.value.to_status is target
        assert f"to={target.value}" in str(exc_info.value)

    def test_same_status_assignment_is_allowed(self):
        job = Job(project_id="p", status=JobStatus.COMPLETED, config={})
        job.status = JobStatus.COMPLETED
        assert job.status is JobStatus.COMPLETED


class TestSceneStateMachine:
    """Scene status transitions."""

    def test_pending_to_generating_to_success(self):
        scene = Scene(scene_index=0, description="d", status=SceneStatus.PENDING)
        scene.status = SceneStatus.GENERATING
        scene.status = SceneStatus.SUCCESS
        assert scene.status.is_terminal

    def test_pending_can_fail_directly(self):
        scene = Scene(scene_index=0, description="d", status=SceneStatus.PENDING)
        scene.status = SceneStatus.FAILED
        assert scene.status is SceneStatus.FAILED

    def test_terminal_scene_resets_to_pending_only(self):
        scene = Scene(scene_index=0, description="d", status=SceneStatus.SUCCESS)
        with pytest.raises(InvalidStateTransitionError):
            scene.status = SceneStatus.FAILED
        scene.status = SceneStatus.PENDING
        assert scene.status is SceneStatus.PENDING

    def test_pending_cannot_jump_to_success(self):
        scene = Scene(scene_index=0, description="d", status=SceneStatus.PENDING)
        with pytest.raises(InvalidStateTransitionError):
            scene.status = SceneStatus.SUCCESS

    def test_is_terminal(self):
        assert SceneStatus.SUCCESS.is_terminal
        assert SceneStatus.FAILED.is_terminal
        assert not SceneStatus.PENDING.is_terminal
        assert not SceneStatus.GENERATING.is_terminal


class TestModelPersistence:
    """Round trips through the in-memory database."""

    @pytest.mark.asyncio
    async def test_job_defaults(self, async_session):
        job = Job(project_id="proj", config={"language": "en"})
        async_session.add(job)
        await async_session.commit()

        assert job.id is not None
        assert job.status is JobStatus.DRAFT
        assert job.created_at is not None
        assert job.updated_at is not None
        assert job.video_url is None

    @pytest.mark.asyncio
    async def test_scenes_load_in_index_order(self, async_session):
        job = Job(project_id="proj", status=JobStatus.DRAFT, config={})
        job.scenes = [
            Scene(scene_index=2, description="third", status=SceneStatus.PENDING),
            Scene(scene_index=0, description="first", status=SceneStatus.PENDING),
            Scene(scene_index=1, description="second", status=SceneStatus.PENDING),
        ]
        async_session.add(job)
        await async_session.commit()
        async_session.expunge_all()

        loaded = (await async_session.execute(select(Job))).scalar_one()
        assert [scene.description for scene in loaded.scenes] == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_duplicate_scene_index_rejected(self, async_session):
        job = Job(project_id="proj", status=JobStatus.DRAFT, config={})
        job.scenes = [
            Scene(scene_index=0, description="a", status=SceneStatus.PENDING),
            Scene(scene_index=0, description="b", status=SceneStatus.PENDING),
        ]
        async_session.add(job)
        with pytest.raises(IntegrityError):
            await async_session.commit()

    @pytest.mark.asyncio
    async def test_visual_and_usage_rows(self, async_session):
        visual = ProjectVisual(project_id="proj", url="https://cdn.example.com/a.png")
        usage = ApiUsage(
            provider="runware",
            endpoint="videoInference",
            model="bytedance:2@2",
            provider_task_id="task-1",
            cost_cents=12,
        )
        async_session.add_all([visual, usage])
        await async_session.commit()

        assert visual.id is not None
        assert usage.created_at is not None
        assert usage.job_id is None
