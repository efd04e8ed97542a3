"""
Tests for the Job Queue
"""

import asyncio

from talecast.pipeline.models import JobKey, JobStage, PipelineMode, WorkItem
from talecast.pipeline.queue import JobQueue

PLAN = [JobStage.LOADING_CONTEXT, JobStage.TRANSCRIBING, JobStage.GENERATING_STORY]


def _item(session_id="s1", stage=JobStage.LOADING_CONTEXT):
    return WorkItem(
        key=JobKey(campaign_id="c1", session_id=session_id),
        stage=stage,
        mode=PipelineMode.REGENERATE_STORY,
    )


class ChainHandler:
    """Walks each item through PLAN, recording what ran."""

    def __init__(self, fail_on=None):
        self.ran = []
        self.fail_on = fail_on

    async def __call__(self, item):
        self.ran.append((item.key.session_id, item.stage))
        if item.stage == self.fail_on:
            raise RuntimeError("handler bug")
        position = PLAN.index(item.stage)
        if position + 1 < len(PLAN):
            return item.model_copy(update={"stage": PLAN[position + 1]})
        return None


class TestJobQueue:
    def test_drain_follows_handoffs(self):
        handler = ChainHandler()
        queue = JobQueue(handler)

        async def go():
            await queue.submit(_item())
            return await queue.drain()

        assert asyncio.run(go()) == 3
        assert [stage for _, stage in handler.ran] == PLAN
        assert len(queue) == 0

    def test_handler_exception_does_not_escape(self):
        handler = ChainHandler(fail_on=JobStage.TRANSCRIBING)
        queue = JobQueue(handler)

        async def go():
            await queue.submit(_item("s1"))
            await queue.submit(_item("s2"))
            return await queue.drain()

        assert asyncio.run(go()) == 4
        assert ("s1", JobStage.GENERATING_STORY) not in handler.ran
        assert queue.processed == 4

    def test_background_workers_process_independent_jobs(self):
        handler = ChainHandler()
        queue = JobQueue(handler)

        async def go():
            queue.start(worker_count=2)
            for session_id in ("s1", "s2", "s3"):
                await queue.submit(_item(session_id))
            await asyncio.wait_for(queue.join(), timeout=5)
            await queue.stop()

        asyncio.run(go())

        assert len(handler.ran) == 9
        for session_id in ("s1", "s2", "s3"):
            stages = [stage for sid, stage in handler.ran if sid == session_id]
            assert stages == PLAN

    def test_stop_without_workers(self):
        asyncio.run(JobQueue(ChainHandler()).stop())
