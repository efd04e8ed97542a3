"""
Job Queue

In-process work queue that hands ``WorkItem`` objects from one stage to
the next. A consumer takes an item, runs its stage through the handler
and enqueues whatever item the handler returns. Jobs are independent, so
several workers can consume concurrently; one job only ever has one item
in flight.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..config import settings
from .models import WorkItem

logger = logging.getLogger(__name__)

StageHandler = Callable[[WorkItem], Awaitable[Optional[WorkItem]]]


class JobQueue:
    """
    asyncio queue of pending stages.

    Use ``drain`` to process everything inline (tests, one-shot hosts) or
    ``start``/``stop`` to keep background workers running.
    """

    def __init__(self, handler: StageHandler):
        self.handler = handler
        self._queue: "asyncio.Queue[WorkItem]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self.processed = 0

    def __len__(self):
        return self._queue.qsize()

    async def submit(self, item: WorkItem) -> None:
        await self._queue.put(item)
        logger.debug(f"Queued {item.stage.value} for {item.key}")

    async def _process(self, item: WorkItem) -> None:
        try:
            next_item = await self.handler(item)
        except Exception:
            # Stage handlers record their own failures; this only guards the loop
            logger.exception(f"Unhandled error running {item.stage.value} for {item.key}")
            return
        finally:
            self.processed += 1

        if next_item is not None:
            await self.submit(next_item)

    async def run_worker(self, name: str = "worker") -> None:
        """Consume items forever; cancel the task to stop."""
        logger.info(f"Job queue {name} started")
        while True:
            item = await self._queue.get()
            try:
                await self._process(item)
            finally:
                self._queue.task_done()

    async def drain(self) -> int:
        """
        Process items inline until the queue is empty.

        Returns:
            Number of stages run
        """
        count = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            try:
                await self._process(item)
            finally:
                self._queue.task_done()
            count += 1
        return count

    def start(self, worker_count: Optional[int] = None) -> None:
        """Spawn background workers on the running event loop."""
        count = worker_count or settings.worker_count
        for i in range(count):
            self._workers.append(asyncio.create_task(self.run_worker(f"worker-{i}")))
        logger.info(f"Started {count} queue workers")

    async def join(self) -> None:
        """Wait until every queued item, including follow-up stages, is processed."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Queue workers stopped")
