"""Stage worker: drains one stage's channel and drives each job forward.

For every job it receives, a worker runs acquire -> workspace -> execute ->
advance:

- acquire: status becomes <stage>-ifying and the record TTL is refreshed
- workspace: {work_dir}/{id}/{stage}/ is created
- execute: the stage processor runs
- advance: the job becomes pending <successor> and is published to
  <successor>-queue, or, at the terminal stage, becomes available

Any failure marks the job failed and nothing is published. Nothing is
retried.

Each message is handled in its own task so a slow job never blocks intake.
There is no per-job lock: if the same job is delivered twice, both copies
run side by side and both advance it. The bus is at-most-once, so a worker
that dies mid-job leaves that job at its last persisted status.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from gifpipe.errors import CodecError
from gifpipe.schemas.codec import decode_job, encode_job
from gifpipe.schemas.job import JobDescriptor

if TYPE_CHECKING:
    from gifpipe.orchestrator.registry import StageRegistry
    from gifpipe.services.file_manager import WorkspaceManager
    from gifpipe.services.record_store import JobRecordStore
    from gifpipe.services.work_bus import WorkBus

logger = logging.getLogger(__name__)


class Worker:
    """Worker process for a single stage.

    Args:
        stage_name: Stage to serve; must be in the registry.
        registry: Stage table.
        store: Job record store.
        bus: Work bus to subscribe with.
        workspaces: Workspace manager rooted at the worker directory.

    Raises:
        UnknownStageError: If stage_name is not registered.
    """

    def __init__(
        self,
        stage_name: str,
        registry: "StageRegistry",
        store: "JobRecordStore",
        bus: "WorkBus",
        workspaces: "WorkspaceManager",
    ):
        self.stage = registry.get(stage_name)
        self.store = store
        self.bus = bus
        self.workspaces = workspaces
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """Subscribe and process messages until the transport fails.

        Raises:
            BusError: If subscribing fails or the connection drops. Both are
                fatal to the worker and are not retried.
        """
        subscription = await self.bus.subscribe(self.stage.name)
        try:
            async for event in subscription.events():
                if event.kind == "message":
                    self.dispatch(event.data)
                else:
                    logger.info(f"{event.channel}: {event.kind} {event.count}")
        finally:
            await subscription.close()
        await self.drain()

    def dispatch(self, data: str | bytes) -> asyncio.Task:
        """Handle one payload in its own task."""
        task = asyncio.create_task(self.process_message(data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight job task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def process_message(self, data: str | bytes) -> None:
        try:
            job = decode_job(data)
        except CodecError as e:
            logger.error(f"{self.stage.name}: dropping message: {e}")
            return
        await self.work(job)

    async def work(self, job: JobDescriptor) -> None:
        """Run this stage for one job, recording success or failure."""
        stage = self.stage.name

        try:
            await self.store.mark_in_progress(job.id, stage)
        except RedisError as e:
            logger.error(f"Job {job.id}: could not mark {stage} in progress: {e}")
            await self.store.mark_failed(job.id, stage, str(e) or type(e).__name__)
            return

        try:
            workspace = self.workspaces.create(job.id, stage)
            await self.stage.processor.run(job, workspace)
            await self.update(job, workspace)
        except Exception as e:
            description = str(e) or type(e).__name__
            logger.error(f"Job {job.id} failed in {stage}: {description}")
            await self.store.mark_failed(job.id, stage, description)
            return

        logger.info(f"Job {job.id}: {stage} complete")

    async def update(self, job: JobDescriptor, workspace: Path) -> None:
        """Hand the job to the successor stage, or mark it available if terminal."""
        if self.stage.is_terminal:
            await self.store.mark_available(job.id)
            return

        forwarded = job.model_copy(update={"previous_workspace": f"{workspace}/"})
        await self.store.advance(job.id, self.stage.successor, encode_job(forwarded))
