"""Job status records in Redis.

Each job has a hash at gif:{id} with fields status, description and origin.
While a job is in flight the hash carries a TTL that every transition
refreshes; terminal transitions PERSIST it. Completed ids are appended to the
active_images list. Every multi-command update runs as one MULTI/EXEC
transaction so concurrent tasks never interleave partial writes to a key.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from gifpipe.orchestrator.state import (
    AVAILABLE,
    FAILED,
    in_progress_status,
    pending_status,
    queue_name,
)

logger = logging.getLogger(__name__)

ACTIVE_IMAGES_KEY = "active_images"
ID_COUNTER_KEY = "autoincr:gif"


def record_key(job_id: str) -> str:
    return f"gif:{job_id}"


class JobRecordStore:
    """Reads and transitions job status records.

    Args:
        client: Shared asyncio Redis client (decode_responses=True).
        ttl: Lifetime in seconds of a non-terminal record.
    """

    def __init__(self, client: redis.Redis, ttl: int = 3600):
        self.client = client
        self.ttl = ttl

    async def next_id(self) -> str:
        """Allocate a fresh job id."""
        return str(await self.client.incr(ID_COUNTER_KEY))

    async def create(self, job_id: str, origin: str, first_stage: str, payload: str) -> None:
        """Record a new job as pending its first stage and publish it there."""
        key = record_key(job_id)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(key, "origin", origin)
            pipe.hset(key, "status", pending_status(first_stage))
            pipe.expire(key, self.ttl)
            pipe.publish(queue_name(first_stage), payload)
            await pipe.execute()

    async def mark_in_progress(self, job_id: str, stage: str) -> None:
        key = record_key(job_id)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(key, "status", in_progress_status(stage))
            pipe.expire(key, self.ttl)
            await pipe.execute()

    async def advance(self, job_id: str, successor: str, payload: str) -> None:
        """Mark a job pending its successor and hand the payload to it."""
        key = record_key(job_id)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(key, "status", pending_status(successor))
            pipe.expire(key, self.ttl)
            pipe.publish(queue_name(successor), payload)
            await pipe.execute()

    async def mark_available(self, job_id: str) -> None:
        """Terminal success: index the job and persist its record."""
        key = record_key(job_id)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.rpush(ACTIVE_IMAGES_KEY, job_id)
            pipe.hset(key, "status", AVAILABLE)
            pipe.persist(key)
            await pipe.execute()

    async def mark_failed(self, job_id: str, stage: str, description: str) -> bool:
        """Terminal failure: record the description and persist the record.

        Best effort. If the write itself fails it is logged and the job keeps
        whatever status it last reached.

        Returns:
            True if the failure was recorded.
        """
        key = record_key(job_id)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping={"status": FAILED, "description": description})
                pipe.persist(key)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed on trying to update failure for {job_id} ({stage}): {e}. Moving on")
            return False
        logger.error(f"Marking {job_id} as failed in stage {stage}: {description}")
        return True

    async def get(self, job_id: str) -> Optional[dict[str, str]]:
        """Return the record's fields, or None if it does not exist."""
        record = await self.client.hgetall(record_key(job_id))
        return record or None

    async def ttl_of(self, job_id: str) -> int:
        """Remaining TTL in seconds; -1 when persisted, -2 when missing."""
        return await self.client.ttl(record_key(job_id))

    async def active_jobs(self) -> list[str]:
        """Ids of available jobs, oldest first."""
        return await self.client.lrange(ACTIVE_IMAGES_KEY, 0, -1)
