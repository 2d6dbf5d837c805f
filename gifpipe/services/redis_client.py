"""Redis client construction.

One client (and its connection pool) is built per process and shared by the
record store, the work bus and every in-flight job task. Commands are never
retried and a dropped pub/sub connection is never re-established: a lost
EXEC reply or subscription surfaces as a RedisError.
"""

import logging

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff

from gifpipe.config import RedisConfig

logger = logging.getLogger(__name__)


def create_redis(config: RedisConfig) -> redis.Redis:
    """Create a pooled asyncio Redis client that returns str values."""
    logger.info(f"Getting redis pool for {config.host}:{config.port}/{config.db}")
    return redis.Redis(
        host=config.host,
        port=config.port,
        db=config.db,
        decode_responses=True,
        health_check_interval=30,
        retry=Retry(NoBackoff(), 0),
    )
