"""Shared fixtures: an in-memory Redis double and pipeline test stages.

FakeRedis implements the small command subset the record store, work bus
and API use. Transactions apply all queued commands or none, TTLs are
tracked per key, and every PUBLISH is recorded so tests can assert on what
reached each channel.
"""

import asyncio
from collections import defaultdict
from pathlib import Path

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gifpipe.config import Settings
from gifpipe.orchestrator.registry import Stage, StageRegistry
from gifpipe.pipeline.base import StageProcessor
from gifpipe.errors import StageError
from gifpipe.services.file_manager import WorkspaceManager
from gifpipe.services.record_store import JobRecordStore
from gifpipe.services.work_bus import WorkBus


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.commands = []
        return False

    def _queue(self, name, *args, **kwargs):
        self.commands.append((name, args, kwargs))
        return self

    def hset(self, key, field=None, value=None, mapping=None):
        return self._queue("hset", key, field, value, mapping=mapping)

    def expire(self, key, seconds):
        return self._queue("expire", key, seconds)

    def persist(self, key):
        return self._queue("persist", key)

    def rpush(self, key, *values):
        return self._queue("rpush", key, *values)

    def publish(self, channel, message):
        return self._queue("publish", channel, message)

    async def execute(self):
        for name, _, _ in self.commands:
            if name in self.redis.fail_commands:
                raise RedisConnectionError(f"connection refused during {name.upper()}")
        results = [self.redis._apply(name, *args, **kwargs) for name, args, kwargs in self.commands]
        self.redis.transactions.append([name for name, _, _ in self.commands])
        self.commands = []
        return results


class FakePubSub:
    def __init__(self, redis):
        self.redis = redis
        self.channels = []
        self.closed = False

    async def subscribe(self, *channels):
        if self.redis.fail_subscribe:
            raise RedisConnectionError("Error 111 connecting to redis. Connection refused.")
        self.channels.extend(channels)

    async def listen(self):
        for index, channel in enumerate(self.channels, start=1):
            yield {"type": "subscribe", "pattern": None, "channel": channel, "data": index}
        for item in self.redis.feed:
            if isinstance(item, BaseException):
                raise item
            channel, data = item
            yield {"type": "message", "pattern": None, "channel": channel, "data": data}
            await asyncio.sleep(0)

    async def aclose(self):
        self.closed = True


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis with decode_responses=True."""

    def __init__(self):
        self.hashes = defaultdict(dict)
        self.lists = defaultdict(list)
        self.ttls = {}
        self.counters = defaultdict(int)
        self.published = []
        self.transactions = []
        self.fail_commands = set()
        self.fail_subscribe = False
        self.feed = []
        self.pubsubs = []
        self.closed = False

    def _apply(self, name, *args, **kwargs):
        if name == "hset":
            key, field, value = args
            mapping = dict(kwargs.get("mapping") or {})
            if field is not None:
                mapping[field] = value
            self.hashes[key].update({k: str(v) for k, v in mapping.items()})
            return len(mapping)
        if name == "expire":
            key, seconds = args
            if key not in self.hashes and key not in self.lists:
                return 0
            self.ttls[key] = seconds
            return 1
        if name == "persist":
            (key,) = args
            return 1 if self.ttls.pop(key, None) is not None else 0
        if name == "rpush":
            key, *values = args
            self.lists[key].extend(str(v) for v in values)
            return len(self.lists[key])
        if name == "publish":
            channel, message = args
            self.published.append((channel, message))
            return 1
        raise NotImplementedError(name)

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def pubsub(self):
        pubsub = FakePubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub

    async def incr(self, key):
        if "incr" in self.fail_commands:
            raise RedisConnectionError("connection refused during INCR")
        self.counters[key] += 1
        return self.counters[key]

    async def hgetall(self, key):
        if "hgetall" in self.fail_commands:
            raise RedisConnectionError("connection refused during HGETALL")
        return dict(self.hashes.get(key, {}))

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        end = len(items) if end == -1 else end + 1
        return list(items[start:end])

    async def ttl(self, key):
        if key not in self.hashes and key not in self.lists:
            return -2
        return self.ttls.get(key, -1)

    async def aclose(self):
        self.closed = True

    def published_to(self, channel):
        return [message for published_channel, message in self.published if published_channel == channel]


class RecordingProcessor(StageProcessor):
    """Test processor that records calls and optionally fails or waits."""

    def __init__(self, fail_with: str | None = None, gate: asyncio.Event | None = None):
        self.fail_with = fail_with
        self.gate = gate
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def run(self, job, workspace: Path) -> None:
        self.calls.append((job, workspace))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_with is not None:
                raise StageError(self.fail_with)
            (workspace / "out").write_text(job.id)
        finally:
            self.active -= 1


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return JobRecordStore(fake_redis, ttl=3600)


@pytest.fixture
def bus(fake_redis):
    return WorkBus(fake_redis)


@pytest.fixture
def workspaces(tmp_path):
    return WorkspaceManager(tmp_path / "work")


@pytest.fixture
def processors():
    return {name: RecordingProcessor() for name in ("S1", "S2", "S3")}


@pytest.fixture
def registry(processors):
    return StageRegistry([
        Stage("S1", processors["S1"], "S2"),
        Stage("S2", processors["S2"], "S3"),
        Stage("S3", processors["S3"]),
    ])


@pytest.fixture
def settings(tmp_path):
    return Settings(
        worker={"dir": str(tmp_path / "work"), "status_ttl": 3600},
        site={"gif_dir": str(tmp_path / "gifs")},
    )
