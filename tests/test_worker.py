"""Stage worker tests: state transitions, handoff, failure handling and concurrency."""

import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gifpipe.errors import BusError, UnknownStageError
from gifpipe.orchestrator.registry import Stage, StageRegistry
from gifpipe.orchestrator.submission import submit_job
from gifpipe.orchestrator.worker import Worker
from gifpipe.schemas.codec import decode_job, encode_job
from gifpipe.schemas.job import JobDescriptor
from gifpipe.services.record_store import ACTIVE_IMAGES_KEY

from conftest import RecordingProcessor

URL = "https://www.youtube.com/watch?v=X"


def three_stages(s1=None, s2=None, s3=None):
    return StageRegistry([
        Stage("S1", s1 or RecordingProcessor(), "S2"),
        Stage("S2", s2 or RecordingProcessor(), "S3"),
        Stage("S3", s3 or RecordingProcessor()),
    ])


def make_worker(stage, registry, store, bus, workspaces):
    return Worker(stage, registry, store, bus, workspaces)


async def run_pipeline(registry, store, bus, workspaces, fake_redis):
    """Feed each stage the message its predecessor published, in order."""
    for name in registry.names():
        messages = fake_redis.published_to(f"{name}-queue")
        if not messages:
            return
        worker = make_worker(name, registry, store, bus, workspaces)
        await worker.process_message(messages[-1])


def test_unknown_stage_rejected_at_construction(registry, store, bus, workspaces):
    with pytest.raises(UnknownStageError):
        make_worker("nope", registry, store, bus, workspaces)


@pytest.mark.asyncio
async def test_first_stage_hands_off_to_second(registry, store, bus, workspaces, fake_redis, processors):
    fake_redis.counters["autoincr:gif"] = 41
    job_id = await submit_job(store, JobDescriptor(origin_url=URL), registry.first)
    assert job_id == "42"
    assert (await store.get("42"))["status"] == "pending S1"

    worker = make_worker("S1", registry, store, bus, workspaces)
    await worker.process_message(fake_redis.published_to("S1-queue")[0])

    assert (await store.get("42"))["status"] == "pending S2"
    assert await store.ttl_of("42") == 3600

    [message] = fake_redis.published_to("S2-queue")
    forwarded = decode_job(message)
    assert forwarded.previous_workspace == f"{workspaces.base_dir}/42/S1/"
    assert forwarded.id == "42"
    assert forwarded.origin_url == URL
    assert not forwarded.has_crop

    [(seen_job, workspace)] = processors["S1"].calls
    assert seen_job.previous_workspace == ""
    assert workspace == workspaces.base_dir / "42" / "S1"


@pytest.mark.asyncio
async def test_full_pipeline_ends_available(registry, store, bus, workspaces, fake_redis, processors):
    job_id = await submit_job(store, JobDescriptor(origin_url=URL), registry.first)

    await run_pipeline(registry, store, bus, workspaces, fake_redis)

    assert (await store.get(job_id))["status"] == "available"
    assert await store.ttl_of(job_id) == -1
    assert fake_redis.lists[ACTIVE_IMAGES_KEY].count(job_id) == 1
    assert [len(p.calls) for p in processors.values()] == [1, 1, 1]

    s3_job, _ = processors["S3"].calls[0]
    assert s3_job.previous_workspace == f"{workspaces.base_dir}/{job_id}/S2/"


@pytest.mark.asyncio
async def test_status_is_in_progress_while_processor_runs(store, bus, workspaces, fake_redis):
    seen = []

    class ObservingProcessor(RecordingProcessor):
        async def run(self, job, workspace):
            seen.append((await store.get(job.id))["status"])
            seen.append(await store.ttl_of(job.id))
            await super().run(job, workspace)

    registry = three_stages(s2=ObservingProcessor())
    await submit_job(store, JobDescriptor(origin_url=URL), registry.first)

    await run_pipeline(registry, store, bus, workspaces, fake_redis)

    assert seen == ["S2-ifying", 3600]


@pytest.mark.asyncio
async def test_processor_failure_is_terminal(registry, store, bus, workspaces, fake_redis, processors):
    processors["S2"].fail_with = "exit status 1. ERROR: video unavailable"
    job_id = await submit_job(store, JobDescriptor(origin_url=URL), registry.first)

    await run_pipeline(registry, store, bus, workspaces, fake_redis)

    record = await store.get(job_id)
    assert record["status"] == "failed"
    assert record["description"] == "exit status 1. ERROR: video unavailable"
    assert await store.ttl_of(job_id) == -1
    assert fake_redis.published_to("S3-queue") == []
    assert processors["S3"].calls == []
    assert fake_redis.lists[ACTIVE_IMAGES_KEY] == []


@pytest.mark.asyncio
async def test_failure_description_never_empty(store, bus, workspaces, fake_redis):
    class SilentFailure(RecordingProcessor):
        async def run(self, job, workspace):
            raise RuntimeError()

    registry = three_stages(s1=SilentFailure())
    job_id = await submit_job(store, JobDescriptor(origin_url=URL), registry.first)

    await run_pipeline(registry, store, bus, workspaces, fake_redis)

    assert (await store.get(job_id))["description"] == "RuntimeError"


@pytest.mark.asyncio
async def test_acquire_failure_marks_failed_without_running(
    registry, store, bus, workspaces, fake_redis, processors, monkeypatch
):
    job = JobDescriptor(id="5", origin_url=URL)
    await store.create("5", URL, "S1", encode_job(job))

    async def refuse(job_id, stage):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(store, "mark_in_progress", refuse)
    await make_worker("S1", registry, store, bus, workspaces).process_message(encode_job(job))

    record = await store.get("5")
    assert record["status"] == "failed"
    assert record["description"] == "connection refused"
    assert processors["S1"].calls == []
    assert fake_redis.published_to("S2-queue") == []


@pytest.mark.asyncio
async def test_workspace_failure_is_job_failure(registry, store, bus, workspaces, fake_redis, processors):
    job = JobDescriptor(id="..", origin_url=URL)

    await make_worker("S1", registry, store, bus, workspaces).process_message(encode_job(job))

    assert fake_redis.hashes["gif:.."]["status"] == "failed"
    assert "Invalid job workspace path" in fake_redis.hashes["gif:.."]["description"]
    assert processors["S1"].calls == []


@pytest.mark.asyncio
async def test_advance_failure_is_job_failure(registry, store, bus, workspaces, fake_redis):
    job_id = await submit_job(store, JobDescriptor(origin_url=URL), registry.first)
    fake_redis.fail_commands.add("publish")

    await make_worker("S1", registry, store, bus, workspaces).process_message(
        fake_redis.published_to("S1-queue")[0]
    )

    record = await store.get(job_id)
    assert record["status"] == "failed"
    assert "PUBLISH" in record["description"]
    assert fake_redis.published_to("S2-queue") == []


@pytest.mark.asyncio
async def test_failure_recording_failure_strands_job(
    registry, store, bus, workspaces, fake_redis, processors, caplog
):
    processors["S1"].fail_with = "tool crashed"
    job_id = await submit_job(store, JobDescriptor(origin_url=URL), registry.first)
    fake_redis.fail_commands.add("persist")

    await make_worker("S1", registry, store, bus, workspaces).process_message(
        fake_redis.published_to("S1-queue")[0]
    )

    assert (await store.get(job_id))["status"] == "S1-ifying"
    assert "Failed on trying to update failure" in caplog.text


@pytest.mark.asyncio
async def test_undecodable_message_is_dropped(registry, store, bus, workspaces, fake_redis, processors, caplog):
    await make_worker("S1", registry, store, bus, workspaces).process_message(b"{not json")

    assert processors["S1"].calls == []
    assert fake_redis.transactions == []
    assert "dropping message" in caplog.text


@pytest.mark.asyncio
async def test_message_without_id_leaves_store_untouched(registry, store, bus, workspaces, fake_redis, processors):
    await make_worker("S1", registry, store, bus, workspaces).process_message(json.dumps({"origin_url": URL}))

    assert processors["S1"].calls == []
    assert fake_redis.transactions == []
    assert dict(fake_redis.hashes) == {}


@pytest.mark.asyncio
async def test_crop_fields_forwarded_unchanged(registry, store, bus, workspaces, fake_redis):
    job = JobDescriptor(
        origin_url=URL, crop_x="10", crop_y="10", crop_width="100", crop_height="80", duration="3"
    )
    job_id = await submit_job(store, job, registry.first)

    await make_worker("S1", registry, store, bus, workspaces).process_message(
        fake_redis.published_to("S1-queue")[0]
    )

    payload = json.loads(fake_redis.published_to("S2-queue")[0])
    assert payload["id"] == job_id
    assert (payload["crop_x"], payload["crop_y"], payload["crop_width"], payload["crop_height"]) == (
        "10", "10", "100", "80"
    )
    assert payload["duration"] == "3"


@pytest.mark.asyncio
async def test_duplicate_delivery_runs_twice(registry, store, bus, workspaces, fake_redis, processors):
    """No per-job lock exists: two copies of job 7 run at the same time and both advance."""
    gate = asyncio.Event()
    processor = processors["S1"]
    processor.gate = gate

    payload = encode_job(JobDescriptor(id="7", origin_url=URL))
    await store.create("7", URL, "S1", payload)
    worker = make_worker("S1", registry, store, bus, workspaces)

    first = worker.dispatch(payload)
    second = worker.dispatch(payload)
    while processor.active < 2:
        await asyncio.sleep(0)
    assert (await store.get("7"))["status"] == "S1-ifying"

    gate.set()
    await asyncio.gather(first, second)

    assert len(processor.calls) == 2
    assert processor.max_active == 2
    assert len(fake_redis.published_to("S2-queue")) == 2
    assert (await store.get("7"))["status"] == "pending S2"


@pytest.mark.asyncio
async def test_slow_job_does_not_block_intake(registry, store, bus, workspaces, fake_redis, processors):
    gate = asyncio.Event()
    slow = processors["S1"]
    slow.gate = gate

    for job_id in ("1", "2"):
        await store.create(job_id, URL, "S1", encode_job(JobDescriptor(id=job_id, origin_url=URL)))
    fake_redis.feed = [("S1-queue", message) for message in fake_redis.published_to("S1-queue")]
    worker = make_worker("S1", registry, store, bus, workspaces)

    run = asyncio.create_task(worker.run())
    while slow.active < 2:
        await asyncio.sleep(0)
    assert not run.done()

    gate.set()
    await run

    assert (await store.get("1"))["status"] == "pending S2"
    assert (await store.get("2"))["status"] == "pending S2"
    assert fake_redis.pubsubs[0].channels == ["S1-queue"]
    assert fake_redis.pubsubs[0].closed


@pytest.mark.asyncio
async def test_run_logs_subscription_confirmation(registry, store, bus, workspaces, caplog):
    caplog.set_level("INFO")

    await make_worker("S2", registry, store, bus, workspaces).run()

    assert "S2-queue: subscribe 1" in caplog.text


@pytest.mark.asyncio
async def test_subscribe_failure_is_fatal(registry, store, bus, workspaces, fake_redis):
    fake_redis.fail_subscribe = True

    with pytest.raises(BusError, match="Can't subscribe to the S1-queue"):
        await make_worker("S1", registry, store, bus, workspaces).run()


@pytest.mark.asyncio
async def test_transport_error_terminates_worker(registry, store, bus, workspaces, fake_redis, processors):
    fake_redis.feed = [
        ("S1-queue", encode_job(JobDescriptor(id="1", origin_url=URL))),
        RedisConnectionError("Connection closed by server."),
        ("S1-queue", encode_job(JobDescriptor(id="2", origin_url=URL))),
    ]
    worker = make_worker("S1", registry, store, bus, workspaces)

    with pytest.raises(BusError, match="lost connection on S1-queue"):
        await worker.run()
    await worker.drain()

    assert fake_redis.pubsubs[0].closed
    assert [job.id for job, _ in processors["S1"].calls] == ["1"]
