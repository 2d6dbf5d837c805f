"""Job submission: assign an id and publish to the first stage."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gifpipe.schemas.codec import encode_job
from gifpipe.schemas.job import JobDescriptor

if TYPE_CHECKING:
    from gifpipe.services.record_store import JobRecordStore

logger = logging.getLogger(__name__)


async def submit_job(store: "JobRecordStore", job: JobDescriptor, first_stage: str) -> str:
    """Allocate an id for a validated job and hand it to the first stage.

    The record is created as pending <first_stage> and the payload is
    published in the same transaction, so a record never exists without its
    first message having been sent.

    Args:
        store: Job record store.
        job: Descriptor from validate_params(); any id it carries is replaced.
        first_stage: Entry stage of the registry.

    Returns:
        The new job id.
    """
    job_id = await store.next_id()
    job = job.model_copy(update={"id": job_id, "previous_workspace": ""})
    await store.create(job_id, job.origin_url, first_stage, encode_job(job))
    logger.info(f"Submitted job {job_id} for {job.origin_url}")
    return job_id
