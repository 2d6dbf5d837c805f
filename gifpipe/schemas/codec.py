"""JSON codec for job descriptors published on the work bus."""

from pydantic import ValidationError

from gifpipe.errors import CodecError
from gifpipe.schemas.job import JobDescriptor


def encode_job(job: JobDescriptor) -> str:
    """Serialize a job to JSON text, keeping empty optional fields."""
    return job.model_dump_json()


def decode_job(data: str | bytes) -> JobDescriptor:
    """Deserialize a bus payload.

    Only submitted jobs travel on the bus, so a payload without an id is
    rejected like any other malformed one.

    Raises:
        CodecError: If the payload is not valid JSON, not a valid job, or
            carries no job id.
    """
    try:
        job = JobDescriptor.model_validate_json(data)
    except ValidationError as e:
        raise CodecError(f"undecodable job payload: {e}") from e
    if not job.id:
        raise CodecError("undecodable job payload: missing job id")
    return job
