from gifpipe.schemas.codec import decode_job, encode_job
from gifpipe.schemas.job import CROP_FIELDS, JobDescriptor

__all__ = ["CROP_FIELDS", "JobDescriptor", "decode_job", "encode_job"]
