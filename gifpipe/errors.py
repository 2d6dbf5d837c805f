"""Exception types raised across the pipeline."""


class GifpipeError(Exception):
    """Base class for gifpipe errors."""


class UnknownStageError(GifpipeError):
    """Raised when a stage name is not in the registry."""


class BusError(GifpipeError):
    """Raised when the work bus cannot subscribe or the transport drops."""


class CodecError(GifpipeError):
    """Raised when a bus payload cannot be decoded into a job."""


class StageError(GifpipeError):
    """Raised by a stage processor; the message becomes the job's failure description."""


class ParamsError(GifpipeError):
    """Raised when submission parameters fail validation.

    Carries every problem found, not just the first.
    """

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
