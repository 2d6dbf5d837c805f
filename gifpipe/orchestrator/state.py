"""Job status vocabulary and channel naming.

A job moves strictly forward through the registry order:

    pending <stage> -> <stage>-ifying -> pending <next> -> ... -> available

Any failure moves it to failed. Both available and failed are terminal.
"""

AVAILABLE = "available"
FAILED = "failed"


def pending_status(stage: str) -> str:
    """Status of a job waiting on a stage's channel."""
    return f"pending {stage}"


def in_progress_status(stage: str) -> str:
    """Status of a job a stage worker has picked up."""
    return f"{stage}-ifying"


def queue_name(stage: str) -> str:
    """Bus channel a stage worker listens on."""
    return f"{stage}-queue"
