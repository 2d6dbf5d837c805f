"""Abstract base class for stage processors.

A processor receives the job descriptor and the workspace the coordinator
created for it. It either leaves its declared output on disk and returns, or
raises StageError with a description the coordinator stores verbatim.
"""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from gifpipe.errors import StageError
from gifpipe.schemas.job import JobDescriptor

logger = logging.getLogger(__name__)


class StageProcessor(ABC):
    """Interface every stage processor implements."""

    @abstractmethod
    async def run(self, job: JobDescriptor, workspace: Path) -> None:
        """Transform the previous stage's output into this stage's output.

        Args:
            job: Descriptor of the job; previous_workspace points at the
                 input written by the last completed stage.
            workspace: Empty-or-reused directory owned by this stage.

        Raises:
            StageError: If the tool fails or its output is missing.
        """
        ...

    def required_tools(self) -> list[str]:
        """Executables that must exist before a worker runs this stage."""
        return []


async def run_tool(cmd: list[str], input: Optional[bytes] = None) -> bytes:
    """Run an external tool as a child process and return its stdout.

    The event loop keeps receiving while the tool runs, and a stalled tool
    holds up only the task awaiting it. Cancelling that task kills the tool.

    Raises:
        StageError: With the tool's error and combined output on failure.
    """
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise StageError(f"{cmd[0]} not found: {e}") from e

    try:
        stdout, stderr = await process.communicate(input)
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
        await process.wait()
        raise

    if process.returncode != 0:
        error = subprocess.CalledProcessError(process.returncode, cmd, stdout, stderr)
        detail = (stdout + stderr).decode("utf-8", errors="replace").strip()
        raise StageError(f"{error}. {detail[:2000]}")
    return stdout


def require_output(path: Path) -> Path:
    """Verify a processor's declared output exists."""
    if not path.exists():
        raise StageError(f"expected output missing: {path}")
    return path
