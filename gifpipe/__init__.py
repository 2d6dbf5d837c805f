"""gifpipe - turn video URLs into looping GIFs through a staged worker pipeline.

This module provides logging setup and startup validation of the external
tools each stage shells out to. Call validate_dependencies() before a
worker starts taking jobs.
"""

import logging
import shutil

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide log format at the given level."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def validate_dependencies(tools: list[str]) -> None:
    """Validate that the given executables are available.

    Args:
        tools: Executable names or absolute paths a stage needs.

    Raises:
        RuntimeError: If any tool cannot be found.
    """
    missing = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        raise RuntimeError(
            f"Required tools not found: {', '.join(missing)}.\n"
            "Install them or point the tools section of config.yaml at them."
        )
    for tool in tools:
        logger.info(f"{tool} validated: {shutil.which(tool)}")
