"""Encode stage: stitch frames into a GIF with GraphicsMagick and optimize it with gifsicle."""

import logging
from pathlib import Path

from gifpipe.config import ToolsConfig
from gifpipe.errors import StageError
from gifpipe.pipeline.base import StageProcessor, require_output, run_tool
from gifpipe.schemas.job import JobDescriptor

logger = logging.getLogger(__name__)


def gif_filename(job_id: str) -> str:
    return f"{job_id}.gif"


class EncodeProcessor(StageProcessor):
    """Reads <previous>/*.png and writes <workspace>/<id>.gif.

    gm writes the unoptimized GIF to stdout, which is fed to gifsicle.
    """

    def __init__(self, tools: ToolsConfig):
        self.tools = tools

    def required_tools(self) -> list[str]:
        return [self.tools.gm, self.tools.gifsicle]

    def convert_command(self, frames: list[Path]) -> list[str]:
        return [
            self.tools.gm, "convert",
            "+repage",
            "-fuzz", "1.6%",
            "-delay", "4",
            "-loop", "0",
            *[str(frame) for frame in frames],
            "gif:-",
        ]

    def optimize_command(self, gif_path: Path) -> list[str]:
        return [self.tools.gifsicle, "-O3", "--colors", "256", "--output", str(gif_path)]

    async def run(self, job: JobDescriptor, workspace: Path) -> None:
        frames = sorted(Path(job.previous_workspace).glob("*.png"))
        if not frames:
            raise StageError(f"no frames found in {job.previous_workspace}")

        gif_path = workspace / gif_filename(job.id)
        logger.info(f"Job {job.id}: encoding {len(frames)} frames")
        raw_gif = await run_tool(self.convert_command(frames))
        await run_tool(self.optimize_command(gif_path), input=raw_gif)
        require_output(gif_path)
