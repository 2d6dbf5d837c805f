"""Extract-frames stage: split the downloaded video into numbered PNGs with avconv."""

import logging
from pathlib import Path

from gifpipe.config import ToolsConfig
from gifpipe.pipeline.base import StageProcessor, require_output, run_tool
from gifpipe.pipeline.download import video_filename
from gifpipe.schemas.job import JobDescriptor

logger = logging.getLogger(__name__)

FRAME_PATTERN = "%08d.png"
FIRST_FRAME = "00000001.png"


class ExtractFramesProcessor(StageProcessor):
    """Reads <previous>/<id>.youtube and writes <workspace>/00000001.png onwards.

    Crop and trim are applied only when the job asks for them. The crop
    fields arrive all set or all empty, so checking one is enough.
    """

    def __init__(self, tools: ToolsConfig):
        self.tools = tools

    def required_tools(self) -> list[str]:
        return [self.tools.avconv]

    def command(self, job: JobDescriptor, workspace: Path) -> list[str]:
        source = Path(job.previous_workspace) / video_filename(job.id)
        cmd = [self.tools.avconv, "-i", str(source)]
        if job.has_crop:
            cmd += [
                "-vf",
                f"crop={job.crop_width}:{job.crop_height}:{job.crop_x}:{job.crop_y}",
            ]
        if job.duration:
            cmd += ["-ss", job.start or "0", "-t", job.duration]
        cmd.append(str(workspace / FRAME_PATTERN))
        return cmd

    async def run(self, job: JobDescriptor, workspace: Path) -> None:
        logger.info(f"Job {job.id}: extracting frames")
        await run_tool(self.command(job, workspace))
        require_output(workspace / FIRST_FRAME)
