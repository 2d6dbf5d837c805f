"""Download stage: fetch the source video with youtube-dl."""

import logging
from pathlib import Path

from gifpipe.config import ToolsConfig
from gifpipe.pipeline.base import StageProcessor, require_output, run_tool
from gifpipe.schemas.job import JobDescriptor

logger = logging.getLogger(__name__)


def video_filename(job_id: str) -> str:
    return f"{job_id}.youtube"


class DownloadProcessor(StageProcessor):
    """Writes <workspace>/<id>.youtube plus youtube-dl's info JSON."""

    def __init__(self, tools: ToolsConfig):
        self.tools = tools

    def required_tools(self) -> list[str]:
        return [self.tools.youtube_dl]

    def command(self, job: JobDescriptor, out_file: Path) -> list[str]:
        return [
            self.tools.youtube_dl,
            "--no-progress",
            "--max-filesize", self.tools.max_filesize,
            "--output", str(out_file),
            "--write-info-json",
            "--format", "mp4",
            job.origin_url,
        ]

    async def run(self, job: JobDescriptor, workspace: Path) -> None:
        out_file = workspace / video_filename(job.id)
        logger.info(f"Job {job.id}: downloading {job.origin_url}")
        await run_tool(self.command(job, out_file))
        require_output(out_file)
