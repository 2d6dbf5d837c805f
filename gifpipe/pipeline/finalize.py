"""Finalize stage: publish the GIF and clean up the job's workspaces."""

import asyncio
import logging
import shutil
from pathlib import Path

from gifpipe.errors import StageError
from gifpipe.pipeline.base import StageProcessor
from gifpipe.pipeline.encode import gif_filename
from gifpipe.schemas.job import JobDescriptor
from gifpipe.services.file_manager import WorkspaceManager

logger = logging.getLogger(__name__)


class FinalizeProcessor(StageProcessor):
    """Moves <previous>/<id>.gif to <gif_dir>/<id>.gif, then removes <work_dir>/<id>.

    Failing to clean up is logged but does not fail the job.
    """

    def __init__(self, gif_dir: str | Path, work_dir: str | Path):
        self.gif_dir = Path(gif_dir)
        self.workspaces = WorkspaceManager(work_dir)

    def published_path(self, job_id: str) -> Path:
        return self.gif_dir / gif_filename(job_id)

    async def run(self, job: JobDescriptor, workspace: Path) -> None:
        source = Path(job.previous_workspace) / gif_filename(job.id)
        target = self.published_path(job.id)
        try:
            self.gif_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.move, str(source), str(target))
        except OSError as e:
            raise StageError(f"could not publish {source}: {e}") from e

        logger.info(f"Job {job.id}: published {target}")
        self.workspaces.remove_job(job.id)
