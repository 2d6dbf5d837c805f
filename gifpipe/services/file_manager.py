"""
Workspace management for gifpipe.

Handles per-job, per-stage scratch directories with path traversal protection.
"""
import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """
    Manage scratch directories for pipeline stages.

    Creates structured directories:
    - {base_dir}/{job_id}/{stage}/ - one per stage a job passes through

    Implements path traversal protection so a job id can never place a
    workspace outside base_dir.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).resolve()

    def job_dir(self, job_id: str) -> Path:
        """
        Resolve the directory holding all of a job's stage workspaces.

        Raises:
            ValueError: If job_id is empty or escapes base_dir
        """
        job_dir = (self.base_dir / job_id).resolve()

        if not job_id or not job_dir.is_relative_to(self.base_dir) or job_dir == self.base_dir:
            raise ValueError(f"Invalid job workspace path for id {job_id!r}")

        return job_dir

    def create(self, job_id: str, stage: str) -> Path:
        """
        Create (or reuse) the workspace for one stage of a job.

        Args:
            job_id: Job id
            stage: Stage name

        Returns:
            Path to {base_dir}/{job_id}/{stage}

        Raises:
            ValueError: If the path escapes base_dir
            OSError: If the directory cannot be created
        """
        workspace = (self.job_dir(job_id) / stage).resolve()
        if not workspace.is_relative_to(self.base_dir):
            raise ValueError(f"Invalid stage workspace path for stage {stage!r}")

        workspace.mkdir(parents=True, exist_ok=True)
        return workspace

    def remove_job(self, job_id: str) -> None:
        """Delete every workspace of a job. Errors are logged, not raised."""
        try:
            shutil.rmtree(self.job_dir(job_id))
        except (OSError, ValueError) as e:
            logger.error(f"Couldn't remove old directory for {job_id}: {e}")
