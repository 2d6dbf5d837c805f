"""API route handlers and Pydantic response schemas."""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Request, Response
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from redis.exceptions import RedisError

from gifpipe.errors import ParamsError
from gifpipe.orchestrator.submission import submit_job
from gifpipe.pipeline.encode import gif_filename
from gifpipe.schemas.params import validate_params

logger = logging.getLogger(__name__)

router = APIRouter()

JobId = Annotated[str, Path(pattern=r"^\d+$")]


class SubmitResponse(BaseModel):
    id: str


class JobStatusResponse(BaseModel):
    status: str
    description: str = ""


@router.get("/")
async def home():
    return {"message": "Home"}


@router.get("/gifs", response_model=dict[str, str])
async def list_gifs(request: Request):
    """List completed GIFs as {id: url}. 204 when none are available yet."""
    store = request.app.state.store
    try:
        images = await store.active_jobs()
    except RedisError as e:
        logger.error(f"getting images: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    if not images:
        logger.info("checking active_images: none yet")
        return Response(status_code=204)

    return {image: f"/gifs/{image}" for image in images}


@router.post("/gifs", status_code=202, response_model=SubmitResponse)
async def create_gif(request: Request, response: Response):
    """Validate a submission and queue it on the first stage.

    Form fields: url (required), start, dur, cx, cy, cw, ch. The four crop
    fields must be passed together.
    """
    form = await request.form()
    settings = request.app.state.settings
    params = {key: value for key, value in form.items() if isinstance(value, str)}

    try:
        job = validate_params(params, settings.submission.allowed_hosts)
    except ParamsError as e:
        return JSONResponse(status_code=400, content={"errors": e.errors})

    try:
        job_id = await submit_job(request.app.state.store, job, request.app.state.first_stage)
    except RedisError as e:
        logger.error(f"adding image to redis: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    response.headers["Location"] = f"/jobs/{job_id}"
    return SubmitResponse(id=job_id)


@router.get("/gifs/{job_id}")
async def show_gif(request: Request, job_id: JobId):
    """Serve a published GIF."""
    path = request.app.state.settings.site.gif_dir / gif_filename(job_id)
    if not path.is_file():
        logger.info(f"checking on disk path: {path} missing")
        raise HTTPException(status_code=404, detail="file doesn't exist")
    return FileResponse(path, media_type="image/gif")


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def show_job(request: Request, job_id: JobId):
    """Report a job's status and, if it failed, why."""
    try:
        record = await request.app.state.store.get(job_id)
    except RedisError as e:
        logger.error(f"getting gif: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    if record is None:
        raise HTTPException(status_code=404, detail="gif doesn't exist")

    return JobStatusResponse(
        status=record.get("status", ""),
        description=record.get("description", ""),
    )
