"""CLI commands for gifpipe using Typer and Rich.

Implements:
- worker: Run the worker process for one pipeline stage
- submit: Validate and queue a new job
- status: Show a job's status record
- list: List available GIFs
"""

import asyncio
import logging
from typing import Optional

import typer
from redis.exceptions import RedisError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from gifpipe import configure_logging, validate_dependencies
from gifpipe.config import Settings, load_settings
from gifpipe.errors import BusError, ParamsError
from gifpipe.orchestrator.registry import StageRegistry, build_registry
from gifpipe.orchestrator.state import AVAILABLE, FAILED
from gifpipe.orchestrator.submission import submit_job
from gifpipe.orchestrator.worker import Worker
from gifpipe.schemas.params import validate_params
from gifpipe.services.file_manager import WorkspaceManager
from gifpipe.services.record_store import JobRecordStore
from gifpipe.services.redis_client import create_redis
from gifpipe.services.work_bus import WorkBus

app = typer.Typer(name="gifpipe", help="Turn video URLs into looping GIFs")
console = Console()
logger = logging.getLogger(__name__)


def _startup() -> Settings:
    settings = load_settings()
    configure_logging(settings.logging.level)
    return settings


@app.command()
def worker(
    stage: str = typer.Argument(..., help="Stage to serve (download, extract-frames, encode, finalize)"),
):
    """Run the worker process for one stage.

    Subscribes to <stage>-queue and processes every job published there
    until the Redis connection is lost.
    """
    settings = _startup()
    registry = build_registry(settings)

    if stage not in registry:
        console.print(f"[red]Error:[/red] Unknown stage: {stage}")
        console.print(f"Allowed: {', '.join(registry.names())}")
        raise typer.Exit(code=1)

    # Fail-fast dependency validation
    try:
        validate_dependencies(registry.get(stage).processor.required_tools())
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    try:
        asyncio.run(_worker_async(settings, registry, stage))
    except BusError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print()
        console.print(f"[yellow]Worker {stage} stopped.[/yellow]")
        raise typer.Exit(code=130)


async def _worker_async(settings: Settings, registry: StageRegistry, stage: str):
    """Async implementation of worker command."""
    client = create_redis(settings.redis)
    try:
        stage_worker = Worker(
            stage,
            registry,
            JobRecordStore(client, ttl=settings.worker.status_ttl),
            WorkBus(client),
            WorkspaceManager(settings.worker.dir),
        )
        console.print(f"[green]Worker {stage} listening on {stage}-queue[/green]")
        await stage_worker.run()
    finally:
        await client.aclose()


@app.command()
def submit(
    url: str = typer.Argument(..., help="Source video URL"),
    start: Optional[str] = typer.Option(None, "--start", help="Start offset in seconds"),
    dur: Optional[str] = typer.Option(None, "--dur", help="Duration in seconds"),
    cx: Optional[str] = typer.Option(None, "--cx", help="Crop x"),
    cy: Optional[str] = typer.Option(None, "--cy", help="Crop y"),
    cw: Optional[str] = typer.Option(None, "--cw", help="Crop width"),
    ch: Optional[str] = typer.Option(None, "--ch", help="Crop height"),
):
    """Validate parameters and queue a new job on the first stage."""
    settings = _startup()
    params = {"url": url, "start": start, "dur": dur, "cx": cx, "cy": cy, "cw": cw, "ch": ch}
    params = {key: value for key, value in params.items() if value is not None}

    try:
        job = validate_params(params, settings.submission.allowed_hosts)
    except ParamsError as e:
        for problem in e.errors:
            console.print(f"[red]Error:[/red] {problem}")
        raise typer.Exit(code=1)

    try:
        job_id = asyncio.run(_submit_async(settings, job))
    except RedisError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    console.print(f"[green]Created job:[/green] {job_id}")


async def _submit_async(settings: Settings, job) -> str:
    """Async implementation of submit command."""
    client = create_redis(settings.redis)
    try:
        store = JobRecordStore(client, ttl=settings.worker.status_ttl)
        return await submit_job(store, job, build_registry(settings).first)
    finally:
        await client.aclose()


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Job id"),
):
    """Show a job's status record."""
    settings = _startup()
    try:
        record, ttl = asyncio.run(_status_async(settings, job_id))
    except RedisError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    if record is None:
        console.print(f"[red]Error:[/red] Job not found: {job_id}")
        raise typer.Exit(code=1)

    job_status = record.get("status", "")
    status_color = _get_status_color(job_status)
    info_lines = [
        f"[bold]ID:[/bold] {job_id}",
        f"[bold]Origin:[/bold] {record.get('origin', '')}",
        f"[bold]Status:[/bold] [{status_color}]{job_status}[/{status_color}]",
    ]
    if job_status == FAILED and record.get("description"):
        info_lines.append(f"[bold]Error:[/bold] [red]{record['description']}[/red]")
    if ttl >= 0:
        info_lines.append(f"[bold]Expires In:[/bold] {ttl}s")
    else:
        info_lines.append("[bold]Expires In:[/bold] never")

    console.print(Panel("\n".join(info_lines), title="[bold]Job Status[/bold]", border_style="blue"))


async def _status_async(settings: Settings, job_id: str):
    """Async implementation of status command."""
    client = create_redis(settings.redis)
    try:
        store = JobRecordStore(client, ttl=settings.worker.status_ttl)
        return await store.get(job_id), await store.ttl_of(job_id)
    finally:
        await client.aclose()


@app.command(name="list")
def list_gifs():
    """List available GIFs."""
    settings = _startup()
    try:
        images = asyncio.run(_list_async(settings))
    except RedisError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    if not images:
        console.print("[yellow]No images yet[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("GIF")
    for image in images:
        table.add_row(image, str(settings.site.gif_dir / f"{image}.gif"))
    console.print(table)


async def _list_async(settings: Settings) -> list[str]:
    """Async implementation of list command."""
    client = create_redis(settings.redis)
    try:
        return await JobRecordStore(client).active_jobs()
    finally:
        await client.aclose()


def _get_status_color(status: str) -> str:
    """Get Rich color for a job status.

    Color coding:
    - available: green
    - failed: red
    - in-progress states: yellow
    - pending: dim
    """
    if status == AVAILABLE:
        return "green"
    elif status == FAILED:
        return "red"
    elif status.endswith("-ifying"):
        return "yellow"
    elif status.startswith("pending"):
        return "dim"
    else:
        return "white"
