"""Job Commands - run, inspect and manage the enrichment queue"""

import asyncio
import json
from typing import Any, Optional
from uuid import UUID

import typer
from rich.console import Console

from pkp.config.settings import settings
from pkp.core.exceptions import PKPException
from pkp.infra.database import get_database
from pkp.jobs.models import JobType
from pkp.jobs.runner import run_jobs
from pkp.jobs.schemas import JobResponse
from pkp.jobs.store import JobStore

from ..utils.formatting import (
    create_job_panel,
    create_queue_panel,
    create_stats_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Enrichment job queue commands")


async def _with_store(operation):
    database = get_database(settings)
    try:
        async with database.SessionLocal() as session:
            return await operation(JobStore(session, settings))
    finally:
        await database.close()


async def _enqueue(
    owner: str, job_type: str, payload: dict[str, Any], unique: bool
) -> tuple[UUID, bool]:
    async def operation(store: JobStore):
        if unique:
            response = await store.enqueue_unique(owner, job_type, payload)
            return response.job_id, response.deduplicated
        return await store.enqueue(owner, job_type, payload), False

    return await _with_store(operation)


async def _fetch_stats() -> dict[str, Any]:
    async def operation(store: JobStore):
        return (await store.get_stats()).model_dump()

    return await _with_store(operation)


async def _fetch_job(job_id: UUID) -> dict[str, Any] | None:
    async def operation(store: JobStore):
        job = await store.get_job(job_id)
        if job is None:
            return None
        return JobResponse.model_validate(job).model_dump(mode="json")

    return await _with_store(operation)


async def _requeue(job_id: UUID) -> UUID | None:
    return await _with_store(lambda store: store.requeue_failed(job_id))


@app.command("run")
def run(
    batch_limit: Optional[int] = typer.Option(
        None, "--batch-limit", "-n", min=1, help="Maximum jobs to process"
    ),
):
    """⚙️ Process one batch of queued jobs"""
    limit = batch_limit or settings.job_batch_limit
    print_info(f"Processing up to {limit} jobs...")

    try:
        summary = asyncio.run(run_jobs(limit, settings))
    except PKPException as e:
        print_error(f"Run failed: {e.message}")
        raise typer.Exit(1) from None

    if summary.processed == 0:
        print_info("Queue is empty")
        return

    print_success(f"Processed {summary.processed} jobs")
    if summary.failed:
        print_warning(f"{summary.failed} jobs failed permanently")


@app.command("enqueue")
def enqueue(
    job_type: JobType = typer.Argument(..., help="Job type"),
    owner: str = typer.Option(..., "--owner", "-o", help="Owner the job acts for"),
    payload: str = typer.Option(..., "--payload", "-p", help="JSON payload"),
    unique: bool = typer.Option(
        False, "--unique", "-u", help="Reuse an equivalent queued job if one exists"
    ),
):
    """➕ Enqueue a job"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None

    try:
        job_id, deduplicated = asyncio.run(
            _enqueue(owner, job_type.value, payload_data, unique)
        )
    except PKPException as e:
        print_error(f"Failed to enqueue job: {e.message}")
        if e.details:
            console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1) from None

    if deduplicated:
        print_info(f"Equivalent job already queued: {job_id}")
    else:
        print_success(f"Enqueued {job_type.value} job {job_id}")


@app.command("stats")
def stats():
    """📊 Show queue statistics"""
    data = asyncio.run(_fetch_stats())

    console.print(create_stats_table(data))
    console.print(create_queue_panel(data))


@app.command("show")
def show(job_id: UUID = typer.Argument(..., help="Job ID")):
    """🔍 Show a single job"""
    job = asyncio.run(_fetch_job(job_id))
    if job is None:
        print_error(f"Job not found: {job_id}")
        raise typer.Exit(1) from None

    console.print(create_job_panel(job))


@app.command("requeue")
def requeue(job_id: UUID = typer.Argument(..., help="Failed job ID")):
    """🔁 Enqueue a fresh copy of a failed job"""
    new_id = asyncio.run(_requeue(job_id))
    if new_id is None:
        print_error(f"No failed job with id {job_id}")
        raise typer.Exit(1) from None

    print_success(f"Requeued {job_id} as {new_id}")
