"""Jobs Commands - Enqueue and inspect background jobs"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import SpoilsClient, SpoilsError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_job_panel,
    create_jobs_table,
    create_stats_panel,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Background job commands")


@app.command("enqueue")
def enqueue_job(
    task_type: str = typer.Argument(..., help="Registered task type"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON payload"),
    run_at: str | None = typer.Option(
        None, "--run-at", help="Earliest run time (ISO 8601)"
    ),
):
    """➕ Enqueue a job"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None

    if not isinstance(payload_data, dict):
        print_error("Payload must be a JSON object")
        raise typer.Exit(1)

    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            result = client.enqueue_job(task_type, payload_data, run_at)
    except SpoilsError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None

    if result.get("deduplicated"):
        print_warning(
            f"Active job already exists: {result.get('job_id')} ({result.get('status')})"
        )
    else:
        print_success(f"Enqueued {task_type} job {result.get('job_id')}")


@app.command("list")
def list_jobs(
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    task_type: str | None = typer.Option(None, "--type", "-t", help="Filter by task type"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs"""
    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            data = client.list_jobs(
                status=status, task_type=task_type, limit=limit, offset=offset
            )
    except SpoilsError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = data.get("jobs", [])
    total = data.get("total", len(jobs))

    if not jobs:
        console.print(
            Panel(
                "📭 [yellow]No jobs found[/yellow]",
                title="Empty Results",
                border_style="yellow",
            )
        )
        return

    console.print(create_jobs_table(jobs))
    console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs")

    if offset + limit < total:
        console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")


@app.command("show")
def show_job(job_id: str = typer.Argument(..., help="Job ID")):
    """🔍 Show a job"""
    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            job = client.get_job(job_id)
    except SpoilsError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None

    console.print(create_job_panel(job))


@app.command("stats")
def job_stats():
    """📊 Show queue statistics"""
    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            stats = client.get_job_stats()
    except SpoilsError as e:
        print_error(f"Failed to get job stats: {e}")
        raise typer.Exit(1) from None

    console.print(create_stats_panel(stats))


@app.command("retry")
def retry_job(job_id: str = typer.Argument(..., help="Failed job ID")):
    """🔄 Retry a permanently failed job"""
    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            print_info(f"Retrying job {job_id}")
            client.retry_job(job_id)
    except SpoilsError as e:
        print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Job {job_id} queued for retry")
