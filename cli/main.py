"""Spoils CLI - Main Entry Point"""

import asyncio
import signal

import typer
from rich.console import Console
from rich.panel import Panel

from .client.endpoints import SpoilsClient, SpoilsError
from .commands import config, ingredients, jobs, products
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

app = typer.Typer(
    name="spoils",
    help="🥫 Spoils - background jobs and ingredient resolution",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")
app.add_typer(ingredients.app, name="ingredients")
app.add_typer(products.app, name="products")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API connectivity and queue health"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with SpoilsClient(base_url) as client:
            health = client.health_check()
    except SpoilsError as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the Spoils API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can update the API URL with:\n"
                f"[cyan]spoils config set api.base_url <url>[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    worker = health.get("worker") or {}
    console.print(
        Panel(
            f"🚀 [green]Connected Successfully![/green]\n\n"
            f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
            f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
            f"• Active workers: [cyan]{worker.get('active_workers', 0)}[/cyan]\n"
            f"• Queue depth: [cyan]{worker.get('queue_depth', 0)}[/cyan]\n"
            f"• Stuck jobs: [red]{worker.get('stuck_jobs_count', 0)}[/red]\n"
            f"• API URL: [blue]{base_url}[/blue]",
            title="System Status",
            border_style="green",
        )
    )


@app.command()
def worker(
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", help="Concurrent job slots (overrides settings)"
    ),
    once: bool = typer.Option(
        False, "--once", help="Process eligible jobs until idle, then exit"
    ),
):
    """⚙️ Run a job worker against the configured database"""
    from spoils.v1.core.exceptions import ConfigurationError

    try:
        processed = asyncio.run(_run_worker(concurrency, once))
    except ConfigurationError as e:
        print_error(f"Worker stopped on configuration error: {e.message}")
        raise typer.Exit(2) from None

    if once:
        console.print(f"✅ Processed [cyan]{processed}[/cyan] jobs")


async def _run_worker(concurrency: int | None, once: bool) -> int:
    from spoils.config.logging import setup_logging
    from spoils.config.settings import get_settings
    from spoils.infra.database import Database
    from spoils.v1.infra.jobs.registry_init import build_job_registry
    from spoils.v1.infra.jobs.worker import JobWorker

    settings = get_settings()
    if concurrency is not None:
        settings = settings.model_copy(update={"job_concurrency": concurrency})
    setup_logging(settings)

    database = Database(settings)
    job_worker = JobWorker(settings, database, build_job_registry(settings))

    try:
        if once:
            await job_worker.prepare()
            return await job_worker.run_until_idle()

        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_requested.set)

        worker_task = asyncio.create_task(job_worker.start())
        signal_task = asyncio.create_task(stop_requested.wait())
        await asyncio.wait(
            {worker_task, signal_task}, return_when=asyncio.FIRST_COMPLETED
        )
        signal_task.cancel()

        if not worker_task.done():
            await job_worker.stop()
        # Re-raises a ConfigurationError that halted the worker
        await worker_task
        return 0
    finally:
        await database.close()


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(
        Panel(
            f"🥫 [bold cyan]Spoils CLI[/bold cyan]\n\n"
            f"• Version: [green]{__version__}[/green]",
            title="Version Info",
            border_style="cyan",
        )
    )


@app.callback()
def main(ctx: typer.Context):
    """
    🥫 Spoils CLI

    Run job workers, enqueue and inspect jobs, and resolve ingredients.
    """


if __name__ == "__main__":
    app()
