"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "blue",
    "leased": "cyan",
    "retrying": "yellow",
    "completed": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a job list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center", style="yellow")
    table.add_column("Not Before", justify="left", style="white")
    table.add_column("Error", justify="left", style="red")

    for job in jobs:
        table.add_row(
            str(job.get("id", ""))[:8],
            job.get("task_type", ""),
            _status(job.get("status", "")),
            f"{job.get('attempts', 0)}/{job.get('max_retries', 0) + 1}",
            job.get("not_before") or "—",
            job.get("error_code") or "—",
        )

    return table


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Create a detail panel for a single job"""
    content = f"""
🆔 [bold]ID:[/bold] [cyan]{job.get("id")}[/cyan]
📝 [bold]Type:[/bold] [magenta]{job.get("task_type")}[/magenta]
📊 [bold]Status:[/bold] {_status(job.get("status", ""))}
🔁 [bold]Attempts:[/bold] [yellow]{job.get("attempts", 0)} of {job.get("max_retries", 0) + 1}[/yellow]
⏰ [bold]Not before:[/bold] {job.get("not_before")}
🗓️ [bold]Cron:[/bold] {job.get("cron_expression") or "—"}
📦 [bold]Payload:[/bold] {job.get("payload")}
✅ [bold]Result:[/bold] {job.get("result") or "—"}
⚠️ [bold]Last error:[/bold] {job.get("last_error") or "—"}
"""
    return Panel(content.strip(), title="Job", border_style="blue")


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for job statistics"""
    by_status = stats.get("by_status", {})
    status_lines = "\n".join(
        f"• {_status(status)}: {count}" for status, count in sorted(by_status.items())
    )
    content = f"""
📊 [bold blue]Queue Statistics[/bold blue]

• Total jobs: [blue]{stats.get("total_jobs", 0)}[/blue]
• Queue depth: [cyan]{stats.get("queue_depth", 0)}[/cyan]
• Failed in last hour: [red]{stats.get("failed_last_hour", 0)}[/red]

{status_lines or "[dim]No jobs[/dim]"}
"""
    return Panel(content.strip(), title="Job Stats", border_style="green")


def create_lookups_table(lookups: list[dict[str, Any]]) -> Table:
    """Create a table of find-or-enqueue results"""
    table = Table(title="Ingredients", box=box.ROUNDED)

    table.add_column("Name", justify="left", style="white")
    table.add_column("Ingredient", justify="center", style="green")
    table.add_column("Job", justify="left", style="cyan", no_wrap=True)
    table.add_column("State", justify="center")

    for lookup in lookups:
        if lookup.get("ingredient_id") is not None:
            state = "[green]known[/green]"
        elif lookup.get("deduplicated"):
            state = "[yellow]in progress[/yellow]"
        else:
            state = "[blue]enqueued[/blue]"
        table.add_row(
            lookup.get("name", ""),
            str(lookup.get("ingredient_id") or "—"),
            str(lookup.get("job_id") or "—")[:8],
            state,
        )

    return table


def create_ingredient_panel(ingredient: dict[str, Any]) -> Panel:
    """Create a detail panel for an ingredient"""

    def _grams(field: str) -> str:
        value = ingredient.get(field)
        return "—" if value is None else f"{value:.4f} g/g"

    subs = ", ".join(sub["name"] for sub in ingredient.get("sub_ingredients", []))
    parents = ", ".join(p["name"] for p in ingredient.get("parent_ingredients", []))

    content = f"""
🥫 [bold]{ingredient.get("name")}[/bold] [dim](#{ingredient.get("id")})[/dim]
🏷️ [bold]Branded:[/bold] {"yes" if ingredient.get("branded") else "no"}
🔗 [bold]Source:[/bold] {ingredient.get("source_id") or "—"}

• Protein: [green]{_grams("gram_protein_per_gram")}[/green]
• Carbs: [green]{_grams("gram_carbs_per_gram")}[/green]
• Fat: [green]{_grams("gram_fat_per_gram")}[/green]
• Fiber: [green]{_grams("gram_fiber_per_gram")}[/green]
• Trans fat: [green]{_grams("gram_trans_fat_per_gram")}[/green]

🧩 [bold]Sub-ingredients:[/bold] {subs or "—"}
⬆️ [bold]Used in:[/bold] {parents or "—"}
"""
    return Panel(content.strip(), title="Ingredient", border_style="blue")
