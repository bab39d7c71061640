"""Product Commands - Barcode lookups"""

import typer

from ..client.endpoints import SpoilsClient, SpoilsError
from ..utils.config_manager import config
from ..utils.formatting import print_error, print_success, print_warning

app = typer.Typer(name="products", help="Product lookup commands")


@app.command("fetch")
def fetch(barcode: str = typer.Argument(..., help="Product barcode")):
    """📦 Enqueue a product fetch and ingredient analysis"""
    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            result = client.fetch_product(barcode)
    except SpoilsError as e:
        print_error(f"Failed to enqueue product fetch: {e}")
        raise typer.Exit(1) from None

    if result.get("deduplicated"):
        print_warning(f"Fetch already in progress: {result.get('job_id')}")
    else:
        print_success(f"Enqueued fetch for {barcode}: {result.get('job_id')}")
