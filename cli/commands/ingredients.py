"""Ingredient Commands - Resolve and inspect ingredients"""

import typer
from rich.console import Console

from ..client.endpoints import SpoilsClient, SpoilsError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_ingredient_panel,
    create_lookups_table,
    print_error,
)

console = Console()
app = typer.Typer(name="ingredients", help="Ingredient resolution commands")


@app.command("resolve")
def resolve(
    name: str = typer.Argument(..., help="Ingredient name, or a statement with --text"),
    text: bool = typer.Option(
        False, "--text", help="Treat the argument as a comma-separated statement"
    ),
):
    """🧪 Find ingredients, enqueueing creation for unknown ones"""
    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            if text:
                data = client.resolve_statement(name)
            else:
                data = client.resolve_ingredient(name)
    except SpoilsError as e:
        print_error(f"Failed to resolve ingredients: {e}")
        raise typer.Exit(1) from None

    console.print(create_lookups_table(data.get("ingredients", [])))


@app.command("show")
def show(name: str = typer.Argument(..., help="Ingredient name")):
    """🔍 Show an ingredient with its sub-ingredients"""
    try:
        with SpoilsClient(config.get("api.base_url")) as client:
            ingredient = client.get_ingredient(name)
    except SpoilsError as e:
        print_error(f"Failed to get ingredient: {e}")
        raise typer.Exit(1) from None

    console.print(create_ingredient_panel(ingredient))
