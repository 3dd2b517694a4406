"""Catalog exploration commands."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from wfsharvest.catalog.queries import catalog_statistics, layers_by_category, search_layers
from wfsharvest.catalog.store import CatalogError, InMemoryCatalogStore

console = Console()

catalog_option = click.option(
    "-c",
    "--catalog",
    "catalog_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=Path("catalog.json"),
    show_default=True,
    help="Catalog file written by 'wfsharvest scan'",
)


def _load(catalog_path: Path) -> InMemoryCatalogStore:
    try:
        return InMemoryCatalogStore.load_json(catalog_path)
    except CatalogError as e:
        console.print(f"[red]✗[/red] {e}")
        raise click.Abort()


@click.group()
def catalog() -> None:
    """Explore a harvested catalog."""
    pass


@catalog.command()
@click.argument("query")
@catalog_option
@click.option("--limit", default=20, show_default=True, help="Maximum results")
@click.option("--all-streams", is_flag=True, help="Include inactive streams")
def search(query: str, catalog_path: Path, limit: int, all_streams: bool) -> None:
    """Search layers by name, title, abstract and keywords.

    Examples:
        wfsharvest catalog search flurstück
    """
    results = search_layers(_load(catalog_path), query, active_only=not all_streams)
    if not results:
        console.print(f"[yellow]No layers match '{query}'[/yellow]")
        return

    table = Table(title=f"Layers matching '{query}' ({len(results)})")
    table.add_column("Layer", style="cyan")
    table.add_column("Title")
    table.add_column("Category", style="green")
    table.add_column("Stream", style="dim", overflow="fold")
    for hit in results[:limit]:
        table.add_row(hit["name"], hit["titel"], hit["feature_typ"] or "-", hit["stream_url"])
    console.print(table)


@catalog.command()
@catalog_option
def stats(catalog_path: Path) -> None:
    """Show catalog statistics and layers per category.

    Examples:
        wfsharvest catalog stats --catalog catalog.json
    """
    store = _load(catalog_path)
    numbers = catalog_statistics(store)

    table = Table(title=f"Catalog {catalog_path}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key in (
        "streams",
        "active_streams",
        "inspire_streams",
        "fully_valid_streams",
        "layers",
        "probed_layers",
        "queryable_layers",
    ):
        table.add_row(key.replace("_", " "), str(numbers[key]))
    console.print(table)

    categories = Table(title="Layers per category")
    categories.add_column("Category", style="green")
    categories.add_column("Layers", justify="right")
    for name, layers in layers_by_category(store).items():
        categories.add_row(name, str(len(layers)))
    console.print(categories)
