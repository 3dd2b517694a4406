"""Harvest command: scan stream sources into a catalog file."""

import asyncio
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from wfsharvest.catalog.queries import catalog_statistics
from wfsharvest.catalog.store import CatalogError, InMemoryCatalogStore
from wfsharvest.config import HarvestSettings, discover_source_files, load_stream_sources
from wfsharvest.indexer.report import ScanSummary
from wfsharvest.indexer.scanner import CatalogScanner

console = Console()


def _collect_urls(sources: tuple[Path, ...]) -> list[str]:
    urls: list[str] = []
    for source in sources:
        files = discover_source_files(source) if source.is_dir() else [source]
        for file in files:
            try:
                urls.extend(load_stream_sources(file))
            except ValueError as e:
                console.print(f"[yellow]Skipping {file}: {e}[/yellow]")
    return list(dict.fromkeys(urls))


async def _harvest(
    scanner: CatalogScanner, urls: list[str], probe: bool, probe_limit: Optional[int]
) -> ScanSummary:
    async with scanner:
        summary = await scanner.scan_all(urls)
        if probe:
            await scanner.probe_all(limit_per_stream=probe_limit)
    return summary


@click.command()
@click.argument(
    "sources", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("catalog.json"),
    show_default=True,
    help="Catalog file (extended if it already exists)",
)
@click.option("--report", type=click.Path(dir_okay=False, path_type=Path), help="Save report")
@click.option("--probe", is_flag=True, help="Probe layers for queryability after scanning")
@click.option("--probe-limit", type=int, help="Layers to probe per stream")
@click.option("--concurrency", type=click.IntRange(1, 10), help="Streams scanned in parallel")
@click.option("--no-portals", is_flag=True, help="Do not resolve geoportal links")
@click.option("--quirks-report", is_flag=True, help="Show which host quirks were applied")
@click.pass_obj
def scan(
    obj: dict,
    sources: tuple[Path, ...],
    output: Path,
    report: Optional[Path],
    probe: bool,
    probe_limit: Optional[int],
    concurrency: Optional[int],
    no_portals: bool,
    quirks_report: bool,
) -> None:
    """Scan WFS streams listed in SOURCES into a catalog.

    SOURCES are files (.txt, .json, .yml) or directories containing them.

    Examples:
        wfsharvest scan streams.txt
        wfsharvest scan sources/ --output catalog.json --probe --probe-limit 5
    """
    settings: HarvestSettings = obj["settings"]
    if concurrency is not None:
        settings = settings.model_copy(update={"concurrency": concurrency})

    urls = _collect_urls(sources)
    if not urls:
        console.print("[red]✗[/red] No stream URLs found")
        raise click.Abort()

    if output.exists():
        try:
            store = InMemoryCatalogStore.load_json(output)
        except CatalogError as e:
            console.print(f"[red]✗[/red] {e}")
            raise click.Abort()
        console.print(f"[dim]Extending existing catalog {output}[/dim]")
    else:
        store = InMemoryCatalogStore()

    console.print(f"[bold]Scanning {len(urls)} streams[/bold] (concurrency {settings.concurrency})")
    scanner = CatalogScanner(store, settings=settings, resolve_portals=not no_portals)
    with console.status("[bold green]Harvesting..."):
        summary = asyncio.run(_harvest(scanner, urls, probe, probe_limit))

    table = Table(title="Scan results")
    table.add_column("Stream", style="cyan", overflow="fold")
    table.add_column("Version")
    table.add_column("Layers", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Result")
    for result in summary.results:
        table.add_row(
            result.stream_url or result.url,
            result.version or "-",
            str(result.layer_count),
            str(result.layers_inserted),
            "[green]✓[/green]" if result.success else f"[red]✗ {result.error_kind}[/red]",
        )
    console.print(table)

    store.save_json(output)
    stats = catalog_statistics(store)
    console.print(
        f"[bold green]✓[/bold green] {summary.succeeded}/{summary.total} streams ok "
        f"({summary.success_rate:.1f}%), {stats['layers']} layers in {output}"
    )
    if probe:
        console.print(
            f"  Queryable layers: {stats['queryable_layers']}/{stats['probed_layers']} probed"
        )

    text = summary.generate_report(report)
    if report:
        console.print(f"[dim]Report saved to {report}[/dim]")
    elif summary.failed:
        console.print(text, markup=False, highlight=False)

    if quirks_report:
        if scanner.monitor.get_statistics():
            console.print(scanner.monitor.generate_report(), markup=False, highlight=False)
        else:
            console.print("[yellow]No quirks have been applied[/yellow]")
