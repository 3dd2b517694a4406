"""Single-service commands: fetch, parse, validate and probe."""

import asyncio
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wfsharvest.config import HarvestSettings
from wfsharvest.core.models import ParseResult
from wfsharvest.parser.capabilities import WFSCapabilitiesParser
from wfsharvest.protocols.fetcher import CapabilitiesFetcher, FetchResult, decode_body
from wfsharvest.protocols.validator import URLValidator, ValidationResult
from wfsharvest.protocols.wfs import ProbeResult, WFSProtocol

console = Console()


def _flag(value: bool) -> str:
    return "[green]✓[/green]" if value else "[red]✗[/red]"


def _print_parse_result(result: ParseResult, max_layers: int) -> None:
    service = result.service
    info_lines = [
        f"[bold cyan]Version:[/bold cyan] {service.version}"
        + (f" (advertised: {', '.join(service.versions)})" if service.versions else ""),
        f"[bold cyan]Provider:[/bold cyan] {service.provider_name or '-'}",
        f"[bold cyan]Region:[/bold cyan] {service.region or '-'}, {service.land_name or '-'}"
        f" ({service.land_code or '??'})",
        f"[bold cyan]INSPIRE:[/bold cyan] {'yes' if service.is_inspire else 'no'}"
        + (f" ({', '.join(service.inspire_theme_codes)})" if service.inspire_theme_codes else ""),
        f"[bold cyan]CRS:[/bold cyan] {', '.join(service.supported_crs[:5]) or '-'}",
        f"[bold cyan]Formats:[/bold cyan] {', '.join(service.output_formats[:5]) or '-'}",
    ]
    if service.bbox:
        info_lines.append(f"[bold cyan]BBox (WGS84):[/bold cyan] {service.bbox.as_tuple()}")
    info_lines.append(f"\n{service.abstract}")
    console.print(Panel("\n".join(info_lines), title=f"[bold]{service.title}[/bold]"))

    table = Table(title=f"Layers ({result.layer_count})")
    table.add_column("Name", style="cyan")
    table.add_column("Title")
    table.add_column("Category", style="green")
    table.add_column("Geometry", style="blue")
    table.add_column("CRS", style="dim")

    for layer in result.layers[:max_layers]:
        table.add_row(
            layer.name,
            layer.display_title,
            layer.feature_type or "[dim]-[/dim]",
            layer.geometry_type or "[dim]-[/dim]",
            layer.default_crs or "",
        )
    console.print(table)
    if result.layer_count > max_layers:
        console.print(f"[dim]... {result.layer_count - max_layers} more layers[/dim]")


def _print_fetch_result(result: FetchResult) -> None:
    table = Table(title="GetCapabilities attempts")
    table.add_column("Version", style="cyan")
    table.add_column("Status")
    table.add_column("Result")

    for attempt in result.attempts:
        outcome = (
            f"[red]{attempt.error_kind.value}[/red]: {attempt.error}"
            if attempt.error_kind
            else "[green]ok[/green]"
        )
        table.add_row(attempt.version or "default", str(attempt.status_code or "-"), outcome)
    console.print(table)

    if result.quirks:
        console.print(f"[dim]Quirks: {', '.join(result.quirks)}[/dim]")


@click.command()
@click.argument("url")
@click.option("--show-xml", is_flag=True, help="Print the capabilities document")
@click.option("--max-layers", default=25, show_default=True, help="Layers to list")
@click.pass_obj
def fetch(obj: dict, url: str, show_xml: bool, max_layers: int) -> None:
    """Fetch and parse the capabilities of a WFS endpoint.

    Examples:
        wfsharvest fetch https://isk.geobasis-bb.de/ows/alkis_wfs
    """
    settings: HarvestSettings = obj["settings"]

    async def _fetch() -> FetchResult:
        async with CapabilitiesFetcher(settings=settings) as fetcher:
            return await fetcher.fetch(url)

    with console.status(f"[bold green]Fetching {url}..."):
        result = asyncio.run(_fetch())

    _print_fetch_result(result)
    if not result.success:
        console.print(f"[red]✗[/red] {result.error}")
        raise click.Abort()

    console.print(
        f"[bold green]✓[/bold green] {result.url} "
        f"({result.size / 1024:.1f} KB, {result.content_type or 'unknown type'})"
    )
    if show_xml:
        console.print(result.text, markup=False, highlight=False)
        return

    parsed = WFSCapabilitiesParser().parse(result.text)
    if not parsed.success:
        console.print(f"[red]✗[/red] {parsed.error}")
        raise click.Abort()
    _print_parse_result(parsed, max_layers)


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--max-layers", default=25, show_default=True, help="Layers to list")
def parse(file: Path, as_json: bool, max_layers: int) -> None:
    """Parse a capabilities document from a file.

    Examples:
        wfsharvest parse capabilities.xml
        wfsharvest parse capabilities.xml --json
    """
    result = WFSCapabilitiesParser().parse(decode_body(file.read_bytes()))

    if as_json:
        click.echo(result.model_dump_json(indent=2))
        if not result.success:
            raise click.Abort()
        return

    if not result.success:
        console.print(f"[red]✗[/red] {result.error}")
        raise click.Abort()
    _print_parse_result(result, max_layers)


@click.command()
@click.argument("url")
@click.pass_obj
def validate(obj: dict, url: str) -> None:
    """Validate a WFS URL (syntax, reachability, capabilities).

    Examples:
        wfsharvest validate https://www.wfs.nrw.de/geobasis/wfs_nw_alkis_vereinfacht
    """
    settings: HarvestSettings = obj["settings"]

    async def _validate() -> ValidationResult:
        async with URLValidator(settings=settings) as validator:
            return await validator.validate(url)

    with console.status(f"[bold green]Validating {url}..."):
        result = asyncio.run(_validate())

    table = Table(title=url)
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_row("URL syntax", _flag(result.url_syntax_valid))
    table.add_row("Server reachable", _flag(result.server_reachable))
    table.add_row("Capabilities XML", _flag(result.xml_response_valid))
    console.print(table)

    for note in result.validation_notes:
        console.print(f"  • {note}")

    if not result.overall_valid:
        raise click.Abort()


@click.command()
@click.argument("url")
@click.argument("layer")
@click.option("--wfs-version", help="Version to try first (default: from capabilities)")
@click.option("--inspire/--no-inspire", default=None, help="Force the INSPIRE probe ladder")
@click.pass_obj
def probe(
    obj: dict, url: str, layer: str, wfs_version: Optional[str], inspire: Optional[bool]
) -> None:
    """Check whether a layer returns features.

    Version and output formats are taken from the capabilities document
    when it can be fetched.

    Examples:
        wfsharvest probe https://isk.geobasis-bb.de/ows/alkis_wfs cp:CadastralParcel
    """
    settings: HarvestSettings = obj["settings"]

    async def _probe() -> ProbeResult:
        async with WFSProtocol(url, settings=settings) as wfs:
            version, formats, is_inspire = wfs_version, None, False
            fetched = await wfs.fetch_capabilities()
            if fetched.success:
                parsed = wfs.parser.parse(fetched.text)
                if parsed.success:
                    version = version or parsed.service.version
                    is_inspire = parsed.service.is_inspire
                    match = next((lyr for lyr in parsed.layers if lyr.name == layer), None)
                    if match is None:
                        console.print(f"[yellow]Layer {layer} not in capabilities[/yellow]")
                    formats = (match.output_formats if match else None) or (
                        parsed.service.output_formats
                    )
            if inspire is not None:
                is_inspire = inspire
            return await wfs.probe_layer(layer, version, formats, is_inspire)

    with console.status(f"[bold green]Probing {layer}..."):
        result = asyncio.run(_probe())

    table = Table(title=f"GetFeature attempts for {layer}")
    table.add_column("Version", style="cyan")
    table.add_column("Format")
    table.add_column("Status")
    table.add_column("Result")
    for attempt in result.attempts:
        if attempt.classification is not None:
            outcome = attempt.classification.kind.value
        else:
            outcome = f"[red]{attempt.error}[/red]"
        table.add_row(
            attempt.version,
            attempt.output_format or "[dim]default[/dim]",
            str(attempt.status_code or "-"),
            outcome,
        )
    console.print(table)

    if result.queryable:
        console.print(
            f"[bold green]✓[/bold green] {layer} is queryable "
            f"(WFS {result.version}, {result.feature_count or 0} features)"
        )
        return

    console.print(f"[red]✗[/red] {layer} is not queryable: {result.error or result.kind.value}")
    raise click.Abort()
