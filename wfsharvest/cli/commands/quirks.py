"""Quirks management commands."""

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wfsharvest.protocols.quirks import KNOWN_QUIRKS, get_quirks, matched_host

console = Console()


@click.group()
def quirks() -> None:
    """View host-specific WFS quirks."""
    pass


@quirks.command("list")
def list_cmd() -> None:
    """List all known host quirks.

    Examples:
        wfsharvest quirks list
    """
    if not KNOWN_QUIRKS:
        console.print("[yellow]No quirks registered[/yellow]")
        return

    table = Table(title="Known WFS Quirks")
    table.add_column("Host", style="cyan")
    table.add_column("Quirks", style="yellow")
    table.add_column("Description", style="dim")

    for host, quirk_obj in sorted(KNOWN_QUIRKS.items()):
        active_quirks = quirk_obj.active_quirks()
        quirks_str = ", ".join(active_quirks) if active_quirks else "[dim]none[/dim]"
        table.add_row(host, quirks_str, quirk_obj.description or "")

    console.print(table)


@quirks.command("show")
@click.argument("host")
def show(host: str) -> None:
    """Show detailed quirks for a host or service URL.

    Examples:
        wfsharvest quirks show www.wfs.nrw.de
        wfsharvest quirks show https://www.wfs.nrw.de/geobasis/wfs_nw_alkis
    """
    quirk_obj = get_quirks(host)
    key = matched_host(host)

    title = f"[bold]{key or host}[/bold]"
    if key is None:
        title += " [dim](using defaults)[/dim]"

    info_lines = []

    info_lines.append("[bold cyan]URL Quirks:[/bold cyan]")
    info_lines.append(f"  requires_trailing_slash: {quirk_obj.requires_trailing_slash}")

    info_lines.append("\n[bold cyan]Version Quirks:[/bold cyan]")
    info_lines.append(f"  force_version: {quirk_obj.force_version or 'none'}")
    info_lines.append(f"  skip_version_fallback: {quirk_obj.skip_version_fallback}")

    info_lines.append("\n[bold cyan]Output Format Quirks:[/bold cyan]")
    info_lines.append(f"  preferred_output_format: {quirk_obj.preferred_output_format or 'none'}")
    info_lines.append(f"  omit_output_format: {quirk_obj.omit_output_format}")

    info_lines.append("\n[bold cyan]Timeout Quirks:[/bold cyan]")
    info_lines.append(f"  custom_timeout: {quirk_obj.custom_timeout or 'none'}")

    info_lines.append("\n[bold cyan]Request Quirks:[/bold cyan]")
    if quirk_obj.custom_headers or quirk_obj.extra_params:
        for header, value in quirk_obj.custom_headers.items():
            info_lines.append(f"  header {header}: {value}")
        for param, value in quirk_obj.extra_params.items():
            info_lines.append(f"  param {param}={value}")
    else:
        info_lines.append("  [dim]none[/dim]")

    if key is not None:
        info_lines.append("\n[bold cyan]Metadata:[/bold cyan]")
        if quirk_obj.description:
            info_lines.append(f"  Description: {quirk_obj.description}")
        if quirk_obj.issue_url:
            info_lines.append(f"  Issue URL: {quirk_obj.issue_url}")
        if quirk_obj.workaround_date:
            info_lines.append(f"  Workaround Date: {quirk_obj.workaround_date}")

    console.print(Panel("\n".join(info_lines), title=title, border_style="blue"))
