"""wfsharvest CLI - Harvest and catalogue WFS services.

Usage:
    wfsharvest fetch https://example.com/wfs
    wfsharvest parse capabilities.xml
    wfsharvest validate https://example.com/wfs
    wfsharvest probe https://example.com/wfs cp:CadastralParcel
    wfsharvest scan sources/ --output catalog.json
    wfsharvest quirks list
    wfsharvest quirks show www.wfs.nrw.de
    wfsharvest catalog search flurstück
"""

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from wfsharvest import __version__
from wfsharvest.cli.commands import catalog, fetch, parse, probe, quirks, scan, validate
from wfsharvest.config import ConfigError, load_settings

console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@click.group()
@click.version_option(__version__, "-v", "--version", prog_name="wfsharvest")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Settings file (default: ~/.wfsharvest/config/settings.yml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Logging verbosity",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_level: str) -> None:
    """wfsharvest - Harvest WFS GetCapabilities into a searchable catalog."""
    _configure_logging(log_level)
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        raise click.Abort()
    ctx.obj = {"settings": settings}


# Add standalone commands
cli.add_command(fetch)
cli.add_command(parse)
cli.add_command(validate)
cli.add_command(probe)
cli.add_command(scan)

# Add command groups
cli.add_command(quirks)
cli.add_command(catalog)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
