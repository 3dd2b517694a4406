"""CLI commands package."""

from wfsharvest.cli.commands.catalog import catalog
from wfsharvest.cli.commands.inspect import fetch, parse, probe, validate
from wfsharvest.cli.commands.quirks import quirks
from wfsharvest.cli.commands.scan import scan

__all__ = ["catalog", "fetch", "parse", "probe", "quirks", "scan", "validate"]
