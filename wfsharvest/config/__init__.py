"""wfsharvest configuration package.

Configuration loaders for settings, policies, quirks and stream sources.
"""

from wfsharvest.config.discovery import discover_source_files, load_stream_sources
from wfsharvest.config.loader import (
    ConfigError,
    HarvestSettings,
    QuirkDefinition,
    QuirksConfig,
    load_policies,
    load_quirks,
    load_settings,
    save_settings,
)

__all__ = [
    "load_settings",
    "load_policies",
    "load_quirks",
    "save_settings",
    "ConfigError",
    "HarvestSettings",
    "QuirkDefinition",
    "QuirksConfig",
    "discover_source_files",
    "load_stream_sources",
]
