"""Configuration loader for harvest settings, policies and quirks.

This module loads YAML config files and validates them with pydantic,
falling back to built-in defaults when no file is present.

Features:
- Harvest settings (timeouts, size ceiling, concurrency, version order)
- Classification policies (smart categories, keywords, region tables)
- Per-host WFS quirks
- Support for user config directories (~/.wfsharvest/config)

Usage:
    from wfsharvest.config import load_settings, load_policies, load_quirks

    settings = load_settings()
    category_policy, region_policy = load_policies()
    quirks = load_quirks()
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from wfsharvest.core.categorize import CategoryPolicy
from wfsharvest.core.region import RegionPolicy

logger = logging.getLogger("wfsharvest.config")

# Config file locations
DEFAULT_CONFIG_DIR = Path(__file__).parent
USER_CONFIG_DIR = Path.home() / ".wfsharvest" / "config"

MB = 1024 * 1024


class ConfigError(Exception):
    """Raised when a config file exists but cannot be used."""

    pass


class HarvestSettings(BaseModel):
    """Runtime settings for fetching, probing and scanning."""

    capabilities_timeout: float = Field(
        15.0, gt=0, description="Timeout for one GetCapabilities request (seconds)"
    )
    probe_timeout: float = Field(
        10.0, gt=0, description="Timeout for one GetFeature probe (seconds)"
    )
    validation_timeout: float = Field(
        10.0, gt=0, description="Timeout for the reachability check (seconds)"
    )
    max_response_bytes: int = Field(
        15 * MB, gt=0, description="Hard ceiling for response bodies (raw and decompressed)"
    )
    concurrency: int = Field(3, ge=1, le=10, description="Streams scanned in parallel")
    user_agent: str = Field("wfsharvest/0.1 (WFS catalogue harvester)")
    capabilities_versions: list[Optional[str]] = Field(
        default_factory=lambda: ["2.0.0", "1.1.0", "1.0.0", None],
        description="GetCapabilities version order (None = no version parameter)",
    )
    probe_count: int = Field(5, ge=1, description="Features requested per probe")
    cache_ttl: float = Field(900.0, ge=0, description="Capabilities cache TTL (seconds)")


class QuirkDefinition(BaseModel):
    """Definition of a single host quirk."""

    name: str = Field(..., description="Host the quirk applies to")
    description: str = Field(default="", description="Why this quirk is needed")

    requires_trailing_slash: bool = Field(False)
    force_version: Optional[str] = Field(None)
    skip_version_fallback: bool = Field(False)
    preferred_output_format: Optional[str] = Field(None)
    omit_output_format: bool = Field(False)
    custom_timeout: Optional[float] = Field(None)
    custom_headers: dict[str, str] = Field(default_factory=dict)
    extra_params: dict[str, str] = Field(default_factory=dict)

    issue_url: Optional[str] = Field(None)
    workaround_date: Optional[str] = Field(None)

    def to_protocol_quirks(self):
        """Convert to ProtocolQuirks instance."""
        from wfsharvest.protocols.quirks import ProtocolQuirks

        return ProtocolQuirks(**self.model_dump(exclude={"name"}))


class QuirksConfig(BaseModel):
    """Complete quirks configuration file."""

    hosts: dict[str, QuirkDefinition] = Field(default_factory=dict)


class PolicyConfig(BaseModel):
    """Policy file: any section may be omitted."""

    categories: Optional[CategoryPolicy] = None
    region: Optional[RegionPolicy] = None


def _read_yaml(file_path: Path) -> dict[str, Any]:
    with open(file_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at top level of {file_path}")
    return data


def _first_existing(*candidates: Optional[Path]) -> Optional[Path]:
    for candidate in candidates:
        if candidate is not None and candidate.exists():
            return candidate
    return None


def load_settings(
    config_path: Optional[Path] = None,
    fallback: Optional[HarvestSettings] = None,
) -> HarvestSettings:
    """Load harvest settings.

    Lookup order: explicit path, user config dir, packaged default file.

    Args:
        config_path: Explicit settings file
        fallback: Settings to use if the file is invalid

    Returns:
        HarvestSettings instance

    Raises:
        FileNotFoundError: If config_path is given but does not exist
        ConfigError: If the file is invalid and no fallback is given
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Settings file not found: {config_path}")

    file_path = _first_existing(
        config_path,
        USER_CONFIG_DIR / "settings.yml",
        DEFAULT_CONFIG_DIR / "settings.yml",
    )
    if file_path is None:
        return fallback or HarvestSettings()

    try:
        data = _read_yaml(file_path)
        return HarvestSettings(**data.get("settings", data))
    except (ValidationError, yaml.YAMLError, ConfigError) as e:
        logger.warning("Invalid settings in %s: %s", file_path, e)
        if fallback is not None:
            logger.warning("Using fallback settings")
            return fallback
        raise ConfigError(f"Invalid settings file {file_path}: {e}") from e


def load_policies(
    config_path: Optional[Path] = None,
) -> tuple[CategoryPolicy, RegionPolicy]:
    """Load classification policies.

    A policy file may replace the category tables, the region tables or
    both. Missing sections keep the built-in defaults.

    Args:
        config_path: Explicit policy file (default: ~/.wfsharvest/config/policies.yml)

    Returns:
        (CategoryPolicy, RegionPolicy)

    Raises:
        ConfigError: If the file exists but is invalid
    """
    file_path = _first_existing(config_path, USER_CONFIG_DIR / "policies.yml")
    if file_path is None:
        if config_path is not None:
            raise FileNotFoundError(f"Policy file not found: {config_path}")
        return CategoryPolicy(), RegionPolicy()

    try:
        config = PolicyConfig(**_read_yaml(file_path))
    except (ValidationError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid policy file {file_path}: {e}") from e

    logger.debug("Loaded policies from %s", file_path)
    return config.categories or CategoryPolicy(), config.region or RegionPolicy()


def load_quirks(
    config_dir: Optional[Path] = None,
    fallback: Optional[dict] = None,
) -> dict[str, Any]:
    """Load host quirks from ``<config_dir>/hosts.yml``.

    Args:
        config_dir: Directory containing quirk config files
        fallback: Fallback dict if the file is missing or invalid

    Returns:
        Dictionary host -> ProtocolQuirks

    Examples:
        >>> quirks = load_quirks()
        >>> quirks["www.wfs.nrw.de"].force_version
        '2.0.0'
    """
    if config_dir is None:
        config_dir = DEFAULT_CONFIG_DIR / "quirks"

    file_path = config_dir / "hosts.yml"
    if not file_path.exists():
        return dict(fallback or {})

    try:
        config = QuirksConfig(**_read_yaml(file_path))
    except (ValidationError, yaml.YAMLError, ConfigError) as e:
        logger.warning("Error loading quirks from %s: %s", file_path, e)
        if fallback is not None:
            return dict(fallback)
        raise ConfigError(f"Invalid quirks file {file_path}: {e}") from e

    all_quirks = {host.lower(): quirk.to_protocol_quirks() for host, quirk in config.hosts.items()}
    if not all_quirks and fallback:
        return dict(fallback)
    return all_quirks


def save_settings(settings: HarvestSettings, output_path: Optional[Path] = None) -> Path:
    """Write settings to a YAML file.

    Args:
        settings: Settings to export
        output_path: Target file (default: ~/.wfsharvest/config/settings.yml)

    Returns:
        Path to written file
    """
    if output_path is None:
        output_path = USER_CONFIG_DIR / "settings.yml"

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(
            {"settings": settings.model_dump()},
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    return output_path


__all__ = [
    "ConfigError",
    "HarvestSettings",
    "PolicyConfig",
    "QuirkDefinition",
    "QuirksConfig",
    "load_settings",
    "load_policies",
    "load_quirks",
    "save_settings",
]
