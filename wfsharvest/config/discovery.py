"""Stream source discovery.

A stream source is a file listing WFS base URLs to harvest. Supported
formats:

1. Plain text (.txt): one URL per line, ``#`` starts a comment
2. JSON (.json): a list of URLs, a list of objects with a ``url`` field,
   or an object with a ``streams`` list in either form
3. YAML (.yml/.yaml): same shapes as JSON
"""

import json
from pathlib import Path
from typing import Any

import yaml

SOURCE_SUFFIXES = (".txt", ".json", ".yml", ".yaml")


def _urls_from_data(data: Any) -> list[str]:
    if isinstance(data, dict):
        data = data.get("streams", data.get("urls", []))
    if not isinstance(data, list):
        return []

    urls = []
    for entry in data:
        if isinstance(entry, str):
            urls.append(entry)
        elif isinstance(entry, dict) and entry.get("url"):
            urls.append(str(entry["url"]))
    return urls


def load_stream_sources(path: Path) -> list[str]:
    """Read WFS base URLs from a source file.

    Blank entries and duplicates are dropped, order is preserved.

    Args:
        path: Source file (.txt, .json, .yml, .yaml)

    Returns:
        List of URLs

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the suffix is not supported
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Stream source not found: {path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    if suffix == ".txt":
        raw = [line for line in text.splitlines() if not line.lstrip().startswith("#")]
    elif suffix == ".json":
        raw = _urls_from_data(json.loads(text))
    elif suffix in (".yml", ".yaml"):
        raw = _urls_from_data(yaml.safe_load(text))
    else:
        raise ValueError(f"Unsupported stream source format: {path.suffix}")

    seen = set()
    urls = []
    for url in raw:
        url = url.strip()
        if url and url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


def discover_source_files(directory: Path) -> list[Path]:
    """Find stream source files in a directory (non-recursive, sorted)."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in SOURCE_SUFFIXES and not p.name.startswith(".")
    )
