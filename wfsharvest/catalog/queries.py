"""Catalog queries for exploring harvested services and layers.

This module provides user-friendly functions to find layers and streams
in a catalog store once it has been filled by the scanner.
"""

from collections import Counter
from pathlib import Path
from typing import Any, Optional

from wfsharvest.catalog.records import LayerRecord, StreamRecord
from wfsharvest.catalog.store import CatalogStore, InMemoryCatalogStore
from wfsharvest.core.categorize import SMART_CATEGORIES

UNCATEGORIZED = "Sonstige"


def search_layers(
    store: CatalogStore,
    query: str,
    search_in: Optional[list[str]] = None,
    active_only: bool = True,
) -> list[dict[str, Any]]:
    """Search layers by name, title, abstract and keywords.

    Args:
        store: Catalog store
        query: Search term (case-insensitive)
        search_in: Fields to search in
            (default: ['name', 'titel', 'abstract', 'schluesselwoerter'])
        active_only: Skip layers of streams marked inactive

    Returns:
        Matches sorted by relevance:
        [{"layer_id": 3, "name": "cp:CadastralParcel", "titel": "...",
          "stream_url": "...", "feature_typ": "Flurstücke",
          "relevance": 1.0, "matches": 2}, ...]

    Example:
        >>> results = search_layers(store, "flurstück")
        >>> for hit in results:
        ...     print(hit["name"], hit["stream_url"])
    """
    if search_in is None:
        search_in = ["name", "titel", "abstract", "schluesselwoerter"]

    query_lower = query.lower().strip()

    # Empty query returns nothing
    if not query_lower:
        return []

    streams = {s.id: s for s in store.select_streams()}
    matches = []

    for layer in store.select_layers():
        stream = streams.get(layer.wfs_id)
        if stream is None or (active_only and not stream.ist_aktiv):
            continue

        relevance = 0.0
        match_count = 0
        for field in search_in:
            value = getattr(layer, field, None)
            if isinstance(value, str):
                if query_lower in value.lower():
                    match_count += 1
                    # Name and title matches are most relevant
                    relevance += 1.0 if field in ("name", "titel") else 0.5
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, str) and query_lower in item.lower():
                        match_count += 1
                        relevance += 0.3

        if match_count > 0:
            matches.append(
                {
                    "layer_id": layer.id,
                    "name": layer.name,
                    "titel": layer.titel or layer.name,
                    "stream_url": stream.url,
                    "feature_typ": layer.feature_typ,
                    "relevance": min(relevance, 1.0),
                    "matches": match_count,
                }
            )

    matches.sort(key=lambda x: (-x["relevance"], -x["matches"], x["name"]))
    return matches


def layers_by_category(
    store: CatalogStore, category: Optional[str] = None
) -> dict[str, list[LayerRecord]]:
    """Group layers by smart category.

    Args:
        store: Catalog store
        category: Only return this category (None = all)

    Returns:
        Category -> layers; layers without category are grouped under
        "Sonstige". Categories appear in their fixed priority order.
    """
    grouped: dict[str, list[LayerRecord]] = {name: [] for name in SMART_CATEGORIES}
    grouped[UNCATEGORIZED] = []
    for layer in store.select_layers():
        grouped[layer.feature_typ or UNCATEGORIZED].append(layer)

    if category is not None:
        return {category: grouped.get(category, [])}
    return {name: layers for name, layers in grouped.items() if layers}


def streams_by_country(
    store: CatalogStore, active_only: bool = False
) -> dict[str, list[StreamRecord]]:
    """Group streams by land_code (unknown countries under "??")."""
    grouped: dict[str, list[StreamRecord]] = {}
    for stream in store.select_streams():
        if active_only and not stream.ist_aktiv:
            continue
        grouped.setdefault(stream.land_code or "??", []).append(stream)
    return dict(sorted(grouped.items()))


def catalog_statistics(store: CatalogStore) -> dict[str, Any]:
    """Quality numbers for a catalog."""
    streams = store.select_streams()
    layers = store.select_layers()
    probed = [layer for layer in layers if layer.ist_abfragbar is not None]

    return {
        "streams": len(streams),
        "active_streams": sum(1 for s in streams if s.ist_aktiv),
        "inspire_streams": sum(1 for s in streams if s.inspire_konform),
        "fully_valid_streams": sum(
            1 for s in streams if s.url_syntax_valid and s.server_reachable and s.xml_response_valid
        ),
        "layers": len(layers),
        "probed_layers": len(probed),
        "queryable_layers": sum(1 for layer in probed if layer.ist_abfragbar),
        "categories": dict(Counter(layer.feature_typ or UNCATEGORIZED for layer in layers)),
        "countries": dict(Counter(s.land_code or "??" for s in streams)),
    }


def export_catalog_json(store: CatalogStore, output_path: Path) -> Path:
    """Write the catalog to a JSON file.

    Stores other than InMemoryCatalogStore are copied into one first.
    """
    if not isinstance(store, InMemoryCatalogStore):
        snapshot = {
            "streams": [s.model_dump(mode="json") for s in store.select_streams()],
            "layers": [layer.model_dump(mode="json") for layer in store.select_layers()],
        }
        store = InMemoryCatalogStore.from_dict(snapshot)
    return store.save_json(output_path)
