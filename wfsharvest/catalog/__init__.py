"""Persisted WFS catalog: records, store and queries."""

from wfsharvest.catalog.queries import (
    catalog_statistics,
    export_catalog_json,
    layers_by_category,
    search_layers,
    streams_by_country,
)
from wfsharvest.catalog.records import LayerRecord, StreamRecord
from wfsharvest.catalog.store import CatalogError, CatalogStore, InMemoryCatalogStore

__all__ = [
    "LayerRecord",
    "StreamRecord",
    "CatalogError",
    "CatalogStore",
    "InMemoryCatalogStore",
    "catalog_statistics",
    "export_catalog_json",
    "layers_by_category",
    "search_layers",
    "streams_by_country",
]
