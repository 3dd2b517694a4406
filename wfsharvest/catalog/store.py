"""Catalog storage.

``CatalogStore`` is the contract the harvester writes through: keyed
upserts for streams, batch inserts for layers, selects by field values.
``InMemoryCatalogStore`` implements it in memory and can be saved to and
loaded from JSON.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from wfsharvest.catalog.records import LayerRecord, StreamRecord

logger = logging.getLogger("wfsharvest.catalog")


class CatalogError(Exception):
    """Raised for invalid catalog operations (unknown ids, duplicate keys)."""

    pass


class CatalogStore(ABC):
    """Abstract catalog store."""

    @abstractmethod
    def upsert_stream(self, url: str, fields: dict[str, Any]) -> StreamRecord:
        """Create the stream for ``url`` or update its fields."""
        pass

    @abstractmethod
    def update_stream(self, stream_id: int, **fields: Any) -> StreamRecord:
        pass

    @abstractmethod
    def get_stream(self, url: str) -> Optional[StreamRecord]:
        pass

    @abstractmethod
    def select_streams(self, **filters: Any) -> list[StreamRecord]:
        """Streams whose fields equal all given values."""
        pass

    @abstractmethod
    def select_layers(self, stream_id: Optional[int] = None, **filters: Any) -> list[LayerRecord]:
        pass

    @abstractmethod
    def insert_layers(self, layers: list[LayerRecord]) -> list[LayerRecord]:
        """Insert new layers. Raises CatalogError if (wfs_id, name) already exists."""
        pass

    @abstractmethod
    def update_layer(self, layer_id: int, **fields: Any) -> LayerRecord:
        pass

    def mark_inactive(self, url: str, reason: Optional[str] = None) -> Optional[StreamRecord]:
        """Flag a stream as inactive. Streams are never deleted."""
        stream = self.get_stream(url)
        if stream is None:
            return None
        return self.update_stream(stream.id, ist_aktiv=False, letzter_fehler=reason)


def _check_fields(model: type, fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(model.model_fields)
    if unknown:
        raise CatalogError(f"Unknown {model.__name__} fields: {', '.join(sorted(unknown))}")


def _matches(record: Any, filters: dict[str, Any]) -> bool:
    return all(getattr(record, key) == value for key, value in filters.items())


class InMemoryCatalogStore(CatalogStore):
    """Catalog kept in dictionaries.

    Examples:
        >>> store = InMemoryCatalogStore()
        >>> stream = store.upsert_stream("https://example.com/wfs", {"service_title": "Test"})
        >>> store.upsert_stream("https://example.com/wfs", {"layer_anzahl": 2}).id == stream.id
        True
    """

    def __init__(self):
        self._streams: dict[int, StreamRecord] = {}
        self._stream_ids: dict[str, int] = {}
        self._layers: dict[int, LayerRecord] = {}
        self._layer_keys: dict[tuple[int, str], int] = {}
        self._next_stream_id = 1
        self._next_layer_id = 1

    def upsert_stream(self, url: str, fields: dict[str, Any]) -> StreamRecord:
        _check_fields(StreamRecord, fields)
        fields = {k: v for k, v in fields.items() if k not in ("id", "url")}

        stream_id = self._stream_ids.get(url)
        if stream_id is None:
            record = StreamRecord(id=self._next_stream_id, url=url, **fields)
            self._streams[record.id] = record
            self._stream_ids[url] = record.id
            self._next_stream_id += 1
            logger.debug("Inserted stream %d: %s", record.id, url)
            return record
        return self.update_stream(stream_id, **fields)

    def update_stream(self, stream_id: int, **fields: Any) -> StreamRecord:
        if stream_id not in self._streams:
            raise CatalogError(f"Unknown stream id: {stream_id}")
        _check_fields(StreamRecord, fields)
        fields.pop("id", None)
        fields.pop("url", None)
        record = self._streams[stream_id].model_copy(update=fields)
        # Re-validate so wrong types do not slip in through model_copy
        record = StreamRecord.model_validate(record.model_dump())
        self._streams[stream_id] = record
        return record

    def get_stream(self, url: str) -> Optional[StreamRecord]:
        stream_id = self._stream_ids.get(url)
        return self._streams.get(stream_id) if stream_id is not None else None

    def select_streams(self, **filters: Any) -> list[StreamRecord]:
        _check_fields(StreamRecord, filters)
        return [s for s in self._streams.values() if _matches(s, filters)]

    def select_layers(self, stream_id: Optional[int] = None, **filters: Any) -> list[LayerRecord]:
        _check_fields(LayerRecord, filters)
        if stream_id is not None:
            filters["wfs_id"] = stream_id
        return [layer for layer in self._layers.values() if _matches(layer, filters)]

    def insert_layers(self, layers: list[LayerRecord]) -> list[LayerRecord]:
        keys = [(layer.wfs_id, layer.name) for layer in layers]
        for layer, key in zip(layers, keys):
            if layer.wfs_id not in self._streams:
                raise CatalogError(f"Unknown stream id: {layer.wfs_id}")
            if key in self._layer_keys:
                raise CatalogError(f"Layer '{layer.name}' already exists for stream {layer.wfs_id}")
        if len(set(keys)) != len(keys):
            raise CatalogError("Duplicate layer names in batch")

        inserted = []
        for layer, key in zip(layers, keys):
            record = layer.model_copy(update={"id": self._next_layer_id})
            self._layers[record.id] = record
            self._layer_keys[key] = record.id
            self._next_layer_id += 1
            inserted.append(record)
        return inserted

    def update_layer(self, layer_id: int, **fields: Any) -> LayerRecord:
        if layer_id not in self._layers:
            raise CatalogError(f"Unknown layer id: {layer_id}")
        _check_fields(LayerRecord, fields)
        for key in ("id", "wfs_id", "name"):
            fields.pop(key, None)
        record = self._layers[layer_id].model_copy(update=fields)
        record = LayerRecord.model_validate(record.model_dump())
        self._layers[layer_id] = record
        return record

    def to_dict(self) -> dict[str, Any]:
        """Serializable snapshot of the catalog."""
        return {
            "streams": [s.model_dump(mode="json") for s in self._streams.values()],
            "layers": [layer.model_dump(mode="json") for layer in self._layers.values()],
        }

    def save_json(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info("Saved catalog to %s", path)
        return path

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryCatalogStore":
        store = cls()
        for raw in data.get("streams", []):
            record = StreamRecord.model_validate(raw)
            if record.id is None:
                raise CatalogError(f"Stream without id: {record.url}")
            store._streams[record.id] = record
            store._stream_ids[record.url] = record.id
        for raw in data.get("layers", []):
            record = LayerRecord.model_validate(raw)
            if record.id is None:
                raise CatalogError(f"Layer without id: {record.name}")
            store._layers[record.id] = record
            store._layer_keys[(record.wfs_id, record.name)] = record.id
        store._next_stream_id = max(store._streams, default=0) + 1
        store._next_layer_id = max(store._layers, default=0) + 1
        return store

    @classmethod
    def load_json(cls, path: Path) -> "InMemoryCatalogStore":
        """Load a catalog written by ``save_json``.

        Raises:
            FileNotFoundError: If the file does not exist
            CatalogError: If the file is not a catalog
        """
        with open(path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise CatalogError(f"Invalid catalog file {path}: {e}") from e
        if not isinstance(data, dict):
            raise CatalogError(f"Invalid catalog file {path}: expected an object")
        return cls.from_dict(data)
