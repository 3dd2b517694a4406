"""Namespace-agnostic XML trees.

Raw XML is turned into nested dicts with xmltodict:
- namespace prefixes are stripped from elements and attributes
  (``wfs:FeatureType`` -> ``FeatureType``, ``@xlink:href`` -> ``@href``)
- ``xmlns`` declarations are dropped
- attributes live under ``@name``, mixed text under ``#text``
- known repeatable elements are always lists, even with one entry

The lookup helpers below accept any node shape (dict, list, str, None)
and match tag names exactly first, then case-insensitively.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Union
from xml.parsers.expat import ExpatError

import xmltodict


class XMLStructureError(Exception):
    """Raised when a document cannot be tokenized as XML."""

    pass


# Local names (lowercase) that are always returned as lists
REPEATABLE_ELEMENTS = frozenset(
    {
        "featuretype",
        "othercrs",
        "othersrs",
        "srs",
        "format",
        "keyword",
        "keywords",
        "operation",
        "parameter",
        "value",
        "constraint",
        "wgs84boundingbox",
        "latlongboundingbox",
        "metadataurl",
        "servicetypeversion",
        "featuremember",
        "member",
        "exception",
        "exceptiontext",
        "serviceexception",
    }
)

_BOM = "\ufeff"
_STRAY_AMPERSAND = re.compile(r"&(?!(?:[A-Za-z][\w.-]*|#\d+|#x[0-9A-Fa-f]+);)")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _local_name(name: str) -> str:
    return name.rsplit(":", 1)[-1]


def _strip_namespaces(path: Any, key: str, value: Any) -> Optional[tuple[str, Any]]:
    if key.startswith("@"):
        attr = key[1:]
        if attr == "xmlns" or attr.startswith("xmlns:"):
            return None
        return "@" + _local_name(attr), value
    return _local_name(key), value


def _force_list(path: Any, key: str, value: Any) -> bool:
    return key.lower() in REPEATABLE_ELEMENTS


def _prepare(xml: Union[str, bytes]) -> Union[str, bytes]:
    if isinstance(xml, bytes):
        if xml.startswith(b"\xef\xbb\xbf"):
            xml = xml[3:]
        xml = xml.lstrip()
        start = xml.find(b"<")
    else:
        xml = xml.lstrip(_BOM).lstrip()
        start = xml.find("<")
    if start < 0:
        raise XMLStructureError("Kein XML-Inhalt gefunden")
    # Servers occasionally emit warnings or junk before the document
    return xml[start:]


def _repair(xml: Union[str, bytes]) -> str:
    if isinstance(xml, bytes):
        xml = xml.decode("utf-8", errors="replace")
    xml = _CONTROL_CHARS.sub("", xml)
    return _STRAY_AMPERSAND.sub("&amp;", xml)


def _parse(xml: Union[str, bytes]) -> dict[str, Any]:
    return xmltodict.parse(
        xml,
        postprocessor=_strip_namespaces,
        force_list=_force_list,
        disable_entities=True,
    )


def normalize(xml: Union[str, bytes]) -> dict[str, Any]:
    """Parse XML into a namespace-free dict tree.

    Documents that fail to parse are retried once after escaping stray
    ampersands and removing control characters, two defects that are common
    in hand-edited capabilities documents.

    Args:
        xml: Raw document (str or bytes)

    Returns:
        Dict with a single key, the local name of the root element

    Raises:
        XMLStructureError: If the document cannot be tokenized as XML
    """
    if xml is None:
        raise XMLStructureError("Leeres Dokument")
    prepared = _prepare(xml)

    try:
        tree = _parse(prepared)
    except (ExpatError, ValueError) as first_error:
        try:
            tree = _parse(_repair(prepared))
        except (ExpatError, ValueError):
            raise XMLStructureError(str(first_error)) from first_error

    if not tree:
        raise XMLStructureError("Dokument enthält kein Wurzelelement")
    return tree


def root_of(tree: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Return (root local name, root node). An empty root becomes {}."""
    name, node = next(iter(tree.items()))
    if not isinstance(node, dict):
        node = {"#text": node} if node else {}
    return name, node


def as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def text(value: Any) -> Optional[str]:
    """Text content of a node; first non-empty entry for lists."""
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, dict):
        return text(value.get("#text"))
    if isinstance(value, list):
        for item in value:
            found = text(item)
            if found:
                return found
        return None
    return str(value)


def texts(value: Any) -> list[str]:
    """Text content of every entry, skipping empty ones."""
    result = []
    for item in as_list(value):
        found = text(item)
        if found:
            result.append(found)
    return result


def _lookup(node: dict, name: str) -> Any:
    if name in node:
        return node[name]
    lowered = name.lower()
    for key, value in node.items():
        if key.lower() == lowered:
            return value
    return None


def child(node: Any, name: str) -> Any:
    """Child element (or ``@attr``) of a node; lists use their first dict entry."""
    if isinstance(node, list):
        for item in node:
            if isinstance(item, dict):
                found = _lookup(item, name)
                if found is not None:
                    return found
        return None
    if isinstance(node, dict):
        return _lookup(node, name)
    return None


def path(node: Any, *names: str) -> Any:
    """Follow a chain of child names. Returns None as soon as one is missing."""
    for name in names:
        node = child(node, name)
        if node is None:
            return None
    return node


def attr(node: Any, name: str) -> Optional[str]:
    return text(child(node, "@" + name))


def _iter_matches(node: Any, lowered: str) -> Iterator[Any]:
    if isinstance(node, list):
        for item in node:
            yield from _iter_matches(item, lowered)
    elif isinstance(node, dict):
        for key, value in node.items():
            if key.startswith("@") or key == "#text":
                continue
            if key.lower() == lowered:
                yield from as_list(value)
            else:
                yield from _iter_matches(value, lowered)


def find_all(node: Any, name: str) -> list:
    """All elements with this local name anywhere below ``node`` (document order)."""
    return list(_iter_matches(node, name.lower()))


def find_first(node: Any, name: str) -> Any:
    return next(_iter_matches(node, name.lower()), None)


@dataclass(frozen=True)
class XMLDocument:
    """A parsed document: raw text plus normalized tree."""

    raw: str
    tree: dict[str, Any]
    root_name: str
    root: dict[str, Any]

    @classmethod
    def from_xml(cls, xml: Union[str, bytes]) -> "XMLDocument":
        """Parse a document.

        Raises:
            XMLStructureError: If the document cannot be tokenized as XML
        """
        tree = normalize(xml)
        root_name, root = root_of(tree)
        raw = xml.decode("utf-8", errors="replace") if isinstance(xml, bytes) else xml
        return cls(raw=raw, tree=tree, root_name=root_name, root=root)
