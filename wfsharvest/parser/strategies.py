"""Ordered extraction strategies.

Each metadata field is extracted by a list of strategies tried in order;
the first one that returns a value wins. Tree strategies come first, raw
text patterns last. The lists are deliberately tolerant: real capabilities
documents put the same information in many different places.
"""

import html
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from wfsharvest.parser.xmltree import XMLDocument

logger = logging.getLogger("wfsharvest.parser")

T = TypeVar("T")

_CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_TAGS = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class ExtractionStrategy(Generic[T]):
    """A named way of finding one field in a document."""

    name: str
    extract: Callable[[XMLDocument], Optional[T]]


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, set, dict)):
        return len(value) > 0
    return True


def run_strategies(
    strategies: Sequence[ExtractionStrategy[T]],
    doc: XMLDocument,
    field: str = "",
) -> Optional[T]:
    """Try strategies in order and return the first non-empty result.

    Args:
        strategies: Ordered strategies
        doc: Parsed document
        field: Field name, used in debug logs

    Returns:
        First non-empty value, or None when every strategy misses
    """
    for position, strategy in enumerate(strategies):
        value = strategy.extract(doc)
        if _has_value(value):
            if position > 0:
                logger.debug("%s resolved by fallback strategy '%s'", field, strategy.name)
            return value
    logger.debug("%s: no strategy matched", field)
    return None


def _tag(name: str) -> str:
    return rf"(?:[\w.-]+:)?{re.escape(name)}"


def clean_text(value: str) -> Optional[str]:
    """Unwrap CDATA, drop nested tags, unescape entities and trim."""
    value = _CDATA.sub(lambda m: m.group(1), value)
    value = _TAGS.sub("", value)
    value = html.unescape(value).strip()
    return value or None


def raw_element_text(raw: str, element: str, container: Optional[str] = None) -> Optional[str]:
    """Text of the first ``element`` in raw XML, with any namespace prefix.

    Args:
        raw: Raw XML text
        element: Local element name, e.g. "Title"
        container: Optional enclosing element the match must appear in

    Returns:
        Cleaned text or None
    """
    if container:
        block = re.search(
            rf"<{_tag(container)}\b[^>]*>(.*?)</{_tag(container)}\s*>",
            raw,
            re.DOTALL | re.IGNORECASE,
        )
        if not block:
            return None
        raw = block.group(1)

    match = re.search(
        rf"<{_tag(element)}\b[^>]*>(.*?)</{_tag(element)}\s*>",
        raw,
        re.DOTALL | re.IGNORECASE,
    )
    if not match:
        return None
    return clean_text(match.group(1))


def raw_attribute(raw: str, element: str, attribute: str) -> Optional[str]:
    """Value of ``attribute`` (any prefix) on the first ``element`` in raw XML."""
    match = re.search(
        rf"<{_tag(element)}\b[^>]*?\s{_tag(attribute)}\s*=\s*[\"']([^\"']+)[\"']",
        raw,
        re.DOTALL | re.IGNORECASE,
    )
    if not match:
        return None
    return clean_text(match.group(1))
