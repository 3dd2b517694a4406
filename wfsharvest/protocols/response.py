"""GetFeature response interpretation.

A response body is decoded exactly once into a tagged ``Payload``
(json, xml or unparseable) and then classified into one of four kinds:

- ``features``: at least one feature came back
- ``empty``: a valid feature collection without features
- ``exception``: an OGC exception report (message kept verbatim)
- ``malformed``: anything else

Empty and exception are deliberately distinct from malformed: a layer that
answers with an empty collection is queryable.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel

from wfsharvest.parser.capabilities import EXCEPTION_ROOTS, exception_message
from wfsharvest.parser.xmltree import XMLDocument, XMLStructureError, as_list, attr, find_all
from wfsharvest.protocols.fetcher import decode_body

MEMBER_ELEMENTS = ("featureMember", "member")


class PayloadKind(str, Enum):
    JSON = "json"
    XML = "xml"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class Payload:
    """Decoded response body.

    ``value`` is the parsed JSON value for ``json``, an XMLDocument for
    ``xml`` and None for ``unparseable``. ``raw`` always holds the text.
    """

    kind: PayloadKind
    value: Any
    raw: str


def decode_payload(body: Union[str, bytes], content_type: Optional[str] = None) -> Payload:
    """Decide once whether a body is JSON, XML or neither."""
    raw = decode_body(body, content_type) if isinstance(body, bytes) else body or ""
    stripped = raw.lstrip("\ufeff \t\r\n")
    content_type = (content_type or "").lower()

    looks_json = "json" in content_type and not stripped.startswith("<")
    if stripped.startswith(("{", "[")) or looks_json:
        try:
            return Payload(PayloadKind.JSON, json.loads(stripped), raw)
        except ValueError:
            return Payload(PayloadKind.UNPARSEABLE, None, raw)

    if stripped.startswith("<"):
        try:
            return Payload(PayloadKind.XML, XMLDocument.from_xml(stripped), raw)
        except XMLStructureError:
            pass
    return Payload(PayloadKind.UNPARSEABLE, None, raw)


class ResponseKind(str, Enum):
    FEATURES = "features"
    EMPTY = "empty"
    EXCEPTION = "exception"
    MALFORMED = "malformed"


class ResponseClassification(BaseModel):
    """Result of interpreting one GetFeature response."""

    kind: ResponseKind
    payload_kind: PayloadKind
    feature_count: Optional[int] = None
    exception_text: Optional[str] = None
    exception_code: Optional[str] = None
    detail: Optional[str] = None

    @property
    def queryable(self) -> bool:
        return self.kind in (ResponseKind.FEATURES, ResponseKind.EMPTY)


def _json_exception(value: dict) -> tuple[str, Optional[str]]:
    messages, code = [], None
    for entry in as_list(value.get("exceptions")):
        if isinstance(entry, dict):
            message = entry.get("text") or entry.get("ExceptionText") or entry.get("message")
            code = code or entry.get("code") or entry.get("exceptionCode")
            if message:
                messages.append(str(message).strip())
        elif entry:
            messages.append(str(entry).strip())
    return "; ".join(messages) or "ohne Meldungstext", code


def _classify_json(value: Any) -> ResponseClassification:
    if not isinstance(value, dict):
        return ResponseClassification(
            kind=ResponseKind.MALFORMED,
            payload_kind=PayloadKind.JSON,
            detail="JSON-Antwort ist kein Objekt",
        )

    if "exceptions" in value:
        message, code = _json_exception(value)
        return ResponseClassification(
            kind=ResponseKind.EXCEPTION,
            payload_kind=PayloadKind.JSON,
            exception_text=message,
            exception_code=code,
        )

    features = value.get("features")
    if isinstance(features, list):
        return ResponseClassification(
            kind=ResponseKind.FEATURES if features else ResponseKind.EMPTY,
            payload_kind=PayloadKind.JSON,
            feature_count=len(features),
        )
    if value.get("type") == "FeatureCollection":
        return ResponseClassification(
            kind=ResponseKind.EMPTY, payload_kind=PayloadKind.JSON, feature_count=0
        )
    return ResponseClassification(
        kind=ResponseKind.MALFORMED,
        payload_kind=PayloadKind.JSON,
        detail="JSON ohne 'features'",
    )


def _member_count(doc: XMLDocument) -> int:
    count = 0
    for name in MEMBER_ELEMENTS:
        count += len(find_all(doc.root, name))
    for container in find_all(doc.root, "featureMembers"):
        if isinstance(container, dict):
            for key, value in container.items():
                if not key.startswith(("@", "#")):
                    count += len(as_list(value))
    return count


def _classify_xml(doc: XMLDocument) -> ResponseClassification:
    root = doc.root_name.lower()
    if root in EXCEPTION_ROOTS:
        exception = next(iter(find_all(doc.root, "Exception")), None)
        service_exception = next(iter(find_all(doc.root, "ServiceException")), None)
        code = attr(exception, "exceptionCode") or attr(service_exception, "code")
        return ResponseClassification(
            kind=ResponseKind.EXCEPTION,
            payload_kind=PayloadKind.XML,
            exception_text=exception_message(doc),
            exception_code=code,
        )

    count = _member_count(doc)
    if count:
        return ResponseClassification(
            kind=ResponseKind.FEATURES, payload_kind=PayloadKind.XML, feature_count=count
        )

    if "featurecollection" in root or attr(doc.root, "numberReturned") is not None:
        return ResponseClassification(
            kind=ResponseKind.EMPTY, payload_kind=PayloadKind.XML, feature_count=0
        )
    return ResponseClassification(
        kind=ResponseKind.MALFORMED,
        payload_kind=PayloadKind.XML,
        detail=f"Unerwartetes Wurzelelement '{doc.root_name}'",
    )


def classify_payload(payload: Payload) -> ResponseClassification:
    """Classify an already decoded payload."""
    if payload.kind == PayloadKind.JSON:
        return _classify_json(payload.value)
    if payload.kind == PayloadKind.XML:
        return _classify_xml(payload.value)
    snippet = payload.raw.strip()[:80]
    return ResponseClassification(
        kind=ResponseKind.MALFORMED,
        payload_kind=PayloadKind.UNPARSEABLE,
        detail=f"Weder JSON noch XML: {snippet!r}" if snippet else "Leere Antwort",
    )


def classify_response(
    body: Union[str, bytes],
    content_type: Optional[str] = None,
    status_code: int = 200,
) -> ResponseClassification:
    """Classify a GetFeature response.

    Args:
        body: Response body
        content_type: Content-Type header
        status_code: HTTP status; a feature collection delivered with an
            error status is not trusted and counts as malformed

    Returns:
        ResponseClassification

    Examples:
        >>> classify_response('<wfs:FeatureCollection numberReturned="0"/>').kind
        <ResponseKind.EMPTY: 'empty'>
    """
    result = classify_payload(decode_payload(body, content_type))
    if not 200 <= status_code < 300 and result.queryable:
        return result.model_copy(
            update={"kind": ResponseKind.MALFORMED, "detail": f"HTTP {status_code}"}
        )
    return result
