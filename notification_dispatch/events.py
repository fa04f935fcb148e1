"""
Decoding of Firestore document events delivered to Cloud Functions.

The event data carries the document before and after the write in the
Firestore REST representation, where every field is a typed value such as
``{"stringValue": "abc"}``. The helpers here turn that into plain dictionaries
so handlers never see the wire format.
"""
import base64
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

DOCUMENTS_MARKER = "/documents/"
_PARAM_PATTERN = re.compile(r"^\{(\w+)\}$")


def decode_value(value: Dict[str, Any]) -> Any:
    """
    Convert one Firestore typed value to a Python value.

    Args:
        value: Typed value dictionary, e.g. {"integerValue": "3"}

    Returns:
        The decoded Python value
    """
    if not value or "nullValue" in value:
        return None
    if "stringValue" in value:
        return value["stringValue"]
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        # int64 values are sent as decimal strings
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return _parse_timestamp(value["timestampValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "geoPointValue" in value:
        point = value["geoPointValue"]
        return {
            "latitude": float(point.get("latitude", 0.0)),
            "longitude": float(point.get("longitude", 0.0)),
        }
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))

    logger.warning(f"Unknown Firestore value type: {list(value.keys())}")
    return None


def decode_fields(fields: Optional[Dict[str, Dict[str, Any]]]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in (fields or {}).items()}


def _parse_timestamp(raw: str) -> datetime:
    # Firestore emits RFC 3339 with nanoseconds, fromisoformat takes microseconds
    text = raw.replace("Z", "+00:00")
    match = re.match(r"^(.*T\d{2}:\d{2}:\d{2})(\.\d+)?(.*)$", text)
    if match and match.group(2):
        text = match.group(1) + "." + match.group(2)[1:7].ljust(6, "0") + match.group(3)
    return datetime.fromisoformat(text)


def document_path(name: str) -> str:
    """Strip the projects/.../documents/ prefix from a document resource name."""
    if DOCUMENTS_MARKER in name:
        return name.split(DOCUMENTS_MARKER, 1)[1]
    if name.startswith("documents/"):
        return name[len("documents/"):]
    return name.strip("/")


def match_path(template: str, path: str) -> Optional[Dict[str, str]]:
    """
    Match a document path against a template like ``messages/{messageId}``.

    Returns:
        The extracted parameters, or None if the path does not fit the template
    """
    template_parts = template.strip("/").split("/")
    path_parts = path.strip("/").split("/")
    if len(template_parts) != len(path_parts):
        return None

    params = {}
    for expected, actual in zip(template_parts, path_parts):
        param = _PARAM_PATTERN.match(expected)
        if param:
            params[param.group(1)] = actual
        elif expected != actual:
            return None
    return params


class DocumentSnapshot:
    """One side (before or after) of a document write."""

    def __init__(self, path: Optional[str], data: Optional[Dict[str, Any]]):
        self.path = path
        self._data = data

    @classmethod
    def from_event_document(cls, document: Optional[Dict[str, Any]]) -> "DocumentSnapshot":
        if not document or not document.get("name"):
            return cls(None, None)
        return cls(document_path(document["name"]), decode_fields(document.get("fields")))

    @property
    def exists(self) -> bool:
        return self._data is not None

    @property
    def empty(self) -> bool:
        return not self._data

    @property
    def id(self) -> Optional[str]:
        if not self.path:
            return None
        return self.path.rsplit("/", 1)[-1]

    def to_dict(self) -> Optional[Dict[str, Any]]:
        if self._data is None:
            return None
        return dict(self._data)

    def get(self, field: str, default: Any = None) -> Any:
        if not self._data:
            return default
        return self._data.get(field, default)


class DocumentChange:
    """Before/after snapshots of a write plus the trigger context."""

    def __init__(self,
                 event_id: Optional[str],
                 before: DocumentSnapshot,
                 after: DocumentSnapshot,
                 params: Optional[Dict[str, str]] = None,
                 update_mask: Optional[list] = None):
        self.event_id = event_id
        self.before = before
        self.after = after
        self.params = params or {}
        self.update_mask = update_mask or []

    @property
    def path(self) -> Optional[str]:
        return self.after.path or self.before.path

    @classmethod
    def from_event_data(cls,
                        data: Union[bytes, str, Dict[str, Any], None],
                        event_id: Optional[str] = None,
                        path_template: Optional[str] = None) -> "DocumentChange":
        """
        Build a change from the JSON body of a Firestore document event.

        Args:
            data: Event data with "oldValue", "value" and "updateMask" keys
            event_id: Id of the delivering event, used for idempotency
            path_template: Template used to extract path parameters

        Returns:
            DocumentChange; missing sides decode to non-existent snapshots
        """
        if isinstance(data, (bytes, str)):
            data = json.loads(data) if data else {}
        data = data or {}

        before = DocumentSnapshot.from_event_document(data.get("oldValue"))
        after = DocumentSnapshot.from_event_document(data.get("value"))
        update_mask = (data.get("updateMask") or {}).get("fieldPaths", [])

        change = cls(event_id, before, after, update_mask=update_mask)
        if path_template and change.path:
            params = match_path(path_template, change.path)
            if params is None:
                logger.warning(f"Document {change.path} does not match {path_template}")
            change.params = params or {}
        return change
