"""Conversion between plain Python values and Firestore REST typed values.

Firestore's v1 REST API wraps every field in a single-key object such as
``{"stringValue": "x"}`` or ``{"mapValue": {"fields": {...}}}``. Integers travel
as decimal strings and timestamps as RFC 3339 with up to nanosecond precision.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

_TS_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def format_timestamp(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond:06d}Z"


def parse_timestamp(value: str) -> datetime:
    match = _TS_RE.match((value or "").strip())
    if not match:
        raise ValueError(f"invalid_timestamp: {value!r}")
    frac = (match.group("frac") or "")[:6].ljust(6, "0")
    tz = match.group("tz")
    if tz == "Z":
        tz = "+00:00"
    return datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}").astimezone(timezone.utc)


def encode_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Object of type {value.__class__.__name__} is not Firestore serializable")


def encode_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {str(k): encode_value(v) for k, v in data.items()}


def decode_value(raw: dict[str, Any]) -> Any:
    if not isinstance(raw, dict) or not raw:
        return None
    if "nullValue" in raw:
        return None
    if "booleanValue" in raw:
        return bool(raw["booleanValue"])
    if "integerValue" in raw:
        return int(raw["integerValue"])
    if "doubleValue" in raw:
        return float(raw["doubleValue"])
    if "stringValue" in raw:
        return raw["stringValue"]
    if "timestampValue" in raw:
        return parse_timestamp(raw["timestampValue"])
    if "mapValue" in raw:
        return decode_fields((raw["mapValue"] or {}).get("fields") or {})
    if "arrayValue" in raw:
        return [decode_value(v) for v in (raw["arrayValue"] or {}).get("values") or []]
    if "referenceValue" in raw:
        return raw["referenceValue"]
    if "bytesValue" in raw:
        return raw["bytesValue"]
    if "geoPointValue" in raw:
        return dict(raw["geoPointValue"] or {})
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: decode_value(v) for k, v in (fields or {}).items()}


def document_id(name: str) -> str:
    """Last path segment of a document resource name."""
    return (name or "").rstrip("/").rsplit("/", 1)[-1]
