"""Pure mapping from raw CSV rows to schema-shaped operation events.

None of these helpers raise on malformed optional cells: anything that cannot be
coerced becomes ``None`` so the Avro union falls back to ``null``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional

_INT_PREFIX = re.compile(r"^[+-]?\d+")

_STRING_FIELDS = (
    "airport",
    "registration",
    "flight",
    "ac_type",
    "runway",
    "flight_link",
    "squawk",
    "signal_type",
    "category",
    "manufacturer",
    "model",
    "ownop",
    "short_type",
    "apt_type",
    "name",
    "continent",
    "iso_country",
    "iso_region",
    "municipality",
    "iata_code",
)


def to_nullable_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_int_or_none(value: Any) -> Optional[int]:
    """Parse a leading base-10 integer (``"1998 est."`` -> 1998)."""

    text = to_nullable_string(value)
    if text is None:
        return None
    match = _INT_PREFIX.match(text)
    return int(match.group(0)) if match else None


def tf_to_bool_or_none(value: Any) -> Optional[bool]:
    text = to_nullable_string(value)
    if text is None:
        return None
    lowered = text.lower()
    if lowered in ("t", "true"):
        return True
    if lowered in ("f", "false"):
        return False
    return None


def yes_no_to_bool_or_none(value: Any) -> Optional[bool]:
    text = to_nullable_string(value)
    if text is None:
        return None
    lowered = text.lower()
    if lowered == "yes":
        return True
    if lowered == "no":
        return False
    return None


def normalize_operation(value: Any) -> str:
    text = to_nullable_string(value)
    if text is None:
        return "unknown"
    lowered = text.lower()
    return lowered if lowered in ("landing", "takeoff") else "unknown"


def record_key(row: Mapping[str, Any], field: Optional[str] = "icao") -> Optional[str]:
    """Partition key for ``row``; ``None`` when the field is blank or disabled."""

    if field is None:
        return None
    return to_nullable_string(row.get(field))


def to_operation_event(row: Mapping[str, Any], publish_time_ms: int) -> Dict[str, Any]:
    """Build an ``AdsbExchangeOperationEvent`` payload stamped with the publish time."""

    event: Dict[str, Any] = {
        "time": int(publish_time_ms),
        "icao": str(row.get("icao") or "").strip(),
        "operation": normalize_operation(row.get("operation")),
    }
    for name in _STRING_FIELDS:
        event[name] = to_nullable_string(row.get(name))
    event["year"] = to_int_or_none(row.get("year"))
    event["elev"] = to_int_or_none(row.get("elev"))
    event["faa_pia"] = tf_to_bool_or_none(row.get("faa_pia"))
    event["faa_ladd"] = tf_to_bool_or_none(row.get("faa_ladd"))
    event["mil"] = tf_to_bool_or_none(row.get("mil"))
    event["scheduled_service"] = yes_no_to_bool_or_none(row.get("scheduled_service"))
    return event


__all__ = [
    "to_nullable_string",
    "to_int_or_none",
    "tf_to_bool_or_none",
    "yes_no_to_bool_or_none",
    "normalize_operation",
    "record_key",
    "to_operation_event",
]
