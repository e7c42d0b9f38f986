"""Avro value schema for replayed ADS-B Exchange operation events."""

from __future__ import annotations

from typing import Any, Dict, List

import fastavro


def _nullable(name: str, avro_type: str) -> Dict[str, Any]:
    return {"name": name, "type": ["null", avro_type], "default": None}


_NULLABLE_FIELDS: List[tuple[str, str]] = [
    ("airport", "string"),
    ("registration", "string"),
    ("flight", "string"),
    ("ac_type", "string"),
    ("runway", "string"),
    ("flight_link", "string"),
    ("squawk", "string"),
    ("signal_type", "string"),
    ("category", "string"),
    ("year", "int"),
    ("manufacturer", "string"),
    ("model", "string"),
    ("ownop", "string"),
    ("faa_pia", "boolean"),
    ("faa_ladd", "boolean"),
    ("short_type", "string"),
    ("mil", "boolean"),
    ("apt_type", "string"),
    ("name", "string"),
    ("continent", "string"),
    ("iso_country", "string"),
    ("iso_region", "string"),
    ("municipality", "string"),
    ("scheduled_service", "boolean"),
    ("iata_code", "string"),
    ("elev", "int"),
]

OPERATION_TYPES = ("landing", "takeoff", "unknown")

# ``time`` is a timestamp-millis long: epoch milliseconds of the publish.
OPERATION_EVENT_SCHEMA: Dict[str, Any] = {
    "type": "record",
    "name": "AdsbExchangeOperationEvent",
    "namespace": "com.yourorg.adsb",
    "fields": [
        {"name": "time", "type": {"type": "long", "logicalType": "timestamp-millis"}},
        {"name": "icao", "type": "string"},
        {
            "name": "operation",
            "type": {
                "type": "enum",
                "name": "OperationType",
                "symbols": list(OPERATION_TYPES),
            },
            "default": "unknown",
        },
        *(_nullable(name, avro_type) for name, avro_type in _NULLABLE_FIELDS),
    ],
}

FIELD_NAMES = tuple(field["name"] for field in OPERATION_EVENT_SCHEMA["fields"])


def parse_schema(schema: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Return the fastavro-parsed form of ``schema`` (defaults to the event schema)."""

    return fastavro.parse_schema(schema or OPERATION_EVENT_SCHEMA)


__all__ = ["OPERATION_EVENT_SCHEMA", "OPERATION_TYPES", "FIELD_NAMES", "parse_schema"]
