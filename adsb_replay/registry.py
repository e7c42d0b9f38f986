"""Confluent Schema Registry client and Avro wire-format encoder."""

from __future__ import annotations

import io
import json
import logging
import struct
from typing import Any, Dict, Mapping, Optional

import fastavro
import httpx

from .errors import EncodingError, RegistryError
from .schema import OPERATION_EVENT_SCHEMA, parse_schema

log = logging.getLogger(__name__)

MAGIC_BYTE = 0
_HEADER = struct.Struct(">bI")
_CONTENT_TYPE = "application/vnd.schemaregistry.v1+json"


class SchemaRegistryClient:
    """Minimal async client covering schema registration."""

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        auth = (username, password) if username and password else None
        self.url = url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.url,
            auth=auth,
            timeout=timeout,
            headers={"Accept": _CONTENT_TYPE, "Content-Type": _CONTENT_TYPE},
            transport=transport,
        )

    async def register(self, subject: str, schema: Mapping[str, Any]) -> int:
        """Register ``schema`` under ``subject`` and return its global id.

        Registering an identical schema again returns the existing id.
        """

        body = {"schemaType": "AVRO", "schema": json.dumps(schema)}
        try:
            response = await self._client.post(f"/subjects/{subject}/versions", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RegistryError(
                f"schema registration for {subject} rejected "
                f"({exc.response.status_code}): {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RegistryError(f"schema registry unreachable at {self.url}: {exc}") from exc
        try:
            schema_id = int(response.json()["id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise RegistryError(f"unexpected registry response: {response.text}") from exc
        log.debug("Registered schema id %d under subject %s", schema_id, subject)
        return schema_id

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SchemaRegistryClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class AvroEncoder:
    """Serialise payloads as magic byte + schema id + Avro binary body."""

    def __init__(self, schema_id: int, schema: Optional[Dict[str, Any]] = None) -> None:
        self.schema_id = int(schema_id)
        self._parsed = parse_schema(schema or OPERATION_EVENT_SCHEMA)

    def encode(self, payload: Mapping[str, Any]) -> bytes:
        buffer = io.BytesIO()
        buffer.write(_HEADER.pack(MAGIC_BYTE, self.schema_id))
        try:
            fastavro.schemaless_writer(buffer, self._parsed, dict(payload))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise EncodingError(f"payload does not match schema {self.schema_id}: {exc}") from exc
        return buffer.getvalue()


def decode(data: bytes, schema: Optional[Dict[str, Any]] = None) -> tuple[int, Dict[str, Any]]:
    """Inverse of ``AvroEncoder.encode``; returns ``(schema_id, payload)``."""

    if len(data) < _HEADER.size:
        raise EncodingError("message shorter than the wire-format header")
    magic, schema_id = _HEADER.unpack_from(data)
    if magic != MAGIC_BYTE:
        raise EncodingError(f"unknown magic byte {magic}")
    parsed = parse_schema(schema or OPERATION_EVENT_SCHEMA)
    payload = fastavro.schemaless_reader(io.BytesIO(data[_HEADER.size:]), parsed)
    return schema_id, payload


__all__ = ["SchemaRegistryClient", "AvroEncoder", "decode", "MAGIC_BYTE"]
