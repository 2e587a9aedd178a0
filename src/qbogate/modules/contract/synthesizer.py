"""Deterministic mock responses for contract operations."""

import json
import logging
from dataclasses import dataclass
from typing import Any

from .models import Operation

logger = logging.getLogger(__name__)

FALLBACK_STATUS = 501
JSON_MEDIA = "application/json"
MAX_SAMPLE_DEPTH = 8

_STRING_FORMATS = {
    "date-time": "1970-01-01T00:00:00Z",
    "date": "1970-01-01",
    "time": "00:00:00",
    "email": "user@example.com",
    "uuid": "00000000-0000-0000-0000-000000000000",
    "uri": "https://example.com",
    "url": "https://example.com",
    "hostname": "example.com",
    "ipv4": "127.0.0.1",
    "ipv6": "::1",
    "byte": "",
}


@dataclass(frozen=True)
class SynthesizedResponse:
    """Status and body produced without contacting the backend."""

    status: int
    body: Any
    content_type: str = JSON_MEDIA

    def render(self) -> bytes:
        """Serialize the body; identical responses render to identical bytes."""
        if self.body is None:
            return b""
        if isinstance(self.body, str) and "json" not in self.content_type:
            return self.body.encode("utf-8")
        return json.dumps(self.body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def fallback_response(operation: Operation) -> SynthesizedResponse:
    return SynthesizedResponse(
        status=FALLBACK_STATUS,
        body={"error": "No mock response documented", "operationId": operation.operation_id},
    )


def synthesize(operation: Operation) -> SynthesizedResponse:
    """Produce the representative response of an operation. Never raises."""
    try:
        return _synthesize(operation)
    except Exception:
        logger.exception("Could not synthesize a response for %s", operation.operation_id)
        return fallback_response(operation)


def select_status(responses: dict[str, Any]) -> tuple[int, str] | None:
    """Pick the lowest documented 2xx, then 2XX/default, then the lowest status."""
    numeric = sorted(int(key) for key in responses if key.isdigit())
    for code in numeric:
        if 200 <= code < 300:
            return code, str(code)
    for key in ("2XX", "2xx", "default"):
        if key in responses:
            return 200, key
    if numeric:
        return numeric[0], str(numeric[0])
    return None


def _synthesize(operation: Operation) -> SynthesizedResponse:
    selected = select_status(operation.responses)
    if selected is None:
        return fallback_response(operation)
    status, key = selected

    content = operation.responses[key].get("content") or {}
    if not content:
        # Responses documented without a body, such as 204.
        return SynthesizedResponse(status=status, body=None)

    media = _select_media(content)
    media_obj = content[media] if isinstance(content[media], dict) else {}
    found, body = _documented_example(media_obj)
    if not found:
        schema = media_obj.get("schema")
        if not isinstance(schema, dict) or not schema:
            return fallback_response(operation)
        body = sample_from_schema(schema)
    return SynthesizedResponse(status=status, body=body, content_type=media)


def _select_media(content: dict[str, Any]) -> str:
    if JSON_MEDIA in content:
        return JSON_MEDIA
    for media in content:
        if "json" in media:
            return media
    return next(iter(content))


def _documented_example(media_obj: dict[str, Any]) -> tuple[bool, Any]:
    if "example" in media_obj:
        return True, media_obj["example"]
    examples = media_obj.get("examples")
    if isinstance(examples, dict):
        for example in examples.values():
            if isinstance(example, dict) and "value" in example:
                return True, example["value"]
    schema = media_obj.get("schema")
    if isinstance(schema, dict) and "example" in schema:
        return True, schema["example"]
    return False, None


def sample_from_schema(schema: dict[str, Any], depth: int = 0) -> Any:
    """Derive a deterministic sample value from a schema."""
    for key in ("example", "default", "const"):
        if key in schema:
            return schema[key]
    if schema.get("enum"):
        return schema["enum"][0]
    if depth >= MAX_SAMPLE_DEPTH:
        return None

    if schema.get("allOf"):
        merged: dict[str, Any] = {}
        for sub in schema["allOf"]:
            sample = sample_from_schema(sub, depth + 1)
            if isinstance(sample, dict):
                merged.update(sample)
        return merged
    for key in ("oneOf", "anyOf"):
        if schema.get(key):
            return sample_from_schema(schema[key][0], depth + 1)

    kind = schema.get("type")
    if isinstance(kind, list):
        kind = next((k for k in kind if k != "null"), None)
    if kind is None and "properties" in schema:
        kind = "object"

    if kind == "object":
        return {
            name: sample_from_schema(prop, depth + 1)
            for name, prop in (schema.get("properties") or {}).items()
            if isinstance(prop, dict) and not prop.get("writeOnly")
        }
    if kind == "array":
        items = schema.get("items")
        return [sample_from_schema(items, depth + 1)] if isinstance(items, dict) and items else []
    if kind == "string":
        return _STRING_FORMATS.get(schema.get("format", ""), "string")
    if kind == "integer":
        return int(schema.get("minimum", 0))
    if kind == "number":
        return schema.get("minimum", 0)
    if kind == "boolean":
        return True
    return None
