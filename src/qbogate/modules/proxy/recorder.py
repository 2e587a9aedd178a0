"""Append-only NDJSON log of captured exchanges."""

import asyncio
import base64
import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .http_io import InboundRequest

logger = logging.getLogger(__name__)

BASE64 = "base64"


def iso_timestamp(moment: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and a Z suffix."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def decode_request_body(body: bytes, content_type: str) -> Any:
    """Parsed JSON for JSON content types, text otherwise, None when empty."""
    if not body:
        return None
    media = content_type.split(";", 1)[0].strip().lower()
    if media == "application/json" or media.endswith("+json"):
        try:
            return json.loads(body)
        except ValueError:
            logger.debug("Request body is not valid JSON, storing as text")
    return body.decode("utf-8", errors="replace")


def encode_response_body(body: bytes) -> tuple[str, str | None]:
    """Text for UTF-8 bodies, base64 otherwise, so the bytes can be rebuilt."""
    try:
        return body.decode("utf-8"), None
    except UnicodeDecodeError:
        return base64.b64encode(body).decode("ascii"), BASE64


def response_bytes(record: dict[str, Any]) -> bytes:
    """Rebuild the relayed response bytes from a capture record."""
    res = record.get("res") or {}
    body = res.get("body") or ""
    if res.get("bodyEncoding") == BASE64:
        try:
            return base64.b64decode(body, validate=True)
        except ValueError:
            logger.warning("Capture record has an invalid base64 body")
            return b""
    return str(body).encode("utf-8")


@dataclass(frozen=True)
class Exchange:
    """One completed request/response pair."""

    method: str
    url: str
    request_headers: dict[str, str]
    request_body: Any
    status: int
    response_body: str
    response_encoding: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_request(cls, request: InboundRequest, status: int, body: bytes) -> "Exchange":
        response_body, response_encoding = encode_response_body(body)
        return cls(
            method=request.method,
            url=request.target,
            request_headers=dict(request.headers),
            request_body=decode_request_body(request.body, request.content_type),
            status=status,
            response_body=response_body,
            response_encoding=response_encoding,
        )

    def to_record(self) -> dict[str, Any]:
        res: dict[str, Any] = {"status": self.status, "body": self.response_body}
        if self.response_encoding:
            res["bodyEncoding"] = self.response_encoding
        return {
            "ts": iso_timestamp(self.timestamp),
            "req": {
                "method": self.method,
                "url": self.url,
                "headers": self.request_headers,
                "body": self.request_body,
            },
            "res": res,
        }


class ExchangeRecorder:
    """Write exchanges to the capture log, one JSON object per line."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    async def record(self, exchange: Exchange) -> bool:
        """Append one record. Failures are logged and reported as False."""
        try:
            line = json.dumps(exchange.to_record(), ensure_ascii=False, default=str) + "\n"
            await asyncio.to_thread(self._append, line)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to record %s %s to %s: %s", exchange.method, exchange.url, self.path, e)
            return False
        return True

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)


def read_exchanges(path: Path | str) -> Iterator[dict[str, Any]]:
    """Yield recorded exchanges, skipping lines that are not valid JSON."""
    with open(path, encoding="utf-8") as f:
        for number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except ValueError:
                logger.warning("Skipping corrupt capture line %d in %s", number, path)
                continue
            if isinstance(record, dict):
                yield record
