"""HTTP/1.1 request parsing and response writing over asyncio streams."""

import asyncio
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qs, urlsplit

from qbogate.errors import MalformedRequest

logger = logging.getLogger(__name__)

HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-connection",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)
MAX_HEADER_LINES = 200
MAX_BODY_BYTES = 16 * 1024 * 1024

HeaderItems = Iterable[tuple[str, str]] | Mapping[str, str]


@dataclass
class InboundRequest:
    """One request read from a caller."""

    method: str
    target: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client: str = ""

    @property
    def path(self) -> str:
        return urlsplit(self.target).path or "/"

    @property
    def query_string(self) -> str:
        return urlsplit(self.target).query

    @property
    def query(self) -> dict[str, list[str]]:
        return parse_qs(self.query_string, keep_blank_values=True)

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    @property
    def content_type(self) -> str:
        return self.header("content-type", "") or ""


async def _readline(reader: asyncio.StreamReader, timeout: float, what: str) -> bytes:
    try:
        return await asyncio.wait_for(reader.readline(), timeout=timeout)
    except (ValueError, asyncio.LimitOverrunError):
        # readline reports a line over the stream limit as ValueError
        raise MalformedRequest(f"{what} too long") from None


async def read_headers(reader: asyncio.StreamReader, timeout: float) -> dict[str, str]:
    """Read HTTP headers from a stream. Repeated headers are comma-joined."""
    headers: dict[str, str] = {}
    for _ in range(MAX_HEADER_LINES):
        line = await _readline(reader, timeout, "header line")
        text = line.decode("latin-1").strip()
        if not text:
            return headers
        key, sep, value = text.partition(":")
        if not sep:
            raise MalformedRequest(f"invalid header line {text!r}")
        key, value = key.strip(), value.strip()
        headers[key] = f"{headers[key]}, {value}" if key in headers else value
    raise MalformedRequest("too many header lines")


async def read_chunked(reader: asyncio.StreamReader, timeout: float) -> bytes:
    """Read a chunked transfer-encoded body."""
    parts: list[bytes] = []
    total = 0
    while True:
        size_line = await _readline(reader, timeout, "chunk size line")
        try:
            size = int(size_line.split(b";", 1)[0].strip(), 16)
        except ValueError:
            raise MalformedRequest("invalid chunk size") from None
        if size == 0:
            await read_headers(reader, timeout)  # trailers
            return b"".join(parts)
        total += size
        if total > MAX_BODY_BYTES:
            raise MalformedRequest("request body too large")
        parts.append(await asyncio.wait_for(reader.readexactly(size), timeout=timeout))
        await asyncio.wait_for(reader.readexactly(2), timeout=timeout)


async def read_request(
    reader: asyncio.StreamReader,
    timeout: float,
    client: str = "",
) -> InboundRequest | None:
    """Read one request. Returns None when the caller sent nothing."""
    first_line = await _readline(reader, timeout, "request line")
    if not first_line.strip():
        return None
    parts = first_line.decode("latin-1").strip().split()
    if len(parts) != 3 or not parts[2].startswith("HTTP/"):
        raise MalformedRequest(f"invalid request line {first_line[:100]!r}")
    method, target = parts[0].upper(), parts[1]

    headers = await read_headers(reader, timeout)
    lowered = {k.lower(): v for k, v in headers.items()}
    if "chunked" in lowered.get("transfer-encoding", "").lower():
        body = await read_chunked(reader, timeout)
    else:
        try:
            length = int(lowered.get("content-length", "0"))
        except ValueError:
            raise MalformedRequest("invalid Content-Length") from None
        if length < 0 or length > MAX_BODY_BYTES:
            raise MalformedRequest("invalid Content-Length")
        body = await asyncio.wait_for(reader.readexactly(length), timeout=timeout) if length else b""

    return InboundRequest(method=method, target=target, headers=headers, body=body, client=client)


def _items(headers: HeaderItems | None) -> list[tuple[str, str]]:
    if headers is None:
        return []
    if isinstance(headers, Mapping):
        return list(headers.items())
    return list(headers)


def _body_forbidden(status: int) -> bool:
    return status < 200 or status in (204, 304)


class ClientResponse:
    """Response channel to one caller.

    Every write is guarded: once the response is finished or the caller's
    connection is closing, further writes are skipped.
    """

    def __init__(self, writer: asyncio.StreamWriter, head_only: bool = False):
        self._writer = writer
        self._chunked = False
        self.head_only = head_only
        self.status: int | None = None
        self.started = False
        self.finished = False
        self.bytes_sent = 0

    @property
    def closed(self) -> bool:
        return self.finished or self._writer.is_closing()

    async def start(self, status: int, headers: HeaderItems | None = None, reason: str = "") -> bool:
        """Send the status line and headers."""
        if self.started or self.closed:
            logger.debug("Ignoring response start for %s: already committed", status)
            return False
        items = [(k, v) for k, v in _items(headers) if k.lower() not in HOP_BY_HOP]
        has_length = any(k.lower() == "content-length" for k, _ in items)
        self._chunked = not has_length and not _body_forbidden(status) and not self.head_only
        if self._chunked:
            items.append(("Transfer-Encoding", "chunked"))
        items.append(("Connection", "close"))

        if not reason:
            try:
                reason = HTTPStatus(status).phrase
            except ValueError:
                reason = ""
        head = [f"HTTP/1.1 {status} {reason}".rstrip()]
        head.extend(f"{key}: {value}" for key, value in items)
        self.started = True
        self.status = status
        return await self._send(("\r\n".join(head) + "\r\n\r\n").encode("latin-1"))

    async def write(self, chunk: bytes) -> bool:
        """Send part of the body. Returns False when the caller is gone."""
        if not self.started or self.closed:
            return False
        if not chunk or self.head_only:
            return True
        data = b"%x\r\n%s\r\n" % (len(chunk), chunk) if self._chunked else chunk
        if not await self._send(data):
            return False
        self.bytes_sent += len(chunk)
        return True

    async def finish(self) -> None:
        """Complete the response; safe to call more than once."""
        if self.finished:
            return
        if self.started and self._chunked and not self._writer.is_closing():
            await self._send(b"0\r\n\r\n")
        self.finished = True

    async def send(
        self,
        status: int,
        body: bytes = b"",
        headers: HeaderItems | None = None,
        content_type: str | None = None,
        reason: str = "",
    ) -> bool:
        """Send a complete response in one unit."""
        items = [(k, v) for k, v in _items(headers) if k.lower() != "content-length"]
        if content_type and not any(k.lower() == "content-type" for k, _ in items):
            items.append(("Content-Type", content_type))
        if not _body_forbidden(status):
            items.append(("Content-Length", str(len(body))))
        if not await self.start(status, items, reason):
            return False
        if body and not _body_forbidden(status):
            await self.write(body)
        await self.finish()
        return True

    async def send_json(self, status: int, payload: Any) -> bool:
        body = json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")
        return await self.send(status, body, content_type="application/json")

    def abort(self) -> None:
        """Drop the connection without completing the response."""
        self.finished = True
        self._writer.close()

    async def _send(self, data: bytes) -> bool:
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            logger.debug("Caller went away: %s", exc)
            self.finished = True
            return False
        return True
