"""Relay validated requests to the upstream origin."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx

from qbogate.errors import UpstreamError, describe_cause

from .http_io import HOP_BY_HOP, ClientResponse, InboundRequest
from .options import ProxyOptions, RelayStrategy

logger = logging.getLogger(__name__)

# Headers the forwarder sets itself rather than copying from the caller.
_REWRITTEN = HOP_BY_HOP | {"host", "content-length"}
# Set again after the buffered body is decoded.
_RECOMPUTED = {"content-length", "content-encoding"}


@dataclass
class ForwardResult:
    """Outcome of one forward; ``body`` is only set by the buffered strategy."""

    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes | None = None
    bytes_relayed: int = 0
    error: UpstreamError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


BufferedHook = Callable[[ForwardResult], Awaitable[None]]


def outbound_headers(request: InboundRequest, options: ProxyOptions) -> list[tuple[str, str]]:
    """Build the upstream header list for a request."""
    dropped = set(_REWRITTEN)
    if options.token:
        dropped.add("authorization")
    if options.buffered:
        dropped.add("accept-encoding")

    headers = [(k, v) for k, v in request.headers.items() if k.lower() not in dropped]
    if options.token:
        headers.append(("Authorization", f"Bearer {options.token}"))
    if options.buffered:
        # The captured body must be the plain bytes handed to the caller.
        headers.append(("Accept-Encoding", "identity"))
    return headers


async def relay_streaming(
    upstream: httpx.Response,
    responder: ClientResponse,
    on_buffered: BufferedHook | None = None,
) -> ForwardResult:
    """Pipe the upstream body through chunk by chunk."""
    headers = upstream.headers.multi_items()
    await responder.start(upstream.status_code, headers, upstream.reason_phrase)
    async for chunk in upstream.aiter_raw():
        if not await responder.write(chunk):
            logger.debug("Caller closed before upstream body finished")
            break
    await responder.finish()
    return ForwardResult(status=upstream.status_code, headers=headers, bytes_relayed=responder.bytes_sent)


async def relay_buffered(
    upstream: httpx.Response,
    responder: ClientResponse,
    on_buffered: BufferedHook | None = None,
) -> ForwardResult:
    """Accumulate the whole body, run the hook, then relay as one unit.

    The body is content-decoded, so the caller and the hook see the same bytes.
    """
    body = b"".join([chunk async for chunk in upstream.aiter_bytes()])
    headers = [(k, v) for k, v in upstream.headers.multi_items() if k.lower() not in _RECOMPUTED]
    result = ForwardResult(status=upstream.status_code, headers=headers, body=body)
    if on_buffered is not None:
        await on_buffered(result)
    await responder.send(upstream.status_code, body, headers, reason=upstream.reason_phrase)
    result.bytes_relayed = responder.bytes_sent
    return result


RELAYS = {
    RelayStrategy.STREAMING: relay_streaming,
    RelayStrategy.BUFFERED: relay_buffered,
}


class UpstreamForwarder:
    """Forward requests through a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "UpstreamForwarder":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def forward(
        self,
        request: InboundRequest,
        options: ProxyOptions,
        responder: ClientResponse,
        on_buffered: BufferedHook | None = None,
    ) -> ForwardResult:
        """Send ``request`` upstream and relay the response to ``responder``.

        Transport failures never propagate: the caller receives a 502 JSON
        body when nothing has been sent yet, otherwise the connection is
        dropped. The returned result carries the error either way.
        """
        url = options.upstream_url(request)
        relay = RELAYS[options.strategy]
        try:
            async with self.client.stream(
                request.method,
                url,
                headers=outbound_headers(request, options),
                content=request.body or None,
                timeout=options.timeout,
            ) as upstream:
                return await relay(upstream, responder, on_buffered)
        except (httpx.HTTPError, httpx.StreamError, OSError) as exc:
            error = UpstreamError(url, exc)
            logger.warning("Proxy error for %s %s: %s", request.method, url, describe_cause(exc))
            if responder.started:
                responder.abort()
            else:
                await responder.send_json(502, {"error": "Proxy error", "details": describe_cause(exc)})
            return ForwardResult(status=502, error=error)
