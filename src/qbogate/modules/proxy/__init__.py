"""Proxy module -- upstream forwarding, caller I/O and exchange capture."""

from .forwarder import ForwardResult, UpstreamForwarder, outbound_headers
from .http_io import ClientResponse, InboundRequest, read_request
from .options import ProxyOptions, RelayStrategy
from .recorder import Exchange, ExchangeRecorder, read_exchanges, response_bytes

__all__ = [
    "ClientResponse",
    "Exchange",
    "ExchangeRecorder",
    "ForwardResult",
    "InboundRequest",
    "ProxyOptions",
    "RelayStrategy",
    "UpstreamForwarder",
    "outbound_headers",
    "read_exchanges",
    "read_request",
    "response_bytes",
]
