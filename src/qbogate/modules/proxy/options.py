"""Forwarding options and relay strategy selection."""

from dataclasses import dataclass
from enum import Enum

from qbogate.config import GatewaySettings, Mode

from .http_io import InboundRequest


class RelayStrategy(str, Enum):
    """How an upstream response reaches the caller."""

    STREAMING = "streaming"  # pipe chunks through as they arrive
    BUFFERED = "buffered"  # accumulate, then relay as one unit


@dataclass(frozen=True)
class ProxyOptions:
    """Settings for one forwarding session, fixed at startup."""

    target: str
    strip_prefix: str = "/api"
    token: str | None = None
    strategy: RelayStrategy = RelayStrategy.STREAMING
    timeout: float = 30.0

    @property
    def buffered(self) -> bool:
        return self.strategy is RelayStrategy.BUFFERED

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> "ProxyOptions":
        strategy = RelayStrategy.BUFFERED if settings.mode is Mode.CAPTURE else RelayStrategy.STREAMING
        return cls(
            target=settings.upstream_base,
            strip_prefix=settings.routing_prefix,
            token=settings.token,
            strategy=strategy,
            timeout=settings.upstream_timeout,
        )

    def rewrite_path(self, path: str) -> str:
        """Strip the routing prefix from an inbound path."""
        prefix = self.strip_prefix.rstrip("/")
        if not prefix:
            return path
        if path == prefix:
            return "/"
        if path.startswith(prefix + "/"):
            return path[len(prefix) :]
        return path

    def upstream_url(self, request: InboundRequest) -> str:
        url = self.target.rstrip("/") + self.rewrite_path(request.path)
        query = request.query_string
        return f"{url}?{query}" if query else url
