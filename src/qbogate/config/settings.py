"""Immutable gateway settings built once at startup."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .getters import (
    get_capture_path,
    get_host,
    get_mode,
    get_port,
    get_spec_path,
    get_token,
    get_upstream_base,
    get_upstream_timeout,
)

logger = logging.getLogger(__name__)

ROUTING_PREFIX = "/api"
HEALTH_PATH = "/health"


class Mode(str, Enum):
    """Mutually exclusive gateway modes."""

    MOCK = "mock"
    PROXY = "proxy"
    CAPTURE = "capture"

    @property
    def forwards(self) -> bool:
        return self is not Mode.MOCK


def parse_mode(value: str | None) -> Mode:
    """Parse a mode name, falling back to mock for unknown values."""
    normalized = (value or "").strip().lower()
    try:
        return Mode(normalized)
    except ValueError:
        logger.warning("Unknown mode %r, falling back to %s", value, Mode.MOCK.value)
        return Mode.MOCK


@dataclass(frozen=True)
class GatewaySettings:
    """Process-wide configuration, fixed for the lifetime of a server."""

    mode: Mode = Mode.MOCK
    host: str = "127.0.0.1"
    port: int = 4000
    spec_path: Path = Path("QuickBooksOnlineV3.json")
    upstream_base: str = "https://quickbooks.api.intuit.com"
    token: str | None = None
    capture_path: Path = Path("captures.ndjson")
    upstream_timeout: float = 30.0
    routing_prefix: str = ROUTING_PREFIX
    health_path: str = HEALTH_PATH


def load_settings(directory: Path | None = None) -> GatewaySettings:
    """Build settings from the environment, .env file and global config."""
    return GatewaySettings(
        mode=parse_mode(get_mode(directory)),
        host=get_host(directory),
        port=get_port(directory),
        spec_path=get_spec_path(directory),
        upstream_base=get_upstream_base(directory),
        token=get_token(directory),
        capture_path=get_capture_path(directory),
        upstream_timeout=get_upstream_timeout(directory),
    )
