"""Configuration getter functions."""

import logging
import os
from pathlib import Path
from typing import Any

from .env_loader import load_global_config, load_local_env

logger = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}


def get_config(key: str, directory: Path | None = None, default: Any = None) -> Any:
    """
    Get configuration value with priority:
    1. Environment variable
    2. .env file in the working directory
    3. Global config file
    4. Default value

    Args:
        key: Configuration key
        directory: Optional directory holding the .env file
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    # 1. Check environment variable
    env_value = os.environ.get(key)
    if env_value:
        return env_value

    # 2. Check local .env file
    local_config = load_local_env(directory)
    if local_config.get(key):
        return local_config[key]

    # 3. Check global config
    global_config = load_global_config()
    if key in global_config and global_config[key] is not None:
        return global_config[key]

    # 4. Return default
    return default


def get_mode(directory: Path | None = None) -> str:
    """Get the raw gateway mode value (default: mock)."""
    return str(get_config("MCP_MODE", directory, default="mock"))


def get_spec_path(directory: Path | None = None) -> Path:
    """Get the OpenAPI contract location."""
    return Path(get_config("SPEC_PATH", directory, default="QuickBooksOnlineV3.json"))


def get_upstream_base(directory: Path | None = None) -> str:
    """Get the upstream origin URL."""
    return str(get_config("QBO_BASE", directory, default="https://quickbooks.api.intuit.com"))


def get_token(directory: Path | None = None) -> str | None:
    """Get the bearer token injected into forwarded requests."""
    token = get_config("QBO_TOKEN", directory)
    return str(token) if token else None


def get_capture_path(directory: Path | None = None) -> Path:
    """Get the capture log location."""
    return Path(get_config("QBOGATE_CAPTURE_PATH", directory, default="captures.ndjson"))


def get_host(directory: Path | None = None) -> str:
    """Get the listen address."""
    return str(get_config("QBOGATE_HOST", directory, default="127.0.0.1"))


def get_port(directory: Path | None = None) -> int:
    """Get the listen port (default: 4000)."""
    return _as_int(get_config("PORT", directory, default=4000), "PORT", 4000)


def get_upstream_timeout(directory: Path | None = None) -> float:
    """Get the upstream timeout in seconds (default: 30)."""
    raw = get_config("QBOGATE_UPSTREAM_TIMEOUT", directory, default=30.0)
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid QBOGATE_UPSTREAM_TIMEOUT=%r", raw)
        return 30.0


def get_verbose(directory: Path | None = None) -> bool:
    """Return True when verbose logging is requested."""
    return str(get_config("QBOGATE_VERBOSE", directory, default="")).lower() in TRUTHY


def _as_int(raw: Any, key: str, default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r", key, raw)
        return default
