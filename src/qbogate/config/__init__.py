"""
Configuration management for qbogate.

Supports multiple configuration sources in order of priority:
1. Environment variables (highest priority)
2. Local .env file
3. Global config file (~/.qbogate/config.yml)
4. Default values (lowest priority)
"""

from .env_loader import (
    global_config_path,
    load_env_file,
    load_global_config,
    load_local_env,
)
from .getters import (
    get_capture_path,
    get_config,
    get_host,
    get_mode,
    get_port,
    get_spec_path,
    get_token,
    get_upstream_base,
    get_upstream_timeout,
    get_verbose,
)
from .settings import (
    HEALTH_PATH,
    ROUTING_PREFIX,
    GatewaySettings,
    Mode,
    load_settings,
    parse_mode,
)

__all__ = [
    # env_loader
    "global_config_path",
    "load_env_file",
    "load_global_config",
    "load_local_env",
    # getters
    "get_capture_path",
    "get_config",
    "get_host",
    "get_mode",
    "get_port",
    "get_spec_path",
    "get_token",
    "get_upstream_base",
    "get_upstream_timeout",
    "get_verbose",
    # settings
    "HEALTH_PATH",
    "ROUTING_PREFIX",
    "GatewaySettings",
    "Mode",
    "load_settings",
    "parse_mode",
]
