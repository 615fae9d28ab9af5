from functools import lru_cache
from typing import Any

import yaml

from . import paths

DEFAULTS: dict[str, Any] = {
    "default_agent": None,
    "poll_interval": 0.2,
    "busy_timeout_ms": 5000,
    "log_level": "WARNING",
    "server": {"host": "127.0.0.1", "port": 3456},
}


def clear_cache():
    load_config.cache_clear()


@lru_cache(maxsize=1)
def load_config() -> dict:
    """Load config.yaml from the home directory, or an empty dict if not found."""
    path = paths.config_file()
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config at {path} must be a mapping, got {type(data).__name__}")
    return data


def get(key: str, default: Any = None) -> Any:
    """Look up a dotted key ("server.port") in the user config, then DEFAULTS."""
    for source in (load_config(), DEFAULTS):
        value = _lookup(source, key)
        if value is not None:
            return value
    return default


def _lookup(source: dict, key: str) -> Any:
    node: Any = source
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node
