"""Agent identity resolution for CLI, server, and MCP callers."""

import os

from conversations.errors import InvalidArgument

from . import config

ENV_VAR = "CONVERSATIONS_AGENT_ID"
FALLBACK_AGENT = "user"


def _from_env_or_config() -> str | None:
    env_value = (os.environ.get(ENV_VAR) or "").strip()
    if env_value:
        return env_value
    configured = config.get("default_agent")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return None


def resolve_identity(explicit: str | None = None) -> str:
    """Explicit value, then $CONVERSATIONS_AGENT_ID, then config default_agent, then "user"."""
    explicit_value = (explicit or "").strip()
    if explicit_value:
        return explicit_value
    return _from_env_or_config() or FALLBACK_AGENT


def require_identity(explicit: str | None = None) -> str:
    """Like resolve_identity, but refuses to fall back to the shared default."""
    explicit_value = (explicit or "").strip()
    if explicit_value:
        return explicit_value
    resolved = _from_env_or_config()
    if not resolved:
        raise InvalidArgument(f"Agent identity required. Set {ENV_VAR} or pass --from/--as.")
    return resolved
