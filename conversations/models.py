"""Shared data models and types."""

from dataclasses import dataclass, field
from typing import Any

PRIORITIES = ("low", "normal", "high", "urgent")
DEFAULT_PRIORITY = "normal"

CHANNEL_SESSION_PREFIX = "channel:"


@dataclass
class Message:
    """A stored message. Only read_at ever changes after insert."""

    id: int
    session_id: str
    from_agent: str
    to_agent: str
    content: str
    created_at: str
    channel: str | None = None
    priority: str = DEFAULT_PRIORITY
    working_dir: str | None = None
    repository: str | None = None
    branch: str | None = None
    metadata: dict[str, Any] | None = None
    read_at: str | None = None


@dataclass
class Session:
    """A conversation thread, derived from messages sharing a session_id."""

    session_id: str
    participants: list[str] = field(default_factory=list)
    last_message_at: str | None = None
    message_count: int = 0
    unread_count: int = 0


@dataclass
class Channel:
    """A named broadcast group."""

    name: str
    created_by: str
    description: str | None = None
    created_at: str | None = None


@dataclass
class ChannelInfo(Channel):
    """Channel with activity counts."""

    member_count: int = 0
    message_count: int = 0


@dataclass
class ChannelMember:
    channel: str
    agent: str
    joined_at: str


def channel_session_id(channel: str) -> str:
    """Synthetic session id shared by every message in a channel."""
    return f"{CHANNEL_SESSION_PREFIX}{channel}"


def normalize_channel_name(name: str) -> str:
    """"#general" and " general " both name the channel "general"."""
    return name.strip().lstrip("#").strip()
