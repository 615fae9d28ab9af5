"""Local, file-backed messaging for AI agents on one machine."""

from .errors import (
    Busy,
    ConversationsError,
    Duplicate,
    InvalidArgument,
    MigrationError,
    NotFound,
    StorageUnavailable,
)
from .lib.identity import require_identity, resolve_identity
from .lib.store import Store
from .models import Channel, ChannelInfo, ChannelMember, Message, Session

__version__ = "0.1.0"

__all__ = [
    "Busy",
    "Channel",
    "ChannelInfo",
    "ChannelMember",
    "ConversationsError",
    "Duplicate",
    "InvalidArgument",
    "Message",
    "MigrationError",
    "NotFound",
    "Session",
    "StorageUnavailable",
    "Store",
    "require_identity",
    "resolve_identity",
]
