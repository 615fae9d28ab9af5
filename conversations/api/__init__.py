"""Store operations: messages, sessions, channels, live polling.

Every function takes the Store as its first argument and raises the
exceptions in conversations.errors. No framework knowledge lives here.
"""

from .channels import (
    create_channel,
    get_channel,
    get_members,
    is_member,
    join_channel,
    leave_channel,
    list_channels,
    read_channel,
    send_to_channel,
)
from .messages import (
    get_message,
    mark_channel_read,
    mark_read,
    mark_session_read,
    read_messages,
    reply,
    send_message,
)
from .polling import Subscription, start_polling, wait_for_messages
from .sessions import get_session, list_sessions
from .stats import get_status

__all__ = [
    "Subscription",
    "create_channel",
    "get_channel",
    "get_members",
    "get_message",
    "get_session",
    "get_status",
    "is_member",
    "join_channel",
    "leave_channel",
    "list_channels",
    "list_sessions",
    "mark_channel_read",
    "mark_read",
    "mark_session_read",
    "read_channel",
    "read_messages",
    "reply",
    "send_message",
    "send_to_channel",
    "start_polling",
    "wait_for_messages",
]
