"""Channel operations: create, list, membership, posting."""

import logging
import sqlite3
from collections.abc import Mapping
from typing import Any

from conversations.errors import Duplicate, InvalidArgument
from conversations.lib.store import Row, Store, from_row
from conversations.models import (
    DEFAULT_PRIORITY,
    Channel,
    ChannelInfo,
    ChannelMember,
    Message,
    normalize_channel_name,
)

from . import messages

logger = logging.getLogger(__name__)

_INFO_QUERY = """
    SELECT
        c.name,
        c.description,
        c.created_by,
        c.created_at,
        (SELECT COUNT(*) FROM channel_members WHERE channel = c.name) AS member_count,
        (SELECT COUNT(*) FROM messages WHERE channel = c.name) AS message_count
    FROM channels c
"""


def _row_to_info(row: Row) -> ChannelInfo:
    return from_row(row, ChannelInfo)


def _name(name: str) -> str:
    normalized = normalize_channel_name(name or "")
    if not normalized:
        raise InvalidArgument("Channel name is required")
    return normalized


def create_channel(
    db: Store, name: str, created_by: str, description: str | None = None
) -> Channel:
    """Create a channel and join its creator to it.

    Raises:
        InvalidArgument: Empty name or creator.
        Duplicate: A channel with this name already exists.
    """
    name = _name(name)
    creator = (created_by or "").strip()
    if not creator:
        raise InvalidArgument("created_by is required")

    try:
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO channels (name, description, created_by) VALUES (?, ?, ?)",
                (name, description or None, creator),
            )
            conn.execute(
                "INSERT OR IGNORE INTO channel_members (channel, agent) VALUES (?, ?)",
                (name, creator),
            )
            row = conn.execute("SELECT * FROM channels WHERE name = ?", (name,)).fetchone()
    except sqlite3.IntegrityError as e:
        raise Duplicate(f"Channel #{name} already exists") from e

    logger.info(f"Channel #{name} created by {creator}")
    return from_row(row, Channel)


def list_channels(db: Store) -> list[ChannelInfo]:
    with db.connect() as conn:
        rows = conn.execute(f"{_INFO_QUERY} ORDER BY c.name ASC").fetchall()
    return [_row_to_info(row) for row in rows]


def get_channel(db: Store, name: str) -> ChannelInfo | None:
    with db.connect() as conn:
        row = conn.execute(f"{_INFO_QUERY} WHERE c.name = ?", (_name(name),)).fetchone()
    return _row_to_info(row) if row else None


def join_channel(db: Store, name: str, agent: str) -> bool:
    """Ensure agent is a member. False if the channel does not exist."""
    name = _name(name)
    agent = (agent or "").strip()
    if not agent:
        raise InvalidArgument("agent is required")

    with db.transaction() as conn:
        if not conn.execute("SELECT 1 FROM channels WHERE name = ?", (name,)).fetchone():
            return False
        conn.execute(
            "INSERT OR IGNORE INTO channel_members (channel, agent) VALUES (?, ?)",
            (name, agent),
        )
    return True


def leave_channel(db: Store, name: str, agent: str) -> bool:
    """Remove membership. True only if the agent was a member."""
    with db.connect() as conn:
        result = conn.execute(
            "DELETE FROM channel_members WHERE channel = ? AND agent = ?",
            (_name(name), (agent or "").strip()),
        )
    return result.rowcount > 0


def get_members(db: Store, name: str) -> list[ChannelMember]:
    with db.connect() as conn:
        rows = conn.execute(
            "SELECT channel, agent, joined_at FROM channel_members "
            "WHERE channel = ? ORDER BY joined_at ASC, rowid ASC",
            (_name(name),),
        ).fetchall()
    return [from_row(row, ChannelMember) for row in rows]


def is_member(db: Store, name: str, agent: str) -> bool:
    with db.connect() as conn:
        row = conn.execute(
            "SELECT 1 FROM channel_members WHERE channel = ? AND agent = ?",
            (_name(name), (agent or "").strip()),
        ).fetchone()
    return row is not None


def send_to_channel(
    db: Store,
    channel: str,
    from_agent: str,
    content: str,
    priority: str = DEFAULT_PRIORITY,
    *,
    working_dir: str | None = None,
    repository: str | None = None,
    branch: str | None = None,
    metadata: Mapping[str, Any] | str | None = None,
) -> Message:
    """Post to a channel. Membership is not required to post."""
    name = _name(channel)
    return messages.send_message(
        db,
        from_agent,
        name,
        content,
        channel=name,
        priority=priority,
        working_dir=working_dir,
        repository=repository,
        branch=branch,
        metadata=metadata,
    )


def read_channel(
    db: Store, channel: str, since: str | None = None, limit: int | None = None
) -> list[Message]:
    return messages.read_messages(db, channel=_name(channel), since=since, limit=limit)
