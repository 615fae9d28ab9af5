"""Message operations: send, read, reply, mark read."""

import json
import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from conversations.errors import InvalidArgument, NotFound
from conversations.lib.store import Row, Store, from_row
from conversations.migrations import NOW_SQL
from conversations.models import (
    DEFAULT_PRIORITY,
    PRIORITIES,
    Message,
    channel_session_id,
    normalize_channel_name,
)

logger = logging.getLogger(__name__)

ORDERS = ("asc", "desc")

# Stay well below SQLite's bound-parameter limit when marking many ids.
_MARK_READ_CHUNK = 500

SQLITE_MAX_INT = 2**63 - 1


def _row_to_message(row: Row) -> Message:
    msg = from_row(row, Message)
    if msg.metadata is not None:
        try:
            msg.metadata = json.loads(msg.metadata)
        except json.JSONDecodeError:
            logger.warning(f"Message {msg.id} has unreadable metadata, dropping it")
            msg.metadata = None
    return msg


def _is_row_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= SQLITE_MAX_INT


def _require(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgument(f"{field} is required")
    return str(value).strip()


def _encode_metadata(metadata: Mapping[str, Any] | str | None) -> str | None:
    if metadata is None:
        return None
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except json.JSONDecodeError as e:
            raise InvalidArgument(f"metadata is not valid JSON: {e}") from e
    if not isinstance(metadata, Mapping):
        raise InvalidArgument("metadata must be a JSON object")
    try:
        return json.dumps(dict(metadata))
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"metadata is not JSON serializable: {e}") from e


def new_session_id(from_agent: str, to_agent: str) -> str:
    """Same prefix for a given pair in either direction, unique per conversation start."""
    pair = "-".join(sorted([from_agent, to_agent]))
    return f"{pair}-{uuid.uuid4().hex[:8]}"


def send_message(
    db: Store,
    from_agent: str,
    to_agent: str | None,
    content: str,
    *,
    session_id: str | None = None,
    channel: str | None = None,
    priority: str = DEFAULT_PRIORITY,
    working_dir: str | None = None,
    repository: str | None = None,
    branch: str | None = None,
    metadata: Mapping[str, Any] | str | None = None,
) -> Message:
    """Append a message and return the stored record.

    Channel messages are addressed to the channel itself and always land in
    the channel's synthetic session.

    Raises:
        InvalidArgument: Empty sender/recipient/content, unknown priority, bad metadata.
        NotFound: channel given but no such channel exists.
        Busy: Database lock not acquired within the busy timeout.
    """
    from_agent = _require(from_agent, "from_agent")
    _require(content, "content")
    priority = priority or DEFAULT_PRIORITY
    if priority not in PRIORITIES:
        raise InvalidArgument(f"priority must be one of {', '.join(PRIORITIES)}, got '{priority}'")
    encoded_metadata = _encode_metadata(metadata)

    if channel is not None:
        channel = _require(normalize_channel_name(channel), "channel")
        to_agent = (to_agent or "").strip() or channel
        if to_agent != channel:
            raise InvalidArgument(f"channel message must be addressed to '{channel}', not '{to_agent}'")
        expected_session = channel_session_id(channel)
        if session_id and session_id != expected_session:
            raise InvalidArgument(f"channel messages belong to session '{expected_session}'")
        session_id = expected_session
    else:
        to_agent = _require(to_agent, "to_agent")
        session_id = (session_id or "").strip() or new_session_id(from_agent, to_agent)

    with db.transaction() as conn:
        if channel is not None:
            exists = conn.execute("SELECT 1 FROM channels WHERE name = ?", (channel,)).fetchone()
            if not exists:
                raise NotFound(f"Channel '{channel}' not found")

        # created_at never goes below the newest row, so it stays ordered with id.
        cursor = conn.execute(
            f"""
            INSERT INTO messages (
                session_id, from_agent, to_agent, channel, content, priority,
                working_dir, repository, branch, metadata, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                MAX({NOW_SQL}, COALESCE((SELECT MAX(created_at) FROM messages), '')))
            """,
            (
                session_id,
                from_agent,
                to_agent,
                channel,
                content,
                priority,
                working_dir or None,
                repository or None,
                branch or None,
                encoded_metadata,
            ),
        )
        row = conn.execute("SELECT * FROM messages WHERE id = ?", (cursor.lastrowid,)).fetchone()

    msg = _row_to_message(row)
    logger.debug(f"Message {msg.id} {msg.from_agent} -> {msg.to_agent} ({msg.session_id})")
    return msg


def read_messages(
    db: Store,
    *,
    session_id: str | None = None,
    from_agent: str | None = None,
    to_agent: str | None = None,
    channel: str | None = None,
    since: str | None = None,
    since_id: int | None = None,
    unread_only: bool = False,
    limit: int | None = None,
    order: str = "asc",
) -> list[Message]:
    """Query messages matching every given filter, ordered by id."""
    conditions: list[str] = []
    params: list[Any] = []

    if session_id:
        conditions.append("session_id = ?")
        params.append(session_id)
    if from_agent:
        conditions.append("from_agent = ?")
        params.append(from_agent)
    if to_agent:
        conditions.append("to_agent = ?")
        params.append(to_agent)
    if channel:
        conditions.append("channel = ?")
        params.append(normalize_channel_name(channel))
    if since:
        conditions.append("created_at > ?")
        params.append(since)
    if since_id is not None:
        if not _is_row_id(since_id):
            raise InvalidArgument(f"since_id must be a non-negative integer, got {since_id!r}")
        conditions.append("id > ?")
        params.append(since_id)
    if unread_only:
        conditions.append("read_at IS NULL")

    order = (order or "asc").lower()
    if order not in ORDERS:
        raise InvalidArgument(f"order must be 'asc' or 'desc', got '{order}'")

    query = "SELECT * FROM messages"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += f" ORDER BY id {order.upper()}"

    if limit is not None:
        if not _is_row_id(limit) or limit == 0:
            raise InvalidArgument(f"limit must be a positive integer, got {limit!r}")
        query += " LIMIT ?"
        params.append(limit)

    with db.connect() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_message(row) for row in rows]


def get_message(db: Store, message_id: int) -> Message | None:
    if not _is_row_id(message_id):
        return None
    with db.connect() as conn:
        row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
    return _row_to_message(row) if row else None


def reply(
    db: Store,
    message_id: int,
    from_agent: str,
    content: str,
    priority: str = DEFAULT_PRIORITY,
) -> Message:
    """Reply within the original message's session.

    Direct replies go to the other party; channel replies go back to the channel.

    Raises:
        NotFound: If message_id does not exist.
    """
    original = get_message(db, message_id)
    if original is None:
        raise NotFound(f"Message #{message_id} not found")

    if original.channel:
        return send_message(
            db, from_agent, original.channel, content, channel=original.channel, priority=priority
        )

    sender = (from_agent or "").strip()
    to_agent = original.from_agent if original.from_agent != sender else original.to_agent
    return send_message(
        db, from_agent, to_agent, content, session_id=original.session_id, priority=priority
    )


def mark_read(db: Store, ids: Iterable[int], reader: str) -> int:
    """Mark messages addressed to reader as read. Returns how many changed."""
    ids = list(ids)
    if not ids:
        return 0
    for message_id in ids:
        if not _is_row_id(message_id):
            raise InvalidArgument(f"message ids must be non-negative integers, got {message_id!r}")

    changed = 0
    with db.transaction() as conn:
        for start in range(0, len(ids), _MARK_READ_CHUNK):
            chunk = ids[start : start + _MARK_READ_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            result = conn.execute(
                f"UPDATE messages SET read_at = {NOW_SQL} "
                f"WHERE id IN ({placeholders}) AND to_agent = ? AND read_at IS NULL",
                (*chunk, reader),
            )
            changed += result.rowcount
    return changed


def mark_session_read(db: Store, session_id: str, reader: str) -> int:
    with db.connect() as conn:
        result = conn.execute(
            f"UPDATE messages SET read_at = {NOW_SQL} "
            "WHERE session_id = ? AND to_agent = ? AND read_at IS NULL",
            (session_id, reader),
        )
    return result.rowcount


def mark_channel_read(db: Store, channel: str, reader: str) -> int:
    """Mark other agents' unread channel messages as read. The reader's own posts are skipped."""
    with db.connect() as conn:
        result = conn.execute(
            f"UPDATE messages SET read_at = {NOW_SQL} "
            "WHERE channel = ? AND from_agent != ? AND read_at IS NULL",
            (normalize_channel_name(channel), reader),
        )
    return result.rowcount
