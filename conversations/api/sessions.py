"""Session aggregation.

Sessions have no table of their own: every call groups the messages table by
session_id, so a session is always a pure function of the message log.
"""

import sqlite3
from collections import defaultdict

from conversations.lib.store import Store
from conversations.models import Session


def _aggregate(
    conn: sqlite3.Connection, where: str, params: tuple, agent: str | None
) -> list[Session]:
    if agent:
        unread_expr = "SUM(CASE WHEN read_at IS NULL AND to_agent = ? THEN 1 ELSE 0 END)"
        unread_params: tuple = (agent,)
    else:
        unread_expr = "0"
        unread_params = ()

    rows = conn.execute(
        f"""
        SELECT
            session_id,
            MAX(created_at) AS last_message_at,
            MAX(id) AS last_id,
            COUNT(*) AS message_count,
            {unread_expr} AS unread_count
        FROM messages
        {where}
        GROUP BY session_id
        ORDER BY last_message_at DESC, last_id DESC
        """,
        (*unread_params, *params),
    ).fetchall()
    if not rows:
        return []

    participants: dict[str, set[str]] = defaultdict(set)
    for row in conn.execute(
        f"""
        SELECT session_id, from_agent AS agent FROM messages {where}
        UNION
        SELECT session_id, to_agent AS agent FROM messages {where}
        """,
        (*params, *params),
    ).fetchall():
        participants[row["session_id"]].add(row["agent"])

    return [
        Session(
            session_id=row["session_id"],
            participants=sorted(participants[row["session_id"]]),
            last_message_at=row["last_message_at"],
            message_count=row["message_count"],
            unread_count=row["unread_count"] or 0,
        )
        for row in rows
    ]


def list_sessions(db: Store, agent: str | None = None) -> list[Session]:
    """List sessions, most recently active first.

    With agent, only sessions the agent sent or received in are listed and
    unread_count counts unread messages addressed to that agent. Without it,
    unread_count is 0.
    """
    if agent:
        where = (
            "WHERE session_id IN "
            "(SELECT session_id FROM messages WHERE from_agent = ? OR to_agent = ?)"
        )
        params: tuple = (agent, agent)
    else:
        where = ""
        params = ()

    with db.connect() as conn:
        return _aggregate(conn, where, params, agent)


def get_session(db: Store, session_id: str, agent: str | None = None) -> Session | None:
    with db.connect() as conn:
        sessions = _aggregate(conn, "WHERE session_id = ?", (session_id,), agent)
    return sessions[0] if sessions else None
