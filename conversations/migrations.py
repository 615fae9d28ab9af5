"""Schema for the message database, as ordered migrations."""

import sqlite3

from conversations.lib.store import column_names

NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f', 'now')"

CREATE_MESSAGES = f"""
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    from_agent TEXT NOT NULL,
    to_agent TEXT NOT NULL,
    content TEXT NOT NULL,
    priority TEXT NOT NULL DEFAULT 'normal',
    working_dir TEXT,
    repository TEXT,
    branch TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL DEFAULT ({NOW_SQL}),
    read_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);
CREATE INDEX IF NOT EXISTS idx_messages_to ON messages(to_agent);
CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at)
"""

CREATE_CHANNELS = f"""
CREATE TABLE IF NOT EXISTS channels (
    name TEXT PRIMARY KEY,
    description TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({NOW_SQL})
);
CREATE TABLE IF NOT EXISTS channel_members (
    channel TEXT NOT NULL REFERENCES channels(name) ON DELETE CASCADE,
    agent TEXT NOT NULL,
    joined_at TEXT NOT NULL DEFAULT ({NOW_SQL}),
    PRIMARY KEY (channel, agent)
);
CREATE INDEX IF NOT EXISTS idx_channel_members_agent ON channel_members(agent)
"""


def _add_messages_channel(conn: sqlite3.Connection) -> None:
    if "channel" not in column_names(conn, "messages"):
        conn.execute("ALTER TABLE messages ADD COLUMN channel TEXT")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_channel ON messages(channel)")


MIGRATIONS = [
    ("create_messages", CREATE_MESSAGES),
    ("add_messages_channel", _add_messages_channel),
    ("create_channels", CREATE_CHANNELS),
]
