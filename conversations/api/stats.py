from conversations.lib.store import Store


def get_status(db: Store) -> dict:
    """Store-wide counts for status displays."""
    with db.connect() as conn:
        total_messages = conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
        total_sessions = conn.execute(
            "SELECT COUNT(DISTINCT session_id) FROM messages"
        ).fetchone()[0]
        unread = conn.execute("SELECT COUNT(*) FROM messages WHERE read_at IS NULL").fetchone()[0]
        total_channels = conn.execute("SELECT COUNT(*) FROM channels").fetchone()[0]

    return {
        "db_path": str(db.path),
        "total_messages": total_messages,
        "total_sessions": total_sessions,
        "total_channels": total_channels,
        "unread_messages": unread,
    }
