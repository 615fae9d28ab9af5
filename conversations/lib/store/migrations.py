"""Database schema migrations."""

import logging
import sqlite3
from collections.abc import Callable

from conversations.errors import MigrationError

logger = logging.getLogger(__name__)

Migration = tuple[str, str | Callable[[sqlite3.Connection], None]]


def migrate(conn: sqlite3.Connection, migs: list[Migration]) -> list[str]:
    """Apply pending migrations in order with data loss safeguards.

    Returns the names of the migrations applied by this call.
    """
    conn.execute("CREATE TABLE IF NOT EXISTS _migrations (name TEXT PRIMARY KEY)")

    applied_now = []
    for name, migration in migs:
        applied = conn.execute("SELECT 1 FROM _migrations WHERE name = ?", (name,)).fetchone()
        if applied:
            continue

        conn.execute("BEGIN IMMEDIATE")
        try:
            before = {t: _get_table_count(conn, t) for t in _tables(conn)}

            if callable(migration):
                migration(conn)
            else:
                for statement in _split(migration):
                    conn.execute(statement)

            for table, count_before in before.items():
                _check_migration_safety(conn, table, count_before)

            conn.execute("INSERT OR IGNORE INTO _migrations (name) VALUES (?)", (name,))
            conn.execute("COMMIT")
        except Exception as e:
            conn.execute("ROLLBACK")
            logger.error(f"Migration '{name}' failed: {e}")
            if isinstance(e, MigrationError):
                raise
            raise MigrationError(f"Migration '{name}' failed: {e}") from e

        logger.info(f"Migration '{name}' applied")
        applied_now.append(name)

    return applied_now


def column_names(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _split(script: str) -> list[str]:
    # executescript() would commit our open transaction, so run statements one by one.
    return [s.strip() for s in script.split(";") if s.strip()]


def _tables(conn: sqlite3.Connection) -> list[str]:
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' "
        "AND name != '_migrations' AND name != 'sqlite_sequence'"
    )
    return [row[0] for row in cursor.fetchall()]


def _get_table_count(conn: sqlite3.Connection, table: str) -> int:
    """Get row count for table, returns 0 if table doesn't exist."""
    try:
        cursor = conn.execute(
            "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name=?",
            (table,),
        )
        if not cursor.fetchone()[0]:
            return 0
        result = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return result[0] if result else 0
    except sqlite3.OperationalError:
        return 0


def _check_migration_safety(conn: sqlite3.Connection, table: str, before: int) -> None:
    after = _get_table_count(conn, table)
    lost = before - after
    if lost > 0:
        msg = f"Migration {table}: {lost} rows lost (before: {before}, after: {after})"
        logger.error(msg)
        raise MigrationError(msg)
