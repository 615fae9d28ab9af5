import logging
import sqlite3
import time
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5000


def connect(db_path: Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> sqlite3.Connection:
    """Connect to SQLite with write contention monitoring.

    WAL keeps readers off the writer's lock; busy_timeout bounds how long a
    writer waits on another process before SQLite reports "database is locked".
    """
    start = time.perf_counter()
    last_error: sqlite3.OperationalError | None = None

    for attempt in range(5):
        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.isolation_level = None

        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
            conn.execute("PRAGMA journal_mode = WAL")
            break
        except sqlite3.OperationalError as err:
            last_error = err
            conn.close()
            if is_locked(err) and attempt < 4:
                time.sleep(0.05 * (attempt + 1))
                continue
            raise
    else:
        raise last_error or sqlite3.OperationalError("Failed to initialize SQLite connection")

    elapsed = time.perf_counter() - start
    if elapsed > 0.1:
        logger.warning(f"SQLite connection took {elapsed:.3f}s (possible lock contention)")

    return conn


def is_locked(err: sqlite3.Error) -> bool:
    message = str(err).lower()
    return "locked" in message or "busy" in message
