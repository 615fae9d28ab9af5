import contextlib
import logging
import sqlite3
import threading
from collections.abc import Iterator
from dataclasses import fields
from pathlib import Path
from typing import Any, TypeVar

from conversations.errors import Busy, StorageUnavailable
from conversations.lib import paths

from . import migrations, sqlite
from .migrations import Migration

logger = logging.getLogger(__name__)

T = TypeVar("T")

Row = sqlite3.Row


def from_row(row: dict[str, Any] | Any, dataclass_type: type[T]) -> T:
    """Convert dict-like row to dataclass instance.

    Works with sqlite3.Row, dict, or any dict-like object; extra keys are ignored.
    """
    field_names = {f.name for f in fields(dataclass_type)}
    row_dict = dict(row) if not isinstance(row, dict) else row
    kwargs = {key: row_dict[key] for key in field_names if key in row_dict}
    return dataclass_type(**kwargs)


class Store:
    """Handle on the message database.

    Construct once per process and pass it to every operation. The single
    connection is shared across threads; statements run one at a time under
    the store lock.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        busy_timeout_ms: int = sqlite.DEFAULT_BUSY_TIMEOUT_MS,
        migs: list[Migration] | None = None,
    ):
        self._path = Path(path).expanduser() if path is not None else paths.db_path()
        self.busy_timeout_ms = busy_timeout_ms
        self._migrations = migs
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> sqlite3.Connection:
        """Open the database, creating file and schema if missing. Idempotent."""
        with self._lock:
            if self._conn is not None:
                return self._conn

            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite.connect(self._path, self.busy_timeout_ms)
            except (OSError, sqlite3.DatabaseError) as e:
                if isinstance(e, sqlite3.OperationalError) and sqlite.is_locked(e):
                    raise Busy(f"Database {self._path} is locked, try again") from e
                raise StorageUnavailable(f"Cannot open database {self._path}: {e}") from e

            try:
                migrations.migrate(conn, self._schema())
            except sqlite3.DatabaseError as e:
                conn.close()
                if isinstance(e, sqlite3.OperationalError) and sqlite.is_locked(e):
                    raise Busy(f"Database {self._path} is locked, try again") from e
                raise StorageUnavailable(f"Cannot open database {self._path}: {e}") from e
            except Exception:
                conn.close()
                raise

            self._conn = conn
            logger.debug(f"Opened {self._path}")
            return conn

    def close(self) -> None:
        """Close the connection. Safe to call repeatedly or before open()."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed {self._path}")

    @contextlib.contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield the open connection while holding the store lock.

        Lock contention from other processes surfaces as Busy.
        """
        with self._lock:
            conn = self.open()
            try:
                yield conn
            except sqlite3.OperationalError as e:
                if sqlite.is_locked(e):
                    raise Busy(f"Database is busy, try again ({e})") from e
                raise

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run several statements atomically (BEGIN IMMEDIATE ... COMMIT)."""
        with self.connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _schema(self) -> list[Migration]:
        if self._migrations is not None:
            return self._migrations
        from conversations.migrations import MIGRATIONS

        return MIGRATIONS

    def __enter__(self) -> "Store":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Store({str(self._path)!r}, {state})"
