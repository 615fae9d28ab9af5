"""Live tail over the message log.

The store is pull-only, so each subscription re-queries it on a fixed tick
for messages with an id above its cursor. Ids are strictly increasing, which
makes the cursor exact: timestamps can collide, ids cannot.
"""

import logging
import sqlite3
import threading
from collections.abc import Callable

from conversations.errors import ConversationsError, InvalidArgument
from conversations.lib.store import Store
from conversations.models import Message

from . import messages

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.2

OnMessages = Callable[[list[Message]], None]


class Subscription:
    """One polling loop with its own cursor, in-flight guard, and thread.

    States move seeding -> polling -> stopped and never go back.
    """

    SEEDING = "seeding"
    POLLING = "polling"
    STOPPED = "stopped"

    def __init__(
        self,
        db: Store,
        on_messages: OnMessages,
        *,
        session_id: str | None = None,
        to_agent: str | None = None,
        channel: str | None = None,
        interval: float = DEFAULT_INTERVAL,
    ):
        if interval is None or interval <= 0:
            raise InvalidArgument(f"interval must be positive, got {interval!r}")
        self.db = db
        self.on_messages = on_messages
        self.filters = {"session_id": session_id, "to_agent": to_agent, "channel": channel}
        self.interval = interval
        self.cursor = 0
        self.state = self.SEEDING

        self._stopped = threading.Event()
        self._in_flight = threading.Lock()
        self._dispatch_lock = threading.RLock()
        self._thread: threading.Thread | None = None

    def start(self) -> "Subscription":
        """Seed the cursor from the newest matching message, then start ticking."""
        if self.state != self.SEEDING:
            raise RuntimeError(f"Subscription already {self.state}")
        latest = messages.read_messages(self.db, **self.filters, order="desc", limit=1)
        self.cursor = latest[0].id if latest else 0

        self.state = self.POLLING
        self._thread = threading.Thread(
            target=self._run, name=f"conversations-poll-{id(self):x}", daemon=True
        )
        self._thread.start()
        logger.debug(f"Polling {self.describe()} from cursor {self.cursor}")
        return self

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"Poll error for {self.describe()}: {e}", exc_info=True)

    def poll_once(self) -> int:
        """Run one poll. Returns how many messages were dispatched.

        A poll already running for this subscription makes this call a no-op.
        """
        if self._stopped.is_set():
            return 0
        if not self._in_flight.acquire(blocking=False):
            logger.debug(f"Poll skipped for {self.describe()}: previous poll still running")
            return 0
        try:
            try:
                batch = messages.read_messages(
                    self.db, **self.filters, since_id=self.cursor, order="asc"
                )
            except (ConversationsError, sqlite3.Error) as e:
                logger.warning(f"Poll failed for {self.describe()}, retrying next tick: {e}")
                return 0
            if not batch:
                return 0

            self.cursor = batch[-1].id
            return self._dispatch(batch)
        finally:
            self._in_flight.release()

    def _dispatch(self, batch: list[Message]) -> int:
        with self._dispatch_lock:
            if self._stopped.is_set():
                return 0
            try:
                self.on_messages(batch)
            except Exception:
                logger.exception(f"Polling callback error for {self.describe()}")
        return len(batch)

    def stop(self) -> None:
        """Stop polling. No callback runs after this returns.

        Safe to call more than once, and from inside the callback.
        """
        self._stopped.set()
        self.state = self.STOPPED
        # Wait out a dispatch in progress (re-entrant when called from the callback).
        with self._dispatch_lock:
            pass
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def describe(self) -> str:
        active = {k: v for k, v in self.filters.items() if v}
        return ", ".join(f"{k}={v}" for k, v in active.items()) or "all messages"

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    def __repr__(self) -> str:
        return f"Subscription({self.describe()}, state={self.state}, cursor={self.cursor})"


def start_polling(
    db: Store,
    on_messages: OnMessages,
    *,
    session_id: str | None = None,
    to_agent: str | None = None,
    channel: str | None = None,
    interval: float = DEFAULT_INTERVAL,
) -> Subscription:
    """Deliver messages created after this call to on_messages, in id order."""
    return Subscription(
        db,
        on_messages,
        session_id=session_id,
        to_agent=to_agent,
        channel=channel,
        interval=interval,
    ).start()


def wait_for_messages(
    db: Store,
    *,
    session_id: str | None = None,
    to_agent: str | None = None,
    channel: str | None = None,
    timeout: float | None = None,
    interval: float = DEFAULT_INTERVAL,
) -> list[Message]:
    """Block until new matching messages arrive. Returns [] on timeout."""
    received: list[Message] = []
    arrived = threading.Event()

    def on_messages(batch: list[Message]) -> None:
        if not arrived.is_set():
            received.extend(batch)
            arrived.set()

    with start_polling(
        db,
        on_messages,
        session_id=session_id,
        to_agent=to_agent,
        channel=channel,
        interval=interval,
    ):
        arrived.wait(timeout)
    return received
