import time

import pytest

from conversations import api
from conversations.lib import config
from conversations.lib.store import Store


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    """Point every path and env lookup at a throwaway home directory.

    Keeps tests off the real ~/.conversations and clears identity overrides
    and the cached config on both sides of each test.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("CONVERSATIONS_HOME", str(home))
    monkeypatch.delenv("CONVERSATIONS_DB_PATH", raising=False)
    monkeypatch.delenv("CONVERSATIONS_AGENT_ID", raising=False)
    config.clear_cache()
    yield home
    config.clear_cache()


@pytest.fixture
def db(tmp_path):
    """Open store on a fresh database file, closed after the test."""
    store = Store(tmp_path / "messages.db")
    store.open()
    yield store
    store.close()


@pytest.fixture
def general(db):
    """A #general channel created by alice."""
    return api.create_channel(db, "general", "alice", "Team-wide chatter")


def write_config(home, text):
    (home / "config.yaml").write_text(text)
    config.clear_cache()


def wait_until(predicate, timeout=3.0, step=0.02):
    """Poll predicate until it holds or timeout elapses. Returns its last value."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(step)
    return predicate()
