import asyncio
import json
import threading

import pytest
from fastapi.testclient import TestClient

from conversations import api
from conversations.api.polling import Subscription
from conversations.errors import Busy
from conversations.server import create_app, stream_messages


@pytest.fixture
def client(db):
    return TestClient(create_app(db))


def test_status(client, db):
    api.send_message(db, "alice", "bob", "hi")
    response = client.get("/api/status")
    assert response.status_code == 200
    body = response.json()
    assert body["total_messages"] == 1
    assert body["unread_messages"] == 1


def test_post_and_list_messages(client):
    response = client.post(
        "/api/messages",
        json={"from": "alice", "to": "bob", "content": "hi", "metadata": {"k": "v"}},
    )
    assert response.status_code == 200
    sent = response.json()
    assert sent["from_agent"] == "alice"
    assert sent["metadata"] == {"k": "v"}

    client.post("/api/messages", json={"from": "bob", "to": "alice", "content": "yo"})

    listed = client.get("/api/messages").json()
    assert [m["content"] for m in listed] == ["yo", "hi"]

    by_sender = client.get("/api/messages", params={"from": "alice"}).json()
    assert [m["content"] for m in by_sender] == ["hi"]

    assert client.get("/api/messages", params={"limit": 1}).json()[0]["content"] == "yo"


def test_post_uses_env_identity(client, monkeypatch):
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "claude")
    sent = client.post("/api/messages", json={"to": "bob", "content": "hi"}).json()
    assert sent["from_agent"] == "claude"


def test_get_message(client, db):
    msg = api.send_message(db, "alice", "bob", "hi")
    assert client.get(f"/api/messages/{msg.id}").json()["content"] == "hi"

    missing = client.get("/api/messages/999")
    assert missing.status_code == 404
    assert missing.json()["type"] == "NotFound"

    too_big = client.get("/api/messages/99999999999999999999")
    assert too_big.status_code == 404


def test_mark_read(client, db):
    msg = api.send_message(db, "alice", "bob", "hi")
    response = client.post("/api/messages/read", json={"ids": [msg.id], "reader": "bob"})
    assert response.json() == {"marked_read": 1}
    assert client.get("/api/messages", params={"unread": True}).json() == []


def test_sessions(client, db):
    api.send_message(db, "alice", "bob", "hi", session_id="s1")
    api.send_message(db, "bob", "alice", "hey", session_id="s1")

    sessions = client.get("/api/sessions", params={"agent": "bob"}).json()
    assert sessions[0]["session_id"] == "s1"
    assert sessions[0]["unread_count"] == 1

    session = client.get("/api/sessions/s1").json()
    assert session["participants"] == ["alice", "bob"]
    assert client.get("/api/sessions/nope").status_code == 404


def test_channels(client):
    created = client.post(
        "/api/channels", json={"name": "general", "created_by": "alice", "description": "All"}
    )
    assert created.status_code == 200
    assert created.json()["name"] == "general"

    assert client.post("/api/channels", json={"name": "general", "created_by": "bob"}).status_code == 409

    joined = client.post("/api/channels/general/join", json={"agent": "bob"})
    assert joined.json()["joined"] is True
    members = client.get("/api/channels/general/members").json()
    assert [m["agent"] for m in members] == ["alice", "bob"]

    posted = client.post("/api/channels/general/messages", json={"from": "alice", "content": "hi"})
    assert posted.json()["channel"] == "general"

    read = client.post("/api/channels/general/read", json={"agent": "bob"})
    assert read.json()["marked_read"] == 1

    info = client.get("/api/channels/general").json()
    assert info["member_count"] == 2
    assert info["message_count"] == 1
    assert [c["name"] for c in client.get("/api/channels").json()] == ["general"]

    left = client.post("/api/channels/general/leave", json={"agent": "bob"})
    assert left.json()["left"] is True


def test_error_mapping(client, monkeypatch):
    bad = client.post("/api/messages", json={"from": "alice", "to": "bob", "content": "hi", "priority": "meh"})
    assert bad.status_code == 400
    assert bad.json()["type"] == "InvalidArgument"

    assert client.post("/api/channels/nowhere/join", json={"agent": "bob"}).status_code == 404
    assert client.get("/api/channels/nowhere").status_code == 404
    assert (
        client.post("/api/channels/nowhere/messages", json={"from": "a", "content": "x"}).status_code
        == 404
    )

    def locked(db):
        raise Busy("database is locked")

    monkeypatch.setattr(api, "get_status", locked)
    busy = client.get("/api/status")
    assert busy.status_code == 503
    assert busy.json()["retryable"] is True


def test_missing_content_is_rejected(client):
    assert client.post("/api/messages", json={"to": "bob"}).status_code == 422


def test_stream_messages_yields_new_messages(db):
    api.send_message(db, "alice", "bob", "before")

    async def first_event():
        events = stream_messages(db, to_agent="bob", interval=0.02)
        pending = asyncio.ensure_future(events.__anext__())
        await asyncio.sleep(0.1)
        sent = api.send_message(db, "alice", "bob", "after")
        chunk = await asyncio.wait_for(pending, timeout=3)
        await events.aclose()
        return sent, chunk

    sent, chunk = asyncio.run(first_event())
    assert chunk.startswith(f"id: {sent.id}\n")
    payload = json.loads(chunk.split("data: ", 1)[1])
    assert payload["content"] == "after"


def test_stream_close_stops_subscription_off_the_event_loop(db, monkeypatch):
    subs = []
    stop_threads = []
    real_start = api.start_polling
    real_stop = Subscription.stop

    def recording_start(*args, **kwargs):
        sub = real_start(*args, **kwargs)
        subs.append(sub)
        return sub

    def recording_stop(self):
        stop_threads.append(threading.current_thread())
        real_stop(self)

    monkeypatch.setattr(api, "start_polling", recording_start)
    monkeypatch.setattr(Subscription, "stop", recording_stop)

    async def open_and_close():
        events = stream_messages(db, interval=0.02)
        pending = asyncio.ensure_future(events.__anext__())
        await asyncio.sleep(0.05)
        api.send_message(db, "alice", "bob", "hi")
        await asyncio.wait_for(pending, timeout=3)
        await events.aclose()
        return threading.current_thread()

    loop_thread = asyncio.run(open_and_close())
    assert len(subs) == 1
    assert subs[0].stopped
    assert not subs[0]._thread.is_alive()
    assert stop_threads and stop_threads[0] is not loop_thread
