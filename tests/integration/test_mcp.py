import asyncio
import json

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from conversations import api
from conversations.mcp import build_mcp_server

TOOLS = {
    "send_message",
    "read_messages",
    "list_sessions",
    "reply",
    "mark_read",
    "create_channel",
    "list_channels",
    "send_to_channel",
    "read_channel",
    "join_channel",
    "leave_channel",
    "channel_members",
}


def call(db, name, arguments):
    async def run():
        async with Client(build_mcp_server(db)) as client:
            result = await client.call_tool(name, arguments)
        content = getattr(result, "content", result)
        return json.loads(content[0].text)

    return asyncio.run(run())


def call_list(db, name, arguments):
    async def run():
        async with Client(build_mcp_server(db)) as client:
            result = await client.call_tool(name, arguments)
        content = getattr(result, "content", result)
        items = [json.loads(item.text) for item in content]
        if len(items) == 1 and isinstance(items[0], list):
            return items[0]
        return items

    return asyncio.run(run())


def test_registers_tools(db):
    async def names():
        async with Client(build_mcp_server(db)) as client:
            return {tool.name for tool in await client.list_tools()}

    assert asyncio.run(names()) == TOOLS


def test_send_uses_resolved_identity(db, monkeypatch):
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "claude")
    sent = call(db, "send_message", {"to": "bob", "content": "hi", "metadata": {"k": 1}})
    assert sent["from_agent"] == "claude"
    assert sent["metadata"] == {"k": 1}
    assert api.get_message(db, sent["id"]).content == "hi"


def test_reply_and_mark_read(db, monkeypatch):
    original = api.send_message(db, "alice", "bob", "question", session_id="s1")
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "bob")

    marked = call(db, "mark_read", {"message_ids": [original.id]})
    assert marked == {"marked_read": 1, "reader": "bob"}

    answer = call(db, "reply", {"message_id": original.id, "content": "answer"})
    assert answer["to_agent"] == "alice"
    assert answer["session_id"] == "s1"


def test_channel_tools(db, monkeypatch):
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "alice")
    created = call(db, "create_channel", {"name": "general", "description": "All"})
    assert created["created_by"] == "alice"

    posted = call(db, "send_to_channel", {"channel": "general", "content": "hello"})
    assert posted["session_id"] == "channel:general"

    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "bob")
    assert call(db, "join_channel", {"channel": "general"})["joined"] is True
    assert api.is_member(db, "general", "bob")
    assert call(db, "leave_channel", {"channel": "general"})["left"] is True


def test_domain_errors_become_tool_errors(db):
    with pytest.raises(ToolError, match="not found"):
        call(db, "reply", {"message_id": 42, "content": "hello?"})
    with pytest.raises(ToolError, match="not found"):
        call(db, "join_channel", {"channel": "nowhere"})


def test_reads_return_everything_by_default(db):
    api.create_channel(db, "general", "alice")
    for i in range(60):
        api.send_to_channel(db, "general", "alice", f"post {i}")

    posts = call_list(db, "read_channel", {"channel": "general"})
    assert len(posts) == 60
    assert posts[-1]["content"] == "post 59"

    msgs = call_list(db, "read_messages", {"channel": "general"})
    assert len(msgs) == 60

    assert len(call_list(db, "read_channel", {"channel": "general", "limit": 5})) == 5


def test_read_messages_since_timestamp(db):
    old = api.send_message(db, "alice", "bob", "old", session_id="s1")
    with db.connect() as conn:
        conn.execute(
            "UPDATE messages SET created_at = '2000-01-01T00:00:00.000' WHERE id = ?", (old.id,)
        )
    api.send_message(db, "alice", "bob", "new", session_id="s1")

    msgs = call_list(db, "read_messages", {"session_id": "s1", "since": "2020-01-01T00:00:00"})
    assert [m["content"] for m in msgs] == ["new"]


def test_list_sessions_unscoped_and_by_agent(db, monkeypatch):
    monkeypatch.setenv("CONVERSATIONS_AGENT_ID", "zoe")
    api.send_message(db, "alice", "bob", "hi", session_id="s-ab")
    api.send_message(db, "carol", "dave", "hi", session_id="s-cd")

    everything = call_list(db, "list_sessions", {})
    assert {s["session_id"] for s in everything} == {"s-ab", "s-cd"}

    mine = call_list(db, "list_sessions", {"agent": "dave"})
    assert [s["session_id"] for s in mine] == ["s-cd"]
