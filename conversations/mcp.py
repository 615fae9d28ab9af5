"""MCP tool server exposing the message store to agents over stdio."""

import logging
from collections.abc import Callable
from dataclasses import asdict
from functools import wraps
from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from conversations import api
from conversations.errors import ConversationsError, NotFound
from conversations.lib.identity import resolve_identity
from conversations.lib.store import Store

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Local messaging between AI agents on this machine. "
    "Send direct messages, reply in sessions, and post to shared channels. "
    "Your sender identity comes from CONVERSATIONS_AGENT_ID unless you pass one."
)


def _tool_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ConversationsError as e:
            logger.debug(f"{fn.__name__} failed: {e}")
            raise ToolError(str(e)) from e

    return wrapper


def build_mcp_server(db: Store) -> FastMCP:
    """Create the FastMCP server with one tool per store operation."""
    mcp = FastMCP(name="conversations", instructions=INSTRUCTIONS)

    @mcp.tool(name="send_message")
    @_tool_errors
    def send_message(
        to: str,
        content: str,
        session_id: str | None = None,
        priority: str = "normal",
        working_dir: str | None = None,
        repository: str | None = None,
        branch: str | None = None,
        metadata: dict | None = None,
        sender: str | None = None,
    ) -> dict[str, Any]:
        """Send a direct message to another agent.

        Leave session_id empty to start a new session; pass an existing one to
        continue a conversation.
        """
        msg = api.send_message(
            db,
            resolve_identity(sender),
            to,
            content,
            session_id=session_id,
            priority=priority,
            working_dir=working_dir,
            repository=repository,
            branch=branch,
            metadata=metadata,
        )
        return asdict(msg)

    @mcp.tool(name="read_messages")
    @_tool_errors
    def read_messages(
        session_id: str | None = None,
        from_agent: str | None = None,
        to_agent: str | None = None,
        channel: str | None = None,
        since: str | None = None,
        since_id: int | None = None,
        unread_only: bool = False,
        limit: int | None = None,
        mark_read: bool = False,
    ) -> list[dict[str, Any]]:
        """Read messages oldest first. Filters combine with AND.

        With mark_read, messages addressed to you are marked read once returned.
        """
        msgs = api.read_messages(
            db,
            session_id=session_id,
            from_agent=from_agent,
            to_agent=to_agent,
            channel=channel,
            since=since,
            since_id=since_id,
            unread_only=unread_only,
            limit=limit,
        )
        if mark_read and msgs:
            api.mark_read(db, [m.id for m in msgs], resolve_identity())
        return [asdict(m) for m in msgs]

    @mcp.tool(name="list_sessions")
    @_tool_errors
    def list_sessions(agent: str | None = None) -> list[dict[str, Any]]:
        """List sessions, most recently active first. Pass agent to see only theirs."""
        return [asdict(s) for s in api.list_sessions(db, agent)]

    @mcp.tool(name="reply")
    @_tool_errors
    def reply(message_id: int, content: str, priority: str = "normal") -> dict[str, Any]:
        """Reply to a message in its session (or its channel)."""
        return asdict(api.reply(db, message_id, resolve_identity(), content, priority))

    @mcp.tool(name="mark_read")
    @_tool_errors
    def mark_read(
        message_ids: list[int] | None = None, session_id: str | None = None
    ) -> dict[str, Any]:
        """Mark messages addressed to you as read, by id or by whole session."""
        reader = resolve_identity()
        if session_id:
            count = api.mark_session_read(db, session_id, reader)
        else:
            count = api.mark_read(db, message_ids or [], reader)
        return {"marked_read": count, "reader": reader}

    @mcp.tool(name="create_channel")
    @_tool_errors
    def create_channel(name: str, description: str | None = None) -> dict[str, Any]:
        """Create a channel. You join it automatically."""
        return asdict(api.create_channel(db, name, resolve_identity(), description))

    @mcp.tool(name="list_channels")
    @_tool_errors
    def list_channels() -> list[dict[str, Any]]:
        """List channels with member and message counts."""
        return [asdict(c) for c in api.list_channels(db)]

    @mcp.tool(name="send_to_channel")
    @_tool_errors
    def send_to_channel(channel: str, content: str, priority: str = "normal") -> dict[str, Any]:
        """Post a message to every member of a channel."""
        return asdict(api.send_to_channel(db, channel, resolve_identity(), content, priority))

    @mcp.tool(name="read_channel")
    @_tool_errors
    def read_channel(
        channel: str, since: str | None = None, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Read channel messages oldest first, optionally after an ISO timestamp."""
        return [asdict(m) for m in api.read_channel(db, channel, since=since, limit=limit)]

    @mcp.tool(name="join_channel")
    @_tool_errors
    def join_channel(channel: str) -> dict[str, Any]:
        agent = resolve_identity()
        if not api.join_channel(db, channel, agent):
            raise NotFound(f"Channel #{channel} not found")
        return {"channel": channel, "agent": agent, "joined": True}

    @mcp.tool(name="leave_channel")
    @_tool_errors
    def leave_channel(channel: str) -> dict[str, Any]:
        agent = resolve_identity()
        return {"channel": channel, "agent": agent, "left": api.leave_channel(db, channel, agent)}

    @mcp.tool(name="channel_members")
    @_tool_errors
    def channel_members(channel: str) -> list[dict[str, Any]]:
        """List channel members in join order."""
        return [asdict(m) for m in api.get_members(db, channel)]

    return mcp
