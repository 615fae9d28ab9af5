"""CLI output formatting and helpers."""

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import NoReturn

import typer

from conversations.errors import Busy
from conversations.lib.store import Store
from conversations.models import ChannelInfo, Message, Session


def get_store(ctx: typer.Context) -> Store:
    """Store for this invocation, opened on first use and closed with the context."""
    obj = ctx.ensure_object(dict)
    db = obj.get("store")
    if db is None:
        db = Store(obj.get("db_path"), busy_timeout_ms=obj.get("busy_timeout_ms", 5000))
        obj["store"] = db
        ctx.find_root().call_on_close(db.close)
    return db


def to_jsonable(data):
    if is_dataclass(data) and not isinstance(data, type):
        return asdict(data)
    if isinstance(data, list):
        return [to_jsonable(item) for item in data]
    return data


def output_json(data, ctx: typer.Context) -> bool:
    """Output data as JSON if requested. Returns True if output, False otherwise."""
    if (ctx.obj or {}).get("json_output"):
        typer.echo(json.dumps(to_jsonable(data), indent=2))
        return True
    return False


def should_output(ctx: typer.Context) -> bool:
    """Check if output should be printed (not quiet mode)."""
    return not (ctx.obj or {}).get("quiet_output")


def echo_if_output(msg: str, ctx: typer.Context):
    """Echo message only if not in quiet mode."""
    if should_output(ctx):
        typer.echo(msg)


def fail(ctx: typer.Context, error: Exception) -> NoReturn:
    """Report an error in the active output mode and exit 1."""
    message = str(error)
    if isinstance(error, Busy):
        message = f"Database busy, try again. ({error})"
    output_json({"status": "error", "error": type(error).__name__, "message": message}, ctx) or (
        typer.echo(f"❌ {message}", err=True)
    )
    raise typer.Exit(code=1) from error


def format_local_time(timestamp: str | None) -> str:
    """Format a stored UTC timestamp as local time."""
    if not timestamp:
        return "never"
    try:
        dt = datetime.fromisoformat(timestamp).replace(tzinfo=timezone.utc)
        return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, TypeError):
        return timestamp


def format_message(msg: Message) -> str:
    target = f"#{msg.channel}" if msg.channel else msg.to_agent
    flags = []
    if msg.priority != "normal":
        flags.append(msg.priority.upper())
    if msg.read_at is None:
        flags.append("unread")
    flag_str = f" [{', '.join(flags)}]" if flags else ""
    header = f"#{msg.id} {format_local_time(msg.created_at)} {msg.from_agent} -> {target}{flag_str}"
    return f"{header}\n  {msg.content}"


def format_session_row(session: Session) -> str:
    unread = f" | {session.unread_count} unread" if session.unread_count else ""
    return (
        f"{session.session_id}: {', '.join(session.participants)} "
        f"({session.message_count} msgs{unread}, last {format_local_time(session.last_message_at)})"
    )


def format_channel_row(channel: ChannelInfo) -> str:
    parts = [f"{channel.member_count} members", f"{channel.message_count} msgs"]
    description = f" - {channel.description}" if channel.description else ""
    return f"#{channel.name}{description} ({' | '.join(parts)})"
