"""Channel subcommand app: create, list, show, join, leave, members, send, read, mark-read."""

import typer

from conversations import api
from conversations.errors import ConversationsError, NotFound
from conversations.lib.identity import resolve_identity

from .format import (
    echo_if_output,
    fail,
    format_channel_row,
    format_local_time,
    format_message,
    get_store,
    output_json,
    should_output,
)

app = typer.Typer(help="Manage channels")


@app.command("create")
def create_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Channel name"),
    description: str = typer.Option(None, "--description", "-d", help="Channel description"),
    identity: str = typer.Option(None, "--as", help="Creator identity"),
):
    """Create a channel. The creator joins automatically."""
    try:
        channel = api.create_channel(get_store(ctx), name, resolve_identity(identity), description)
    except ConversationsError as e:
        fail(ctx, e)
    output_json(channel, ctx) or echo_if_output(f"Created #{channel.name}", ctx)


@app.command("list")
def list_cmd(ctx: typer.Context):
    """List channels with member and message counts."""
    try:
        chans = api.list_channels(get_store(ctx))
    except ConversationsError as e:
        fail(ctx, e)
    if output_json(chans, ctx) or not should_output(ctx):
        return
    if not chans:
        typer.echo("No channels found")
        return
    typer.echo(f"CHANNELS ({len(chans)}):")
    for channel in chans:
        typer.echo(f"  {format_channel_row(channel)}")


@app.command("show")
def show_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Channel name")):
    """Show one channel and its members."""
    db = get_store(ctx)
    try:
        channel = api.get_channel(db, name)
        if channel is None:
            raise NotFound(f"Channel #{name} not found")
        members = api.get_members(db, name)
    except ConversationsError as e:
        fail(ctx, e)
    if output_json({"channel": channel, "members": members}, ctx) or not should_output(ctx):
        return
    typer.echo(format_channel_row(channel))
    typer.echo(f"  created by {channel.created_by} at {format_local_time(channel.created_at)}")
    for member in members:
        typer.echo(f"  - {member.agent} (joined {format_local_time(member.joined_at)})")


@app.command("join")
def join_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Channel name"),
    identity: str = typer.Option(None, "--as", help="Agent identity"),
):
    """Join a channel."""
    agent = resolve_identity(identity)
    try:
        if not api.join_channel(get_store(ctx), name, agent):
            raise NotFound(f"Channel #{name} not found")
    except ConversationsError as e:
        fail(ctx, e)
    output_json({"channel": name, "agent": agent, "joined": True}, ctx) or echo_if_output(
        f"{agent} joined #{name}", ctx
    )


@app.command("leave")
def leave_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Channel name"),
    identity: str = typer.Option(None, "--as", help="Agent identity"),
):
    """Leave a channel."""
    agent = resolve_identity(identity)
    try:
        left = api.leave_channel(get_store(ctx), name, agent)
    except ConversationsError as e:
        fail(ctx, e)
    output_json({"channel": name, "agent": agent, "left": left}, ctx) or echo_if_output(
        f"{agent} left #{name}" if left else f"{agent} was not a member of #{name}", ctx
    )


@app.command("members")
def members_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Channel name")):
    """List channel members in join order."""
    try:
        members = api.get_members(get_store(ctx), name)
    except ConversationsError as e:
        fail(ctx, e)
    if output_json(members, ctx) or not should_output(ctx):
        return
    for member in members:
        typer.echo(f"{member.agent} (joined {format_local_time(member.joined_at)})")


@app.command("send")
def send_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Channel name"),
    content: str = typer.Argument(..., help="Message content"),
    identity: str = typer.Option(None, "--as", "--from", help="Sender identity"),
    priority: str = typer.Option("normal", "--priority", help="low, normal, high, urgent"),
):
    """Post a message to a channel."""
    try:
        msg = api.send_to_channel(
            get_store(ctx), name, resolve_identity(identity), content, priority
        )
    except ConversationsError as e:
        fail(ctx, e)
    output_json(msg, ctx) or echo_if_output(f"Sent #{msg.id} to #{msg.channel}", ctx)


@app.command("read")
def read_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Channel name"),
    since: str = typer.Option(None, "--since", help="Messages after this ISO timestamp"),
    limit: int = typer.Option(None, "--limit", help="Max messages to return"),
):
    """Read channel messages, oldest first."""
    try:
        msgs = api.read_channel(get_store(ctx), name, since=since, limit=limit)
    except ConversationsError as e:
        fail(ctx, e)
    if output_json(msgs, ctx) or not should_output(ctx):
        return
    if not msgs:
        typer.echo(f"No messages in #{name}")
        return
    for msg in msgs:
        typer.echo(format_message(msg))


@app.command("mark-read")
def mark_read_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Channel name"),
    identity: str = typer.Option(None, "--as", help="Reader identity"),
):
    """Mark everyone else's channel messages as read."""
    reader = resolve_identity(identity)
    try:
        count = api.mark_channel_read(get_store(ctx), name, reader)
    except ConversationsError as e:
        fail(ctx, e)
    output_json({"channel": name, "marked_read": count}, ctx) or echo_if_output(
        f"Marked {count} read in #{name}", ctx
    )
