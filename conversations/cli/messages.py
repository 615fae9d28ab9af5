"""Direct message commands: send, read, reply, mark-read, sessions, status."""

import typer

from conversations import api
from conversations.errors import ConversationsError
from conversations.lib.identity import resolve_identity

from .format import (
    echo_if_output,
    fail,
    format_message,
    format_session_row,
    get_store,
    output_json,
    should_output,
)


def register(app: typer.Typer) -> None:
    @app.command()
    def send(
        ctx: typer.Context,
        content: str = typer.Argument(..., help="Message content"),
        to: str = typer.Option(..., "--to", help="Recipient agent ID"),
        sender: str = typer.Option(None, "--from", help="Sender agent ID"),
        session: str = typer.Option(None, "--session", help="Session ID (auto-generated if omitted)"),
        priority: str = typer.Option("normal", "--priority", help="low, normal, high, urgent"),
        working_dir: str = typer.Option(None, "--working-dir", help="Working directory context"),
        repository: str = typer.Option(None, "--repository", help="Repository context"),
        branch: str = typer.Option(None, "--branch", help="Branch context"),
        metadata: str = typer.Option(None, "--metadata", help="JSON metadata object"),
    ):
        """Send a direct message to another agent."""
        try:
            msg = api.send_message(
                get_store(ctx),
                resolve_identity(sender),
                to,
                content,
                session_id=session,
                priority=priority,
                working_dir=working_dir,
                repository=repository,
                branch=branch,
                metadata=metadata,
            )
        except ConversationsError as e:
            fail(ctx, e)
        output_json(msg, ctx) or echo_if_output(
            f"Sent #{msg.id} to {msg.to_agent} (session {msg.session_id})", ctx
        )

    @app.command()
    def read(
        ctx: typer.Context,
        session: str = typer.Option(None, "--session", help="Filter by session ID"),
        sender: str = typer.Option(None, "--from", help="Filter by sender"),
        to: str = typer.Option(None, "--to", help="Filter by recipient"),
        channel: str = typer.Option(None, "--channel", help="Filter by channel"),
        since: str = typer.Option(None, "--since", help="Messages after this ISO timestamp"),
        limit: int = typer.Option(None, "--limit", help="Max messages to return"),
        unread: bool = typer.Option(False, "--unread", help="Only unread messages"),
        mark: bool = typer.Option(False, "--mark-read", help="Mark returned messages as read"),
        identity: str = typer.Option(None, "--as", help="Reader identity for --mark-read"),
    ):
        """Read messages, oldest first."""
        db = get_store(ctx)
        try:
            msgs = api.read_messages(
                db,
                session_id=session,
                from_agent=sender,
                to_agent=to,
                channel=channel,
                since=since,
                limit=limit,
                unread_only=unread,
            )
            marked = 0
            if mark and msgs:
                reader = resolve_identity(identity or to)
                marked = api.mark_read(db, [m.id for m in msgs], reader)
        except ConversationsError as e:
            fail(ctx, e)

        if output_json(msgs, ctx) or not should_output(ctx):
            return
        if not msgs:
            typer.echo("No messages")
            return
        for msg in msgs:
            typer.echo(format_message(msg))
        if mark:
            typer.echo(f"Marked {marked} read")

    @app.command()
    def reply(
        ctx: typer.Context,
        content: str = typer.Argument(..., help="Reply content"),
        message_id: int = typer.Option(..., "--to", help="Message ID to reply to"),
        sender: str = typer.Option(None, "--from", help="Sender agent ID"),
        priority: str = typer.Option("normal", "--priority", help="low, normal, high, urgent"),
    ):
        """Reply to a message in its session."""
        try:
            msg = api.reply(get_store(ctx), message_id, resolve_identity(sender), content, priority)
        except ConversationsError as e:
            fail(ctx, e)
        output_json(msg, ctx) or echo_if_output(
            f"Replied #{msg.id} to {msg.to_agent} (session {msg.session_id})", ctx
        )

    @app.command("mark-read")
    def mark_read_cmd(
        ctx: typer.Context,
        ids: list[int] = typer.Argument(None, help="Message IDs"),
        session: str = typer.Option(None, "--session", help="Mark a whole session read"),
        agent: str = typer.Option(None, "--agent", help="Agent marking messages as read"),
    ):
        """Mark messages addressed to you as read."""
        if not ids and not session:
            fail(ctx, ValueError("Provide message IDs or --session."))
        db = get_store(ctx)
        reader = resolve_identity(agent)
        try:
            count = api.mark_read(db, ids or [], reader)
            if session:
                count += api.mark_session_read(db, session, reader)
        except ConversationsError as e:
            fail(ctx, e)
        output_json({"marked_read": count, "agent": reader}, ctx) or echo_if_output(
            f"Marked {count} read as {reader}", ctx
        )

    @app.command()
    def sessions(
        ctx: typer.Context,
        agent: str = typer.Option(None, "--agent", help="Only sessions involving this agent"),
    ):
        """List conversation sessions, most recent first."""
        try:
            found = api.list_sessions(get_store(ctx), agent)
        except ConversationsError as e:
            fail(ctx, e)
        if output_json(found, ctx) or not should_output(ctx):
            return
        if not found:
            typer.echo("No sessions")
            return
        typer.echo(f"SESSIONS ({len(found)}):")
        for session in found:
            typer.echo(f"  {format_session_row(session)}")

    @app.command()
    def status(ctx: typer.Context):
        """Show database location and message counts."""
        try:
            info = api.get_status(get_store(ctx))
        except ConversationsError as e:
            fail(ctx, e)
        if output_json(info, ctx):
            return
        for key, value in info.items():
            echo_if_output(f"{key.replace('_', ' ')}: {value}", ctx)
