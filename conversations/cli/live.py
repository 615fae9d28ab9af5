"""Live commands: watch (tail until interrupted) and wait (block for the next batch)."""

import json
import time

import typer

from conversations import api
from conversations.errors import ConversationsError
from conversations.lib import config

from .format import echo_if_output, fail, format_message, get_store, output_json, to_jsonable


def register(app: typer.Typer) -> None:
    @app.command()
    def watch(
        ctx: typer.Context,
        session: str = typer.Option(None, "--session", help="Only this session"),
        to: str = typer.Option(None, "--to", help="Only messages to this agent"),
        channel: str = typer.Option(None, "--channel", help="Only this channel"),
        interval: float = typer.Option(None, "--interval", help="Poll interval in seconds"),
    ):
        """Print new messages as they arrive until interrupted."""
        json_output = (ctx.obj or {}).get("json_output")

        def on_messages(batch):
            for msg in batch:
                if json_output:
                    typer.echo(json.dumps(to_jsonable(msg)))
                else:
                    typer.echo(format_message(msg))

        try:
            sub = api.start_polling(
                get_store(ctx),
                on_messages,
                session_id=session,
                to_agent=to,
                channel=channel,
                interval=interval or config.get("poll_interval", 0.2),
            )
        except ConversationsError as e:
            fail(ctx, e)

        if not json_output:
            echo_if_output(f"Watching {sub.describe()} (Ctrl-C to stop)", ctx)
        try:
            while True:
                time.sleep(0.5)
        except KeyboardInterrupt:
            pass
        finally:
            sub.stop()

    @app.command()
    def wait(
        ctx: typer.Context,
        session: str = typer.Option(None, "--session", help="Only this session"),
        to: str = typer.Option(None, "--to", help="Only messages to this agent"),
        channel: str = typer.Option(None, "--channel", help="Only this channel"),
        timeout: float = typer.Option(None, "--timeout", help="Give up after this many seconds"),
        interval: float = typer.Option(None, "--interval", help="Poll interval in seconds"),
    ):
        """Block until a new matching message arrives. Exits 2 on timeout."""
        try:
            msgs = api.wait_for_messages(
                get_store(ctx),
                session_id=session,
                to_agent=to,
                channel=channel,
                timeout=timeout,
                interval=interval or config.get("poll_interval", 0.2),
            )
        except KeyboardInterrupt:
            raise typer.Exit(code=0) from None
        except ConversationsError as e:
            fail(ctx, e)

        if output_json(msgs, ctx):
            if not msgs:
                raise typer.Exit(code=2)
            return
        if not msgs:
            echo_if_output("Timed out waiting for messages", ctx)
            raise typer.Exit(code=2)
        for msg in msgs:
            echo_if_output(format_message(msg), ctx)
