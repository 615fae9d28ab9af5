"""convo CLI: thin command wrappers delegating to the api layer."""

import typer

from conversations.lib import config
from conversations.lib.logs import setup_logging

from . import channels, live, messages
from .format import get_store

app = typer.Typer(help="Local messaging between AI agents.", no_args_is_help=True)


@app.callback()
def main_callback(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", "-j", help="Output in JSON format."),
    quiet_output: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    db_path: str = typer.Option(
        None, "--db", envvar="CONVERSATIONS_DB_PATH", help="Path to messages.db"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
):
    """Send, read, and watch messages between agents on this machine."""
    setup_logging("DEBUG" if verbose else None)
    ctx.obj = ctx.obj or {}
    ctx.obj.update(
        {
            "json_output": json_output,
            "quiet_output": quiet_output,
            "db_path": db_path,
            "busy_timeout_ms": config.get("busy_timeout_ms", 5000),
        }
    )


messages.register(app)
live.register(app)
app.add_typer(channels.app, name="channels")


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option(None, "--host", help="Interface to bind"),
    port: int = typer.Option(None, "--port", help="Port to listen on"),
):
    """Run the dashboard REST API."""
    from conversations import server

    server.serve(
        get_store(ctx),
        host=host or config.get("server.host", "127.0.0.1"),
        port=port or config.get("server.port", 3456),
    )


@app.command()
def mcp(ctx: typer.Context):
    """Run the MCP tool server on stdio."""
    from conversations import mcp as mcp_server

    mcp_server.build_mcp_server(get_store(ctx)).run()


def main() -> None:
    app()


__all__ = ["app", "main"]
