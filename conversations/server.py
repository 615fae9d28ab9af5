"""Dashboard REST API over the message store."""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from dataclasses import asdict
from queue import Empty, Queue

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from conversations import __version__, api
from conversations.api.polling import DEFAULT_INTERVAL
from conversations.errors import Busy, ConversationsError, Duplicate, InvalidArgument, NotFound
from conversations.lib.identity import resolve_identity
from conversations.lib.store import Store

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidArgument: 400,
    NotFound: 404,
    Duplicate: 409,
    Busy: 503,
}


class SendMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: str | None = Field(None, alias="from")
    to: str | None = None
    content: str
    channel: str | None = None
    session_id: str | None = None
    priority: str = "normal"
    working_dir: str | None = None
    repository: str | None = None
    branch: str | None = None
    metadata: dict | None = None


class MarkRead(BaseModel):
    ids: list[int]
    reader: str


class CreateChannel(BaseModel):
    name: str
    created_by: str | None = None
    description: str | None = None


class AgentBody(BaseModel):
    agent: str | None = None


class ChannelPost(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: str | None = Field(None, alias="from")
    content: str
    priority: str = "normal"


def _status_for(error: ConversationsError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


def create_app(db: Store) -> FastAPI:
    app = FastAPI(title="Conversations API", version=__version__)
    app.state.store = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConversationsError)
    async def conversations_error(request: Request, exc: ConversationsError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        body = {"error": str(exc), "type": type(exc).__name__}
        if isinstance(exc, Busy):
            body["retryable"] = True
        return JSONResponse(status_code=status, content=body)

    @app.get("/api/status")
    def get_status():
        return api.get_status(db)

    @app.get("/api/messages")
    def list_messages(
        limit: int = 50,
        session: str | None = None,
        channel: str | None = None,
        sender: str | None = Query(None, alias="from"),
        to: str | None = None,
        unread: bool = False,
    ):
        msgs = api.read_messages(
            db,
            session_id=session,
            channel=channel,
            from_agent=sender,
            to_agent=to,
            unread_only=unread,
            limit=limit,
            order="desc",
        )
        return [asdict(m) for m in msgs]

    @app.post("/api/messages")
    def send_message(body: SendMessage):
        msg = api.send_message(
            db,
            resolve_identity(body.sender),
            body.to,
            body.content,
            session_id=body.session_id,
            channel=body.channel,
            priority=body.priority,
            working_dir=body.working_dir,
            repository=body.repository,
            branch=body.branch,
            metadata=body.metadata,
        )
        return asdict(msg)

    @app.post("/api/messages/read")
    def mark_read(body: MarkRead):
        return {"marked_read": api.mark_read(db, body.ids, body.reader)}

    @app.get("/api/messages/{message_id}")
    def get_message(message_id: int):
        msg = api.get_message(db, message_id)
        if msg is None:
            raise NotFound(f"Message #{message_id} not found")
        return asdict(msg)

    @app.get("/api/sessions")
    def list_sessions(agent: str | None = None):
        return [asdict(s) for s in api.list_sessions(db, agent)]

    @app.get("/api/sessions/{session_id}")
    def get_session(session_id: str, agent: str | None = None):
        session = api.get_session(db, session_id, agent)
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        return asdict(session)

    @app.get("/api/channels")
    def list_channels():
        return [asdict(c) for c in api.list_channels(db)]

    @app.post("/api/channels")
    def create_channel(body: CreateChannel):
        channel = api.create_channel(
            db, body.name, resolve_identity(body.created_by), body.description
        )
        return asdict(channel)

    @app.get("/api/channels/{name}")
    def get_channel(name: str):
        channel = api.get_channel(db, name)
        if channel is None:
            raise NotFound(f"Channel #{name} not found")
        return asdict(channel)

    @app.get("/api/channels/{name}/members")
    def channel_members(name: str):
        return [asdict(m) for m in api.get_members(db, name)]

    @app.post("/api/channels/{name}/join")
    def join_channel(name: str, body: AgentBody):
        agent = resolve_identity(body.agent)
        if not api.join_channel(db, name, agent):
            raise NotFound(f"Channel #{name} not found")
        return {"channel": name, "agent": agent, "joined": True}

    @app.post("/api/channels/{name}/leave")
    def leave_channel(name: str, body: AgentBody):
        agent = resolve_identity(body.agent)
        return {"channel": name, "agent": agent, "left": api.leave_channel(db, name, agent)}

    @app.post("/api/channels/{name}/read")
    def mark_channel_read(name: str, body: AgentBody):
        reader = resolve_identity(body.agent)
        return {"channel": name, "marked_read": api.mark_channel_read(db, name, reader)}

    @app.post("/api/channels/{name}/messages")
    def post_to_channel(name: str, body: ChannelPost):
        msg = api.send_to_channel(
            db, name, resolve_identity(body.sender), body.content, body.priority
        )
        return asdict(msg)

    @app.get("/api/stream")
    async def stream(
        session: str | None = None,
        to: str | None = None,
        channel: str | None = None,
    ) -> StreamingResponse:
        return StreamingResponse(
            stream_messages(db, session_id=session, to_agent=to, channel=channel),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    return app


async def stream_messages(
    db: Store,
    *,
    session_id: str | None = None,
    to_agent: str | None = None,
    channel: str | None = None,
    interval: float = DEFAULT_INTERVAL,
) -> AsyncGenerator[str, None]:
    """Server-sent events for messages created after the client connects."""
    queue: Queue = Queue()
    sub = api.start_polling(
        db,
        queue.put,
        session_id=session_id,
        to_agent=to_agent,
        channel=channel,
        interval=interval,
    )
    try:
        while True:
            try:
                batch = queue.get_nowait()
            except Empty:
                await asyncio.sleep(0.1)
                continue
            for msg in batch:
                yield f"id: {msg.id}\ndata: {json.dumps(asdict(msg))}\n\n"
    finally:
        await asyncio.to_thread(sub.stop)


def serve(db: Store, host: str = "127.0.0.1", port: int = 3456) -> None:
    import uvicorn

    logger.info(f"Dashboard API at http://{host}:{port}")
    uvicorn.run(create_app(db), host=host, port=port, access_log=False)
