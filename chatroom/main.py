from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import (
    Body,
    FastAPI,
    Header,
    HTTPException,
    Query,
    Request,
    Response,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from .chat import ChatRoom
from .clock import Clock
from .config import Settings, settings as default_settings
from .errors import ChatError, StorageError, ValidationError, Violation
from .logging_utils import logging_middleware
from .metrics import render_metrics
from .models import MessageKind


# kinds a client may send; status messages are written by the server only
CLIENT_KINDS = {MessageKind.CHAT.value, MessageKind.PRIVATE.value}


# ---------- Pydantic Models ----------


class ParticipantOut(BaseModel):
    name: str
    lastStatus: int  # epoch milliseconds


class MessageOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    from_: str = Field(serialization_alias="from")
    to: str
    text: str
    type: str
    time: str


class CreatedMessage(BaseModel):
    id: int


def _message_out(m) -> dict:
    kind = m.type.value if isinstance(m.type, MessageKind) else m.type
    return MessageOut(
        id=m.id, from_=m.from_, to=m.to, text=m.text, type=kind, time=m.time
    ).model_dump(by_alias=True)


def _client_fields(payload: Any) -> dict:
    """Pick the client-writable message fields out of a request body."""
    if not isinstance(payload, dict):
        payload = {}
    fields = {k: payload.get(k) for k in ("to", "text", "type")}
    if isinstance(fields["type"], str) and fields["type"] not in CLIENT_KINDS:
        raise ValidationError(
            [Violation("type", f"must be one of {sorted(CLIENT_KINDS)}")]
        )
    return fields


# ---------- App factory ----------


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    start_sweeper: bool = True,
) -> FastAPI:
    settings = settings or default_settings
    room = ChatRoom(settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        room.store.init_db()
        if start_sweeper:
            room.sweeper.start()
        try:
            yield
        finally:
            await room.sweeper.stop()
            room.store.dispose()

    app = FastAPI(title="Chatroom Backend", lifespan=lifespan)
    app.state.room = room

    app.middleware("http")(logging_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        request.state.log_extra = getattr(request.state, "log_extra", {})
        request.state.log_extra["outcome"] = exc.__class__.__name__

        if isinstance(exc, ValidationError):
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": [v.as_dict() for v in exc.violations]},
            )
        if exc.status_code >= 500:
            # storage and partial failures are logged where they happen
            return JSONResponse(
                status_code=exc.status_code, content={"detail": "internal error"}
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # ---------- Endpoints ----------

    @app.get("/health/live")
    def health_live():
        return {"status": "ok"}

    @app.get("/health/ready")
    def health_ready():
        try:
            room.store.ping()
        except StorageError:
            raise HTTPException(status_code=503, detail="database unavailable")
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics():
        try:
            online = room.store.participants.count()
        except StorageError:
            online = None
        return PlainTextResponse(
            content=render_metrics(participants_online=online), media_type="text/plain"
        )

    @app.post("/participants", status_code=status.HTTP_201_CREATED)
    def register_participant(request: Request, payload: Any = Body(default=None)):
        name = payload.get("name") if isinstance(payload, dict) else None
        participant = room.registry.register(name)
        request.state.log_extra["participant"] = participant.name
        return Response(status_code=status.HTTP_201_CREATED)

    @app.get("/participants", response_model=list[ParticipantOut])
    def list_participants():
        return [
            ParticipantOut(name=p.name, lastStatus=int(p.last_seen * 1000))
            for p in room.registry.list()
        ]

    @app.post("/messages", status_code=status.HTTP_201_CREATED)
    def post_message(
        request: Request,
        payload: Any = Body(default=None),
        user: Optional[str] = Header(default=None),
    ):
        fields = _client_fields(payload)
        message_id = room.messages.post(
            user, fields["to"], fields["text"], fields["type"]
        )
        request.state.log_extra["message_id"] = message_id
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content=CreatedMessage(id=message_id).model_dump(),
        )

    @app.get("/messages")
    def list_messages(
        limit: Optional[str] = Query(default=None),
        user: Optional[str] = Header(default=None),
    ):
        return [_message_out(m) for m in room.messages.list(user, limit)]

    @app.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_message(message_id: str, user: Optional[str] = Header(default=None)):
        room.messages.remove(message_id, user)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.put("/messages/{message_id}")
    def edit_message(
        message_id: str,
        payload: Any = Body(default=None),
        user: Optional[str] = Header(default=None),
    ):
        fields = _client_fields(payload)
        room.messages.edit(message_id, user, fields)
        return Response(status_code=status.HTTP_200_OK)

    @app.post("/status")
    def heartbeat(user: Optional[str] = Header(default=None)):
        room.registry.heartbeat(user)
        return Response(status_code=status.HTTP_200_OK)

    return app


app = create_app()
