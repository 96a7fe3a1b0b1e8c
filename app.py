from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pydantic import ValidationError
from typing import Optional
from datetime import datetime
import json
import os

from backend import RedisBackend
from constants import CORS_ORIGINS, SNAPSHOT_BACKEND
from errors import ChatError, InvalidPayload, UnknownEvent, UnregisteredSender
from logging_config import ensure_logging, get_logger
from registry import Connection
from routers.identities import identities_router
from routers.rooms import rooms_router
from schemas.events import (
    ConnectWithCodeRequest,
    GetChatsRequest,
    Registered,
    RegisterRequest,
    SendMessageRequest,
    TypingRequest,
)
from schemas.rooms import HealthResponse, ServerStatusResponse
from state import ChatState

# Setup logging unless the entrypoint already did
ensure_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE", None))
logger = get_logger(__name__)


# Event handlers. Each one runs its state changes before its first await.

async def on_register(state: ChatState, conn: Connection, data: dict):
    request = RegisterRequest.model_validate(data)
    identity_id = request.userId or state.registry.identity_of(conn)
    identity = state.directory.register(request.profile(), identity_id=identity_id)
    state.mark_dirty()
    chats = state.reconciler.reconcile(conn, identity.id)
    logger.info(f"Connection {conn.id} registered as {identity.displayName} ({identity.id}) "
                f"with code {identity.inviteCode}")

    await conn.send_json(Registered(identityId=identity.id, displayName=identity.displayName,
                                    inviteCode=identity.inviteCode).model_dump())
    await conn.send_json(chats.model_dump())


def _bound_identity(state: ChatState, conn: Connection, claimed: Optional[str]) -> str:
    identity_id = state.broadcaster.sender_of(conn)
    if claimed and claimed != identity_id:
        logger.warning(f"Connection {conn.id} bound to {identity_id} claimed to be {claimed}")
        raise UnregisteredSender("Connection is not registered for that identity")
    return identity_id


async def on_get_chats(state: ChatState, conn: Connection, data: dict):
    request = GetChatsRequest.model_validate(data)
    identity_id = _bound_identity(state, conn, request.identityId)
    chats = state.reconciler.reconcile(conn, identity_id)
    await conn.send_json(chats.model_dump())


async def on_connect_with_code(state: ChatState, conn: Connection, data: dict):
    request = ConnectWithCodeRequest.model_validate(data)
    identity_id = _bound_identity(state, conn, request.myIdentityId)
    await state.pairing.pair(identity_id, request.inviteCode)


async def on_send_message(state: ChatState, conn: Connection, data: dict):
    request = SendMessageRequest.model_validate(data)
    await state.broadcaster.send(conn, request.roomId, request.text, request.clientTimestamp)


async def on_typing(state: ChatState, conn: Connection, data: dict):
    request = TypingRequest.model_validate(data)
    await state.broadcaster.typing(conn, request.roomId, request.isTyping)


async def on_ping(state: ChatState, conn: Connection, data: dict):
    await conn.send_json({"type": "pong", "timestamp": state.clock()})


EVENT_HANDLERS = {
    "register": on_register,
    "getChats": on_get_chats,
    "connectWithCode": on_connect_with_code,
    "sendMessage": on_send_message,
    "typing": on_typing,
    "ping": on_ping,
}


async def dispatch(state: ChatState, conn: Connection, raw: str):
    """Handle one inbound frame. Client errors go back to this connection only."""
    try:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, RecursionError):
            raise InvalidPayload("Frame is not valid JSON")
        if not isinstance(data, dict):
            raise InvalidPayload("Frame must be a JSON object")

        event = data.get("type")
        if not isinstance(event, str):
            raise InvalidPayload("Frame type must be a string")
        handler = EVENT_HANDLERS.get(event)
        if handler is None:
            raise UnknownEvent(f"Unknown event type: {event}")
        logger.debug(f"Event {event} from connection {conn.id}")

        try:
            await handler(state, conn, data)
        except ValidationError as e:
            errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            raise InvalidPayload(f"Invalid {event} payload: {errors}")
    except ChatError as e:
        logger.warning(f"{e.code} for connection {conn.id}: {e.message}")
        await conn.send_json(e.to_event())


def create_app(state: Optional[ChatState] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        backend = None
        if getattr(app.state, "chat", None) is None:
            if SNAPSHOT_BACKEND == "redis":
                backend = RedisBackend().connect()
            app.state.chat = ChatState(backend=backend)
        await app.state.chat.start()
        logger.info("EphemeralChat coordinator ready")
        try:
            yield
        finally:
            await app.state.chat.stop()
            if backend is not None:
                backend.close()

    app = FastAPI(lifespan=lifespan)
    app.state.chat = state

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.include_router(identities_router)

    @app.get("/", response_model=ServerStatusResponse)
    async def server_status():
        chat = app.state.chat
        return ServerStatusResponse(
            message="EphemeralChat server running",
            active_users=chat.registry.present_identity_count(),
            connections=chat.registry.connection_count(),
            conversations=len(chat.store),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="OK", timestamp=datetime.now().isoformat())

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Event protocol endpoint. One connection per browser tab; identities are bound by `register`."""
        chat: ChatState = app.state.chat
        await websocket.accept()
        conn = Connection(websocket)
        logger.info(f"WebSocket connection accepted: {conn.id}")

        message_count = 0
        try:
            while True:
                data = await websocket.receive_text()
                message_count += 1
                await dispatch(chat, conn, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {conn.id} after {message_count} frames")
        except Exception as e:
            logger.error(f"WebSocket error for connection {conn.id}: {e}", exc_info=True)
            try:
                await websocket.close()
            except Exception as close_error:
                logger.debug(f"Error closing WebSocket: {close_error}")
        finally:
            identity_id = chat.registry.unbind(conn)
            if identity_id:
                logger.info(f"Connection {conn.id} of {identity_id} left "
                            f"(remaining: {len(chat.registry.live_handles_of(identity_id))})")

    logger.info("FastAPI application initialized")
    return app


app = create_app()
