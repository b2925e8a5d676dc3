import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from mythrift.config import get_settings
from mythrift.database.connection import mongo_db_dependency
from mythrift.repositories.conversation_repository import ConversationRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.realtime import (
    ERROR,
    JOIN,
    JOIN_CHAT,
    JOINED,
    JOINED_CHAT,
    LEAVE_CHAT,
    LEFT_CHAT,
    PONG,
    WsInbound,
)
from mythrift.utils.dependencies import authenticate, get_gateway
from mythrift.utils.errors import AuthError
from mythrift.utils.websocket_manager import Connection, ConnectionManager


logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

CLOSE_UNAUTHORIZED = 4401


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    manager: ConnectionManager = Depends(get_gateway),
):
    # JWT protects the socket: token comes as ?token=...
    try:
        user = await authenticate(websocket.query_params.get("token"), UserRepository(db))
    except AuthError as exc:
        logger.info("Rejected socket: %s", exc.detail)
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return

    settings = get_settings()
    conversations = ConversationRepository(db)
    conn = await manager.connect(websocket)
    heartbeat_task = asyncio.create_task(
        manager.heartbeat(conn, settings.ws_ping_interval, settings.ws_ping_timeout)
    )
    try:
        while True:
            raw = await websocket.receive_text()
            if conn.closed:
                # evicted or timed out while we were waiting
                break
            conn.touch()
            try:
                msg = WsInbound.model_validate_json(raw)
            except ValidationError:
                await conn.send(ERROR, {"detail": "Invalid message payload"})
                continue
            await _handle(manager, conversations, conn, user.id, msg)
    except WebSocketDisconnect:
        pass
    finally:
        heartbeat_task.cancel()
        await manager.disconnect(conn)


async def _handle(
    manager: ConnectionManager,
    conversations: ConversationRepository,
    conn: Connection,
    user_id: str,
    msg: WsInbound,
) -> None:
    if msg.event == PONG:
        return

    if msg.event == JOIN:
        if msg.data != user_id:
            await conn.send(ERROR, {"detail": "Identity does not match token"})
            return
        await manager.identify(conn, user_id)
        await conn.send(JOINED, {"user_id": user_id})
        return

    if msg.event in (JOIN_CHAT, LEAVE_CHAT):
        if conn.user_id is None:
            await conn.send(ERROR, {"detail": "Send join before joining chats"})
            return
        if not isinstance(msg.data, str) or not msg.data:
            await conn.send(ERROR, {"detail": "Conversation id required"})
            return
        if msg.event == LEAVE_CHAT:
            await manager.leave_room(conn, msg.data)
            await conn.send(LEFT_CHAT, {"conversation_id": msg.data})
            return
        if not await conversations.is_participant(msg.data, user_id):
            await conn.send(ERROR, {"detail": "Access denied", "conversation_id": msg.data})
            return
        await manager.join_room(conn, msg.data)
        await conn.send(JOINED_CHAT, {"conversation_id": msg.data})
        return

    await conn.send(ERROR, {"detail": f"Unknown event {msg.event!r}"})
