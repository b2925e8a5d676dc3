import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Dict, List, Optional, Set

from fastapi import WebSocket
from pydantic import ValidationError

from mythrift.schemas.realtime import PING, BusEnvelope, WsOutbound


logger = logging.getLogger(__name__)

CLOSE_REPLACED = 4409
CLOSE_IDLE = 4408
CLOSE_GOING_AWAY = 1001


class Connection:
    """One accepted socket. ``id`` is the handle compared on re-announce."""

    def __init__(self, websocket: WebSocket) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id: Optional[str] = None
        self.rooms: Set[str] = set()
        self.closed = False
        self.last_seen = time.monotonic()

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    def idle_for(self) -> float:
        return time.monotonic() - self.last_seen

    async def send(self, event: str, data: Any = None) -> None:
        await self.websocket.send_json(WsOutbound(event=event, data=data).model_dump(mode="json"))


class ConnectionManager:
    """
    Process-wide registry of realtime connections.

    Holds the identity -> canonical connection map and the room membership,
    both mutated only under ``_lock``. A newer connection announcing the same
    identity replaces (and closes) the older one.

    With a bus, ``publish_to_*`` goes through it so every worker process
    delivers to the sockets it owns; without one, delivery is local.
    """

    def __init__(self, bus=None, channel: str = "mythrift:realtime") -> None:
        self._connections: Dict[str, Connection] = {}
        self._by_user: Dict[str, Connection] = {}
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._bus = bus
        self._channel = channel
        self._subscriber = None
        self._subscriber_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def start(self, bus) -> None:
        self._bus = bus
        if not getattr(bus, "enabled", False):
            return
        self._subscriber = await bus.subscribe(self._channel, self.handle_bus_message)
        self._subscriber_task = asyncio.create_task(self._subscriber.run())

    async def close_all(self) -> None:
        if self._subscriber is not None:
            await self._subscriber.cancel()
            self._subscriber = None
        if self._subscriber_task is not None:
            self._subscriber_task.cancel()
            self._subscriber_task = None
        for task in list(self._tasks):
            task.cancel()
        async with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
            self._by_user.clear()
            self._rooms.clear()
        for conn in connections:
            conn.rooms.clear()
            await self._close(conn, CLOSE_GOING_AWAY, "Server shutting down")
        logger.info("Realtime gateway closed (%d connections)", len(connections))

    # ------------------------------------------------------------------
    # connections, identities, rooms
    # ------------------------------------------------------------------
    async def connect(self, websocket: WebSocket) -> Connection:
        await websocket.accept()
        conn = Connection(websocket)
        async with self._lock:
            self._connections[conn.id] = conn
        logger.info("Socket %s connected", conn.id)
        return conn

    async def identify(self, conn: Connection, user_id: str) -> Optional[Connection]:
        """Make ``conn`` canonical for ``user_id``; returns the evicted connection, if any."""
        evicted: Optional[Connection] = None
        async with self._lock:
            if conn.user_id and conn.user_id != user_id and self._by_user.get(conn.user_id) is conn:
                del self._by_user[conn.user_id]
            previous = self._by_user.get(user_id)
            if previous is not None and previous.id != conn.id:
                self._forget(previous)
                evicted = previous
            conn.user_id = user_id
            self._by_user[user_id] = conn

        if evicted is not None:
            logger.info("User %s reconnected on %s, closing %s", user_id, conn.id, evicted.id)
            await self._close(evicted, CLOSE_REPLACED, "Replaced by a newer connection")
        return evicted

    async def join_room(self, conn: Connection, room: str) -> bool:
        async with self._lock:
            if conn.id not in self._connections:
                return False
            self._rooms.setdefault(room, {})[conn.id] = conn
            conn.rooms.add(room)
        return True

    async def leave_room(self, conn: Connection, room: str) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.pop(conn.id, None)
                if not members:
                    del self._rooms[room]
            conn.rooms.discard(room)

    async def disconnect(self, conn: Connection) -> None:
        async with self._lock:
            self._forget(conn)
        conn.closed = True
        logger.info("Socket %s disconnected (user=%s)", conn.id, conn.user_id)

    def _forget(self, conn: Connection) -> None:
        # caller holds the lock
        self._connections.pop(conn.id, None)
        for room in conn.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.pop(conn.id, None)
            if not members:
                del self._rooms[room]
        conn.rooms.clear()
        if conn.user_id and self._by_user.get(conn.user_id) is conn:
            del self._by_user[conn.user_id]

    def connection_for(self, user_id: str) -> Optional[Connection]:
        return self._by_user.get(user_id)

    def room_members(self, room: str) -> List[Connection]:
        return list(self._rooms.get(room, {}).values())

    # ------------------------------------------------------------------
    # delivery
    # ------------------------------------------------------------------
    async def emit_to_room(self, room: str, event: str, data: Any = None) -> int:
        async with self._lock:
            targets = list(self._rooms.get(room, {}).values())
        return await self._send_all(targets, event, data)

    async def emit_to_user(self, user_id: str, event: str, data: Any = None) -> int:
        async with self._lock:
            conn = self._by_user.get(user_id)
        return await self._send_all([conn] if conn else [], event, data)

    async def publish_to_room(self, room: str, event: str, data: Any = None) -> None:
        if getattr(self._bus, "enabled", False):
            await self._publish(BusEnvelope(scope="room", target=room, event=event, data=data))
        else:
            await self.emit_to_room(room, event, data)

    async def publish_to_user(self, user_id: str, event: str, data: Any = None) -> None:
        if getattr(self._bus, "enabled", False):
            await self._publish(BusEnvelope(scope="user", target=user_id, event=event, data=data))
        else:
            await self.emit_to_user(user_id, event, data)

    async def handle_bus_message(self, raw: str) -> None:
        try:
            envelope = BusEnvelope.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping malformed realtime bus message: %.200s", raw)
            return
        if envelope.scope == "room":
            await self.emit_to_room(envelope.target, envelope.event, envelope.data)
        else:
            await self.emit_to_user(envelope.target, envelope.event, envelope.data)

    async def _publish(self, envelope: BusEnvelope) -> None:
        await self._bus.publish(self._channel, envelope.model_dump_json())

    async def _send_all(self, targets: List[Connection], event: str, data: Any) -> int:
        delivered = 0
        for conn in targets:
            try:
                await conn.send(event, data)
                delivered += 1
            except Exception:
                # best effort: a dead socket just stops receiving
                logger.warning("Dropping socket %s after failed %s delivery", conn.id, event, exc_info=True)
                await self.disconnect(conn)
        return delivered

    async def _close(self, conn: Connection, code: int, reason: str) -> None:
        if conn.closed:
            return
        conn.closed = True
        try:
            await conn.websocket.close(code=code, reason=reason)
        except Exception:
            logger.debug("Socket %s was already closed", conn.id, exc_info=True)

    # ------------------------------------------------------------------
    # background work
    # ------------------------------------------------------------------
    def dispatch(self, job: Awaitable[Any]) -> asyncio.Task:
        """Run ``job`` without awaiting it; its failure is logged, never raised."""
        task = asyncio.ensure_future(job)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Realtime broadcast failed: %s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def heartbeat(self, conn: Connection, interval: float, timeout: float) -> None:
        """Ping ``conn`` every ``interval`` seconds; close it after ``timeout`` seconds of silence."""
        while not conn.closed:
            await asyncio.sleep(interval)
            if conn.closed:
                return
            if conn.idle_for() > timeout:
                logger.info("Socket %s idle for %.0fs, closing", conn.id, conn.idle_for())
                await self._close(conn, CLOSE_IDLE, "Heartbeat timeout")
                return
            try:
                await conn.send(PING)
            except Exception:
                logger.debug("Ping to socket %s failed", conn.id, exc_info=True)
                await self._close(conn, CLOSE_IDLE, "Heartbeat failed")
                return
