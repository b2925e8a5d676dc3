import asyncio
import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from mythrift.config import get_settings


logger = logging.getLogger(__name__)

OnMessage = Callable[[str], Awaitable[None]]


class _IdleSubscription:
    """Never delivers anything; ``run`` parks until the gateway cancels its task."""

    async def run(self) -> None:
        await asyncio.Event().wait()

    async def cancel(self) -> None:
        return None


class _ChannelSubscription:
    """Pumps one redis pub/sub channel into ``on_message`` until cancelled."""

    def __init__(self, pubsub, channel: str, on_message: OnMessage) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._on_message = on_message
        self._running = True

    async def run(self) -> None:
        while self._running:
            try:
                msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except redis.RedisError:
                logger.warning("Realtime bus read failed, retrying", exc_info=True)
                await asyncio.sleep(0.5)
                continue
            if not msg or msg.get("type") != "message":
                continue
            data = msg.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            await self._on_message(data)

    async def cancel(self) -> None:
        self._running = False
        try:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
        except redis.RedisError:
            logger.debug("Realtime bus unsubscribe failed", exc_info=True)


class NoopBus:
    """Single-process mode: the gateway delivers locally and never publishes."""

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        logger.debug("Bus disabled, dropping publish on %s", channel)

    async def subscribe(self, channel: str, on_message: OnMessage) -> _IdleSubscription:
        return _IdleSubscription()

    async def close(self) -> None:
        return None


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: OnMessage) -> _ChannelSubscription:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("Subscribed to realtime channel %s", channel)
        return _ChannelSubscription(pubsub, channel, on_message)

    async def close(self) -> None:
        await self._redis.aclose()


_bus = None


async def get_bus():
    global _bus
    if _bus is not None:
        return _bus
    url = get_settings().redis_url
    if not url:
        _bus = NoopBus()
        return _bus
    _bus = RedisBus(url)
    logger.info("Realtime bus enabled (redis)")
    return _bus


async def close_bus() -> None:
    global _bus
    bus: Optional[object] = _bus
    _bus = None
    if bus is not None:
        await bus.close()
