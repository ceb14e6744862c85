import asyncio
import logging
from typing import Any, Dict, Optional, Set
from uuid import UUID

import redis.asyncio as redis
from pydantic import ValidationError

from chatmatch.clients.base_change_feed_client import (
    BaseChangeFeedClient,
    EventHandler,
    Subscription,
)
from chatmatch.models.api.feed import ChangeEvent

logger = logging.getLogger(__name__)


class RedisChangeFeedClient(BaseChangeFeedClient):
    """Change feed shared between service instances through Redis pub/sub."""

    def __init__(self, url: str, poll_timeout: float = 1.0):
        self._redis: Any = redis.from_url(url)
        self._pubsub: Any = self._redis.pubsub()
        self._poll_timeout = poll_timeout
        self._handlers: Dict[str, Dict[UUID, EventHandler]] = {}
        self._deliveries: Set["asyncio.Task[None]"] = set()
        self._reader: Optional["asyncio.Task[None]"] = None

    async def subscribe(self, channel: str, on_event: EventHandler) -> Subscription:
        subscription = Subscription(channel=channel)
        handlers = self._handlers.setdefault(channel, {})
        if not handlers:
            await self._pubsub.subscribe(channel)
        handlers[subscription.id] = on_event

        if self._reader is None or self._reader.done():
            self._reader = asyncio.create_task(self._read_loop())
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        handlers = self._handlers.get(subscription.channel)
        if handlers is None:
            return
        handlers.pop(subscription.id, None)
        if not handlers:
            del self._handlers[subscription.channel]
            await self._pubsub.unsubscribe(subscription.channel)

    async def publish(self, event: ChangeEvent) -> None:
        await self._redis.publish(event.channel, event.model_dump_json())

    async def close(self) -> None:
        self._handlers.clear()
        if self._reader is not None:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        for task in list(self._deliveries):
            task.cancel()
        await self._pubsub.aclose()
        await self._redis.aclose()

    async def _read_loop(self) -> None:
        while self._handlers:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self._poll_timeout
                )
            except redis.RedisError:
                logger.warning("Redis change feed read failed, retrying")
                await asyncio.sleep(0.5)
                continue

            if message and message.get("type") == "message":
                self._dispatch(message)

    def _dispatch(self, message: Dict[str, Any]) -> None:
        data = message.get("data")
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            event = ChangeEvent.model_validate_json(data)
        except ValidationError:
            logger.warning("Dropping malformed change event: %r", data)
            return

        for handler in list(self._handlers.get(event.channel, {}).values()):
            task = asyncio.create_task(self._deliver(handler, event))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, handler: EventHandler, event: ChangeEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Change feed handler failed on %s", event.channel)
