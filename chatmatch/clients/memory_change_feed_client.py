import asyncio
import logging
from typing import Dict, Set
from uuid import UUID

from chatmatch.clients.base_change_feed_client import (
    BaseChangeFeedClient,
    EventHandler,
    Subscription,
)
from chatmatch.models.api.feed import ChangeEvent

logger = logging.getLogger(__name__)


class MemoryChangeFeedClient(BaseChangeFeedClient):
    """In-process change feed for a single service instance and for tests."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Dict[UUID, EventHandler]] = {}
        self._deliveries: Set["asyncio.Task[None]"] = set()

    async def subscribe(self, channel: str, on_event: EventHandler) -> Subscription:
        subscription = Subscription(channel=channel)
        self._handlers.setdefault(channel, {})[subscription.id] = on_event
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        handlers = self._handlers.get(subscription.channel)
        if handlers is None:
            return
        handlers.pop(subscription.id, None)
        if not handlers:
            del self._handlers[subscription.channel]

    async def publish(self, event: ChangeEvent) -> None:
        for handler in list(self._handlers.get(event.channel, {}).values()):
            task = asyncio.create_task(self._deliver(handler, event))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

    async def drain(self) -> None:
        """Wait until every delivery scheduled so far has finished."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self) -> None:
        self._handlers.clear()
        for task in list(self._deliveries):
            task.cancel()
        await asyncio.gather(*list(self._deliveries), return_exceptions=True)
        self._deliveries.clear()

    async def _deliver(self, handler: EventHandler, event: ChangeEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Change feed handler failed on %s", event.channel)
