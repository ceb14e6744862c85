import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from chatmatch.clients.base_change_feed_client import BaseChangeFeedClient, Subscription
from chatmatch.models.api.feed import QUEUE_CHANNEL, ChangeEvent

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.2


class ChangeFeedListener:
    """Re-runs match attempts whenever anyone mutates the queue table.

    Events only act as triggers; their payloads are never read. Bursts are
    coalesced with a trailing-edge debounce so a busy queue does not turn
    into one candidate query per event per client.
    """

    def __init__(
        self,
        feed: BaseChangeFeedClient,
        on_trigger: Callable[[], Awaitable[None]],
        is_searching: Callable[[], bool],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.feed = feed
        self.debounce_seconds = debounce_seconds
        self._on_trigger = on_trigger
        self._is_searching = is_searching
        self._subscription: Optional[Subscription] = None
        self._runner: Optional["asyncio.Task[None]"] = None
        self._due = 0.0
        self._dirty = False
        self._firing: Set["asyncio.Task[None]"] = set()

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def start(self) -> None:
        """Subscribe to the queue table and run one attempt right away."""
        if self._subscription is None:
            self._subscription = await self.feed.subscribe(QUEUE_CHANNEL, self._on_event)
        await self._fire()

    async def stop(self) -> None:
        """Unsubscribe and drop any trigger that has not started yet.

        An attempt that is already running is left to finish; its result is
        reconciled by the session. A runner that is only waiting out the
        debounce is cancelled.
        """
        subscription, self._subscription = self._subscription, None
        self._dirty = False
        if subscription is not None:
            await self.feed.unsubscribe(subscription)

        runner, self._runner = self._runner, None
        if (
            runner is not None
            and runner not in self._firing
            and runner is not asyncio.current_task()
        ):
            runner.cancel()

    async def _on_event(self, event: ChangeEvent) -> None:
        if self._subscription is None:
            return
        self._due = asyncio.get_running_loop().time() + self.debounce_seconds
        self._dirty = True
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._run_debounced())

    async def _run_debounced(self) -> None:
        loop = asyncio.get_running_loop()
        # A runner replaced by stop() exits after its in-flight attempt
        while self._dirty and self._runner is asyncio.current_task():
            delay = self._due - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
                continue
            self._dirty = False
            logger.debug("Queue changed, re-running match attempt")
            await self._fire()

    async def _fire(self) -> None:
        if self._subscription is None or not self._is_searching():
            return
        task = asyncio.current_task()
        if task is not None:
            self._firing.add(task)
        try:
            await self._on_trigger()
        finally:
            if task is not None:
                self._firing.discard(task)
