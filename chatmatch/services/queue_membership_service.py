import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from chatmatch.errors import PersistenceError
from chatmatch.models.api.queue import QueueEntry
from chatmatch.stores.base_store import QueueStore

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_TIMEOUT_SECONDS = 300.0


class QueueMembershipController:
    """Keeps one client's entry in the random chat queue.

    The controller remembers the entry it last committed and owns the expiry
    timer armed on join.
    """

    def __init__(
        self,
        queue_store: QueueStore,
        timeout_seconds: float = DEFAULT_QUEUE_TIMEOUT_SECONDS,
    ):
        self.queue_store = queue_store
        self.timeout_seconds = timeout_seconds
        self.entry: Optional[QueueEntry] = None
        self.deadline: Optional[float] = None
        self._timer: Optional["asyncio.Task[None]"] = None

    async def join(
        self, user_id: str, interests: List[str], anonymous: bool
    ) -> QueueEntry:
        """Upsert the user's entry with a fresh join time.

        Raises PersistenceError when the write fails. The entry may or may not
        have been written in that case.
        """
        entry = QueueEntry(user_id=user_id, interests=interests, is_anonymous=anonymous)
        self.entry = await self.queue_store.upsert(entry)
        logger.info("User %s joined the queue with interests %s", user_id, entry.interests)
        return self.entry

    async def leave(self, user_id: str) -> bool:
        """Delete the user's entry if present. Idempotent."""
        removed = await self.queue_store.delete_by_user(user_id)
        self.entry = None
        if removed:
            logger.info("User %s left the queue", user_id)
        return removed

    def arm_timeout(self, on_expire: Callable[[], Awaitable[None]]) -> None:
        """Leave the queue and call on_expire once timeout_seconds pass."""
        self.cancel_timeout()
        self.deadline = asyncio.get_running_loop().time() + self.timeout_seconds
        self._timer = asyncio.create_task(self._expire_after(on_expire))

    def cancel_timeout(self) -> None:
        timer, self._timer = self._timer, None
        self.deadline = None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def close(self, user_id: str) -> None:
        """Teardown: disarm the timer and remove our entry, best-effort.

        Only the entry version this controller wrote is removed, so a newer
        join of the same user from another connection survives.
        """
        self.cancel_timeout()
        entry, self.entry = self.entry, None
        if entry is None:
            return
        try:
            await self.queue_store.delete_if_present(entry)
        except PersistenceError:
            logger.warning(
                "Could not remove queue entry of %s on teardown", user_id, exc_info=True
            )

    async def _expire_after(self, on_expire: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self.timeout_seconds)
        self._timer = None
        self.deadline = None

        entry = self.entry
        if entry is not None:
            logger.info("Queue entry of %s expired without a match", entry.user_id)
            try:
                await self.leave(entry.user_id)
            except PersistenceError:
                logger.warning(
                    "Could not remove expired queue entry of %s",
                    entry.user_id,
                    exc_info=True,
                )
        await on_expire()
