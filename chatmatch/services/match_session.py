import asyncio
import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from chatmatch.clients.base_change_feed_client import BaseChangeFeedClient, Subscription
from chatmatch.errors import InvalidTransition, PersistenceError, ProvisionError
from chatmatch.models.api.conversations import ConversationResponse
from chatmatch.models.api.feed import ChangeEvent, match_channel
from chatmatch.models.api.matching import (
    MatchAttemptStatus,
    MatchErrorKind,
    MatchEvent,
    MatchEventType,
    MatchState,
)
from chatmatch.models.api.queue import normalize_interests
from chatmatch.models.api.users import PeerProfile
from chatmatch.services.change_feed_listener import (
    DEFAULT_DEBOUNCE_SECONDS,
    ChangeFeedListener,
)
from chatmatch.services.matcher_service import (
    MATCH_FAILED_NOTIFICATION,
    MATCHED_NOTIFICATION,
    Matcher,
    other_participant,
)
from chatmatch.services.queue_membership_service import QueueMembershipController
from chatmatch.stores.base_store import ConversationStore

logger = logging.getLogger(__name__)

DEFAULT_ADOPT_GRACE_SECONDS = 1.0


class MatchSession:
    """Random-chat state of one user: idle, searching, matched, chatting.

    The session is the only place that changes the state. Results from match
    attempts and peer notifications are applied only while the session is
    still searching under the same queue entry; anything that arrives later
    is treated as an abandoned conversation and archived for this user.
    """

    def __init__(
        self,
        user_id: str,
        matcher: Matcher,
        conversation_store: ConversationStore,
        feed: BaseChangeFeedClient,
        controller: QueueMembershipController,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        adopt_grace_seconds: float = DEFAULT_ADOPT_GRACE_SECONDS,
    ):
        self.user_id = user_id
        self.adopt_grace_seconds = adopt_grace_seconds
        self.matcher = matcher
        self.conversation_store = conversation_store
        self.feed = feed
        self.controller = controller
        self.listener = ChangeFeedListener(
            feed,
            on_trigger=self._attempt,
            is_searching=lambda: self.state == MatchState.SEARCHING,
            debounce_seconds=debounce_seconds,
        )
        self.events: "asyncio.Queue[MatchEvent]" = asyncio.Queue()

        self.state = MatchState.IDLE
        self.interests: List[str] = []
        self.anonymous = False
        self.conversation_id: Optional[UUID] = None
        self.peer: Optional[PeerProfile] = None

        self._generation = 0
        self._joined_at: Optional[datetime] = None
        self._lock = asyncio.Lock()
        self._notifications: Optional[Subscription] = None
        self._adoption: Optional["asyncio.Task[None]"] = None

    async def next_event(self) -> MatchEvent:
        return await self.events.get()

    async def start(self, interests: List[str], anonymous: bool) -> None:
        """Join the queue and start looking for a peer."""
        if self.state != MatchState.IDLE:
            raise InvalidTransition("start matching", self.state.value)
        await self._search(interests, anonymous)

    async def cancel(self) -> None:
        """Stop searching and leave the queue."""
        if self.state != MatchState.SEARCHING:
            raise InvalidTransition("cancel", self.state.value)
        self._generation += 1
        self.state = MatchState.IDLE
        await self._stop_searching()
        try:
            await self.controller.leave(self.user_id)
        except PersistenceError as e:
            logger.warning("Could not leave the queue for %s: %s", self.user_id, e)
            self._emit_error(MatchErrorKind.PERSISTENCE, str(e))
        self._emit(MatchEvent(type=MatchEventType.IDLE))

    async def skip(self) -> None:
        """Drop the current match and re-join with the same preferences."""
        if self.state not in (MatchState.MATCHED, MatchState.CHATTING):
            raise InvalidTransition("skip", self.state.value)
        await self._search(self.interests, self.anonymous)

    async def open_chat(self) -> None:
        if self.state != MatchState.MATCHED:
            raise InvalidTransition("open the chat", self.state.value)
        self.state = MatchState.CHATTING
        self._emit(
            MatchEvent(type=MatchEventType.CHATTING, conversation_id=self.conversation_id)
        )

    async def close(self) -> None:
        """Teardown on disconnect: stop everything and leave the queue."""
        self._generation += 1
        self.state = MatchState.IDLE
        await self._stop_searching()
        await self.controller.close(self.user_id)

    async def _search(self, interests: List[str], anonymous: bool) -> None:
        self._generation += 1
        self.interests = normalize_interests(interests)
        self.anonymous = anonymous
        self.conversation_id = None
        self.peer = None
        self.state = MatchState.SEARCHING
        self._emit(MatchEvent(type=MatchEventType.SEARCHING))

        try:
            # Listen for peers matching us before our entry becomes visible
            self._notifications = await self.feed.subscribe(
                match_channel(self.user_id), self._on_notification
            )
            entry = await self.controller.join(self.user_id, self.interests, anonymous)
        except PersistenceError as e:
            logger.warning("Could not join the queue for %s: %s", self.user_id, e)
            await self._fail(MatchErrorKind.PERSISTENCE, str(e))
            return
        except Exception:
            logger.exception("Joining the queue failed for %s", self.user_id)
            await self._fail(MatchErrorKind.INTERNAL, "Could not start matching")
            return

        self._joined_at = entry.joined_queue_at
        self.controller.arm_timeout(self._on_timeout)
        await self.listener.start()

    async def _stop_searching(self) -> None:
        self.controller.cancel_timeout()
        await self.listener.stop()
        notifications, self._notifications = self._notifications, None
        if notifications is not None:
            await self.feed.unsubscribe(notifications)

        adoption, self._adoption = self._adoption, None
        if adoption is not None and adoption is not asyncio.current_task():
            adoption.cancel()

    def _is_current(self, generation: int) -> bool:
        return self.state == MatchState.SEARCHING and self._generation == generation

    async def _attempt(self) -> None:
        generation = self._generation
        async with self._lock:
            if not self._is_current(generation):
                return
            try:
                attempt = await self.matcher.attempt_match(
                    self.user_id, self.interests, deadline=self.controller.deadline
                )
            except ProvisionError as e:
                if self._is_current(generation):
                    await self._fail(MatchErrorKind.PROVISION, str(e))
                return
            except PersistenceError as e:
                logger.warning("Match attempt for %s failed: %s", self.user_id, e)
                if self._is_current(generation):
                    self._emit_error(MatchErrorKind.PERSISTENCE, str(e))
                return
            except Exception:
                logger.exception("Match attempt for %s failed", self.user_id)
                if self._is_current(generation):
                    await self._fail(
                        MatchErrorKind.INTERNAL,
                        "Matching failed unexpectedly, please try again",
                    )
                return

            if attempt.status == MatchAttemptStatus.MATCHED and attempt.result:
                result = attempt.result
                await self._accept(
                    generation,
                    result.conversation,
                    result.peer,
                    peer_anonymous=result.peer_anonymous,
                )
            elif attempt.status == MatchAttemptStatus.NOT_QUEUED:
                self._schedule_adoption(generation)

    def _schedule_adoption(self, generation: int) -> None:
        if self._adoption is None or self._adoption.done():
            self._adoption = asyncio.create_task(self._adopt_peer_match(generation))

    async def _adopt_peer_match(self, generation: int) -> None:
        """Our entry is gone: a peer's matcher may have paired us already.

        The peer's notification normally settles this first. When it has not
        arrived within the grace period, look the conversation up directly.
        """
        await asyncio.sleep(self.adopt_grace_seconds)
        async with self._lock:
            if not self._is_current(generation) or self._joined_at is None:
                return
            try:
                conversation = await self.conversation_store.find_latest_random_since(
                    self.user_id, self._joined_at
                )
            except PersistenceError as e:
                logger.warning("Could not look up match of %s: %s", self.user_id, e)
                return
            if conversation is None:
                # Provisioning failed or is still running; the queue timeout
                # settles it
                logger.debug(
                    "Entry of %s consumed, no conversation found", self.user_id
                )
                return

            peer_id = other_participant(conversation, self.user_id)
            if peer_id is None:
                return
            peer = await self.matcher.load_profile(peer_id)
            logger.info(
                "Adopting conversation %s for %s without a notification",
                conversation.id,
                self.user_id,
            )
            # The peer's anonymity flag is only carried by its notification
            await self._accept(generation, conversation, peer, peer_anonymous=True)

    async def _on_notification(self, event: ChangeEvent) -> None:
        payload = event.payload
        generation = self._generation
        joined_at = payload.get("joined_queue_at")
        for_current_entry = (
            self._joined_at is not None
            and joined_at is not None
            and datetime.fromisoformat(joined_at) == self._joined_at
        )

        if payload.get("event") == MATCH_FAILED_NOTIFICATION:
            async with self._lock:
                if for_current_entry and self._is_current(generation):
                    await self._fail(
                        MatchErrorKind.PROVISION,
                        "The match could not be completed, please try again",
                    )
            return

        if payload.get("event") != MATCHED_NOTIFICATION:
            return

        async with self._lock:
            try:
                conversation = await self.conversation_store.get_conversation(
                    UUID(payload["conversation_id"])
                )
            except PersistenceError as e:
                logger.warning("Could not verify match of %s: %s", self.user_id, e)
                return
            if conversation is None or self.user_id not in conversation.participants:
                logger.warning(
                    "Ignoring match notification for %s: conversation %s not found",
                    self.user_id,
                    payload.get("conversation_id"),
                )
                return
            if conversation.id == self.conversation_id:
                return

            if not for_current_entry:
                # Issued for an entry we already abandoned
                generation = -1
            peer_id = other_participant(conversation, self.user_id)
            peer = await self.matcher.load_profile(peer_id or str(payload["peer_id"]))
            await self._accept(
                generation,
                conversation,
                peer,
                peer_anonymous=bool(payload.get("peer_anonymous")),
            )

    async def _accept(
        self,
        generation: int,
        conversation: ConversationResponse,
        peer: PeerProfile,
        peer_anonymous: bool,
    ) -> None:
        if not self._is_current(generation):
            await self._abandon(conversation)
            return

        self.state = MatchState.MATCHED
        self.conversation_id = conversation.id
        self.peer = peer
        if self.anonymous or peer_anonymous:
            self.peer = peer.anonymised()

        await self._stop_searching()
        self._emit(
            MatchEvent(
                type=MatchEventType.MATCHED,
                conversation_id=conversation.id,
                peer=self.peer,
            )
        )

    async def _abandon(self, conversation: ConversationResponse) -> None:
        """A match landed after we stopped searching: archive it for us."""
        logger.warning(
            "Match in conversation %s arrived after %s stopped searching, archiving",
            conversation.id,
            self.user_id,
        )
        try:
            await self.conversation_store.archive(conversation.id, self.user_id)
        except PersistenceError:
            logger.warning(
                "Could not archive abandoned conversation %s",
                conversation.id,
                exc_info=True,
            )

    async def _fail(self, kind: MatchErrorKind, detail: str) -> None:
        self.state = MatchState.IDLE
        self._generation += 1
        await self._stop_searching()
        try:
            await self.controller.leave(self.user_id)
        except PersistenceError:
            logger.warning("Could not leave the queue for %s", self.user_id, exc_info=True)
        self._emit_error(kind, detail)

    async def _on_timeout(self) -> None:
        if self.state != MatchState.SEARCHING:
            return
        self._generation += 1
        self.state = MatchState.IDLE
        await self._stop_searching()
        self._emit(MatchEvent(type=MatchEventType.TIMED_OUT))

    def _emit(self, event: MatchEvent) -> None:
        self.events.put_nowait(event)

    def _emit_error(self, kind: MatchErrorKind, detail: str) -> None:
        self._emit(MatchEvent(type=MatchEventType.ERROR, error_kind=kind, detail=detail))
