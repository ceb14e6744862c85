import asyncio
import logging
from typing import Any, Dict, List, Optional

from chatmatch.clients.base_change_feed_client import BaseChangeFeedClient
from chatmatch.errors import PersistenceError, ProvisionError, StaleMatchRace
from chatmatch.models.api.conversations import ConversationKind, ConversationResponse
from chatmatch.models.api.feed import ChangeEvent, ChangeEventType, match_channel
from chatmatch.models.api.matching import (
    MatchAttempt,
    MatchAttemptStatus,
    MatchResult,
)
from chatmatch.models.api.queue import QueueEntry
from chatmatch.models.api.users import PeerProfile
from chatmatch.services.conversation_provisioner import ConversationProvisioner
from chatmatch.stores.base_store import ProfileStore, QueueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 25

MATCHED_NOTIFICATION = "matched"
MATCH_FAILED_NOTIFICATION = "match_failed"


class Matcher:
    """Pairs a queued user with the oldest compatible waiting peer."""

    def __init__(
        self,
        queue_store: QueueStore,
        provisioner: ConversationProvisioner,
        profile_store: ProfileStore,
        feed: Optional[BaseChangeFeedClient] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.queue_store = queue_store
        self.provisioner = provisioner
        self.profile_store = profile_store
        self.feed = feed
        self.max_retries = max_retries

    async def attempt_match(
        self,
        user_id: str,
        interests: List[str],
        deadline: Optional[float] = None,
    ) -> MatchAttempt:
        """
        Try to pair user_id with a waiting peer:

        1. Re-read our own entry; another matcher may already have consumed it
        2. Query the oldest other entry, sharing an interest when we have any
        3. Claim both entries with one conditional delete
        4. On a lost race, re-check and re-query until the deadline
        5. Provision a random conversation and tell the peer

        Raises PersistenceError on store failures and ProvisionError when the
        claimed pair could not get a conversation.
        """
        loop = asyncio.get_running_loop()
        retries = 0

        while True:
            # Step 1: Authoritative state, never the change event payload
            own = await self.queue_store.get(user_id)
            if own is None:
                return MatchAttempt(status=MatchAttemptStatus.NOT_QUEUED)

            # Step 2: Oldest compatible candidate
            candidates = await self.queue_store.query(
                exclude_user_id=user_id, interests=interests or None, limit=1
            )
            if not candidates:
                return MatchAttempt(status=MatchAttemptStatus.NO_CANDIDATE)
            candidate = candidates[0]

            # Step 3 and 4: Conditional claim, retried on conflict
            try:
                await self._claim(own, candidate)
            except StaleMatchRace:
                retries += 1
                if retries > self.max_retries or (
                    deadline is not None and loop.time() >= deadline
                ):
                    logger.info(
                        "Giving up on match attempt for %s after %d lost races",
                        user_id,
                        retries,
                    )
                    return MatchAttempt(status=MatchAttemptStatus.NO_CANDIDATE)
                logger.debug(
                    "Lost claim on %s for %s, retrying", candidate.user_id, user_id
                )
                continue

            # Step 5: Conversation for the pair
            result = await self._pair(own, candidate)
            return MatchAttempt(status=MatchAttemptStatus.MATCHED, result=result)

    async def _claim(self, own: QueueEntry, candidate: QueueEntry) -> None:
        if not await self.queue_store.claim_pair(own, candidate):
            raise StaleMatchRace(
                f"Entries of {own.user_id} and {candidate.user_id} changed"
            )

    async def _pair(self, own: QueueEntry, candidate: QueueEntry) -> MatchResult:
        try:
            conversation = await self.provisioner.get_or_create(
                own.user_id, candidate.user_id, ConversationKind.RANDOM
            )
        except ProvisionError:
            logger.warning(
                "Match of %s and %s lost: conversation could not be provisioned",
                own.user_id,
                candidate.user_id,
            )
            await self._notify(
                candidate,
                MATCH_FAILED_NOTIFICATION,
                {"peer_id": own.user_id},
            )
            raise

        logger.info(
            "Matched %s with %s in conversation %s",
            own.user_id,
            candidate.user_id,
            conversation.id,
        )
        await self._notify(
            candidate,
            MATCHED_NOTIFICATION,
            {
                "conversation_id": str(conversation.id),
                "peer_id": own.user_id,
                "peer_anonymous": own.is_anonymous,
            },
        )
        peer = await self.load_profile(candidate.user_id)
        return MatchResult(
            conversation=conversation,
            peer=peer,
            own_anonymous=own.is_anonymous,
            peer_anonymous=candidate.is_anonymous,
        )

    async def load_profile(self, user_id: str) -> PeerProfile:
        """Public profile of a peer, falling back to a bare id-only profile."""
        try:
            profile = await self.profile_store.get_profile(user_id)
        except PersistenceError:
            logger.warning("Could not load profile of %s", user_id, exc_info=True)
            profile = None
        return profile or PeerProfile(id=user_id, username=user_id)

    async def _notify(
        self, candidate: QueueEntry, event: str, payload: Dict[str, Any]
    ) -> None:
        """Broadcast the outcome to the peer whose entry we consumed."""
        if self.feed is None:
            return
        payload = {
            "event": event,
            "joined_queue_at": candidate.joined_queue_at.isoformat(),
            **payload,
        }
        try:
            await self.feed.publish(
                ChangeEvent(
                    channel=match_channel(candidate.user_id),
                    type=ChangeEventType.BROADCAST,
                    payload=payload,
                )
            )
        except Exception:
            logger.warning(
                "Could not notify %s of %s", candidate.user_id, event, exc_info=True
            )


def other_participant(conversation: ConversationResponse, user_id: str) -> Optional[str]:
    """The participant of a two-person conversation who is not user_id."""
    others = [p for p in conversation.participants if p != user_id]
    return others[0] if others else None
