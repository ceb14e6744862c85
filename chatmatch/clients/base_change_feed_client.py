from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable
from uuid import UUID, uuid4

from chatmatch.models.api.feed import ChangeEvent

EventHandler = Callable[[ChangeEvent], Awaitable[None]]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe and passed back to unsubscribe."""

    channel: str
    id: UUID = field(default_factory=uuid4)


class BaseChangeFeedClient(ABC):
    """Abstract publish/subscribe client for row changes and broadcasts."""

    @abstractmethod
    async def subscribe(self, channel: str, on_event: EventHandler) -> Subscription:
        """Register on_event for every event published on channel.

        Handlers run detached from the publisher; a slow or failing handler
        never blocks or breaks the publishing side.
        """

    @abstractmethod
    async def unsubscribe(self, subscription: Subscription) -> None:
        """Stop delivering events to the subscription. Idempotent."""

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Publish event on event.channel."""

    @abstractmethod
    async def close(self) -> None:
        """Drop all subscriptions and release connections."""
