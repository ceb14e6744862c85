from datetime import datetime, timezone
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_interests(interests: Iterable[str]) -> List[str]:
    """Strip tags, drop empty ones and de-duplicate keeping first occurrence."""
    seen: List[str] = []
    for tag in interests:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class QueueEntry(BaseModel):
    """A user waiting in the random chat queue."""

    user_id: str
    interests: List[str] = Field(default_factory=list)
    is_anonymous: bool = False
    joined_queue_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = ConfigDict(from_attributes=True)

    @field_validator("interests")
    @classmethod
    def _normalize(cls, value: List[str]) -> List[str]:
        return normalize_interests(value)

    def shares_interest(self, interests: Iterable[str]) -> bool:
        """True when the entry has at least one tag in common with interests."""
        return not set(self.interests).isdisjoint(interests)

    def same_version(self, other: "QueueEntry") -> bool:
        """Entries are the same version when user and join time match."""
        return (
            self.user_id == other.user_id
            and self.joined_queue_at == other.joined_queue_at
        )
