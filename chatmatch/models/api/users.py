from typing import Optional

from pydantic import BaseModel, ConfigDict

ANONYMOUS_USERNAME = "Anonymous User"


class PeerProfile(BaseModel):
    """Public profile of a matched peer."""

    id: str
    username: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    def anonymised(self) -> "PeerProfile":
        """Profile with display name, avatar and bio withheld."""
        return PeerProfile(id=self.id, username=ANONYMOUS_USERNAME)
