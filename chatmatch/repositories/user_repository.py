from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from chatmatch.models.api.users import PeerProfile
from chatmatch.models.db.user_model import UserModel
from chatmatch.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository[UserModel, PeerProfile]):
    """Read access to public user profiles."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, UserModel)

    def _to_pydantic(self, db_model: Any) -> PeerProfile:
        """Convert SQLAlchemy UserModel to Pydantic PeerProfile."""
        return PeerProfile(
            id=db_model.id,
            username=db_model.username,
            bio=db_model.bio,
            avatar_url=db_model.avatar_url,
        )

    def _from_pydantic(self, pydantic_model: PeerProfile) -> UserModel:
        """Convert Pydantic PeerProfile to SQLAlchemy UserModel."""
        return UserModel(
            id=pydantic_model.id,
            username=pydantic_model.username,
            bio=pydantic_model.bio,
            avatar_url=pydantic_model.avatar_url,
        )
