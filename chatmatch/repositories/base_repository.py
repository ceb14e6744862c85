from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from chatmatch.database import Base

ModelType = TypeVar("ModelType", bound=Base)
PydanticType = TypeVar("PydanticType", bound=BaseModel)


class BaseRepository(Generic[ModelType, PydanticType]):
    """Generic base repository with common CRUD operations.

    Records are addressed by ``key_name``, the single-column primary key of
    the mapped table.
    """

    key_name = "id"

    def __init__(self, db: AsyncSession, model_class: Any):
        self.db = db
        self.model_class = model_class

    @property
    def key_column(self) -> Any:
        return getattr(self.model_class, self.key_name)

    async def get_by_key(self, key: Any) -> Optional[PydanticType]:
        """Get a single record by primary key."""
        query = select(self.model_class).where(self.key_column == key)
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        return self._to_pydantic(db_model) if db_model else None

    async def delete(self, key: Any) -> bool:
        """Delete a record by primary key."""
        query = select(self.model_class).where(self.key_column == key)
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()

        if not db_model:
            return False

        await self.db.delete(db_model)
        await self.db.commit()
        return True

    def _to_pydantic(self, db_model: ModelType) -> PydanticType:
        """Convert SQLAlchemy model to Pydantic model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError

    def _from_pydantic(self, pydantic_model: PydanticType) -> ModelType:
        """Convert Pydantic model to SQLAlchemy model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError
