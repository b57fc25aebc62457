"""Repository base interface."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, Iterable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayfleet.logging import get_logger
from stayfleet.storage.db_models import Base

logger = get_logger(__name__)

T = TypeVar("T")


class RepositoryBase(ABC, Generic[T]):
    """Base repository for entities stored in one table under an integer key.

    Repositories flush but never commit; the surrounding
    ``Database.session()`` block owns the transaction.
    """

    table: ClassVar[type[Base]]
    entity_name: ClassVar[str]

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_id(self, id: int) -> Optional[T]:
        """Retrieve entity by ID."""
        row = await self._get_row(id)

        if row is None:
            return None

        return self._to_domain_model(row)

    @abstractmethod
    async def create(self, entity: Any) -> T:
        """Create new entity."""
        pass

    @abstractmethod
    async def update(self, entity: T, fields: Iterable[str]) -> T:
        """Write the named fields of an existing entity."""
        pass

    async def delete(self, id: int) -> bool:
        """Delete entity by ID."""
        row = await self._get_row(id)

        if row is None:
            return False

        await self.session.delete(row)
        await self.session.flush()

        logger.info(f"{self.entity_name}_deleted", entity_id=id)

        return True

    async def _get_row(self, id: int, for_update: bool = False) -> Optional[Any]:
        stmt = select(self.table).where(self.table.id == id)
        if for_update:
            # Refresh rows already in the identity map with the locked state
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @abstractmethod
    def _to_domain_model(self, row: Any) -> T:
        """Convert database model to domain model."""
        pass
