"""PostgreSQL repository for bookable resources (hotels and yachts)."""

from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from stayfleet.logging import get_logger
from stayfleet.models.resource import Hotel, HotelInput, ResourceKind, ResourceRef, Yacht, YachtInput
from stayfleet.storage.db_models import HotelTable, YachtTable, resolve_resource_table

logger = get_logger(__name__)

Resource = Union[Hotel, Yacht]


class PostgresResourceRepository:
    """Catalog repository resolving resource references to hotels or yachts."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get(self, ref: ResourceRef) -> Optional[Resource]:
        """Retrieve a hotel or yacht by reference."""
        table = resolve_resource_table(ref.kind)
        stmt = select(table).where(table.id == ref.id)
        result = await self.session.execute(stmt)
        db_resource = result.scalar_one_or_none()

        if not db_resource:
            return None

        return self._to_domain_model(ref.kind, db_resource)

    async def lock_for_update(
        self, ref: ResourceRef, timeout_ms: Optional[int] = None
    ) -> Optional[Resource]:
        """
        Load a resource holding an exclusive row lock until the transaction ends.

        Concurrent lockers of the same row wait; other rows are unaffected.
        On PostgreSQL the wait is bounded by ``lock_timeout``.
        """
        if timeout_ms and self._dialect_name() == "postgresql":
            await self.session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))

        table = resolve_resource_table(ref.kind)
        stmt = select(table).where(table.id == ref.id).with_for_update()
        result = await self.session.execute(stmt)
        db_resource = result.scalar_one_or_none()

        if not db_resource:
            return None

        logger.debug("resource_locked", resource=str(ref))

        return self._to_domain_model(ref.kind, db_resource)

    async def create_hotel(self, entity: HotelInput) -> Hotel:
        """Create new hotel."""
        db_hotel = HotelTable(
            name=entity.name,
            city=entity.city,
            address=entity.address,
            price_per_night=entity.price_per_night,
            stars=entity.stars,
            capacity=entity.capacity,
        )

        self.session.add(db_hotel)
        await self.session.flush()

        logger.info("hotel_created", hotel_id=db_hotel.id, name=entity.name)

        return self._to_domain_model(ResourceKind.HOTEL, db_hotel)

    async def create_yacht(self, entity: YachtInput) -> Yacht:
        """Create new yacht."""
        db_yacht = YachtTable(
            name=entity.name,
            location=entity.location,
            price_per_day=entity.price_per_day,
            capacity=entity.capacity,
            crew_size=entity.crew_size,
        )

        self.session.add(db_yacht)
        await self.session.flush()

        logger.info("yacht_created", yacht_id=db_yacht.id, name=entity.name)

        return self._to_domain_model(ResourceKind.YACHT, db_yacht)

    async def set_rating(self, ref: ResourceRef, rating: Decimal) -> bool:
        """Store the cached average rating of a resource."""
        table = resolve_resource_table(ref.kind)
        stmt = update(table).where(table.id == ref.id).values(rating=rating)
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    def _dialect_name(self) -> str:
        bind = self.session.bind
        return bind.dialect.name if bind is not None else ""

    def _to_domain_model(self, kind: ResourceKind, db_resource) -> Resource:
        """Convert database model to domain model."""
        if kind == ResourceKind.HOTEL:
            return Hotel(
                id=db_resource.id,
                name=db_resource.name,
                city=db_resource.city,
                address=db_resource.address,
                price_per_night=db_resource.price_per_night,
                stars=db_resource.stars,
                capacity=db_resource.capacity,
                rating=db_resource.rating,
                is_active=db_resource.is_active,
            )
        return Yacht(
            id=db_resource.id,
            name=db_resource.name,
            location=db_resource.location,
            price_per_day=db_resource.price_per_day,
            capacity=db_resource.capacity,
            crew_size=db_resource.crew_size,
            rating=db_resource.rating,
            is_active=db_resource.is_active,
        )
