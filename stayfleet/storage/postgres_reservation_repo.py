"""PostgreSQL repository for Reservation entities.

Sensitive columns are encrypted right before rows are written and
decrypted right after they are loaded; the rest of the code only ever
sees plaintext.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stayfleet.logging import get_logger
from stayfleet.models.reservation import Reservation, ReservationInput, ReservationStatus
from stayfleet.models.resource import DateRange, ResourceRef
from stayfleet.security.cipher import FieldCipher
from stayfleet.storage.db_models import ReservationTable
from stayfleet.storage.repository_base import RepositoryBase

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "check_in",
        "check_out",
        "total_price",
        "guest_count",
        "status",
        "payment_status",
        "cancelled_at",
        "special_requests",
        "payment_method",
    }
)


class PostgresReservationRepository(RepositoryBase[Reservation]):
    """Reservation repository using PostgreSQL."""

    table = ReservationTable
    entity_name = "reservation"

    def __init__(self, session: AsyncSession, cipher: FieldCipher):
        """Initialize repository with database session and field cipher."""
        super().__init__(session)
        self.cipher = cipher

    async def get_for_update(self, id: int) -> Optional[Reservation]:
        """Retrieve reservation holding a row lock until the transaction ends."""
        db_reservation = await self._get_row(id, for_update=True)

        if not db_reservation:
            return None

        return self._to_domain_model(db_reservation)

    async def create(self, entity: ReservationInput) -> Reservation:
        """Create new pending reservation."""
        values = self.cipher.encrypt_fields(
            {
                "special_requests": entity.special_requests,
                "payment_method": entity.payment_method,
            },
            Reservation.ENCRYPTED_FIELDS,
        )

        db_reservation = ReservationTable(
            user_id=entity.user_id,
            resource_kind=entity.resource.kind,
            resource_id=entity.resource.id,
            check_in=entity.check_in,
            check_out=entity.check_out,
            total_price=entity.total_price,
            status=ReservationStatus.PENDING,
            guest_count=entity.guest_count,
            **values,
        )

        self.session.add(db_reservation)
        await self.session.flush()

        logger.info(
            "reservation_row_created",
            reservation_id=db_reservation.id,
            resource=str(entity.resource),
            user_id=entity.user_id,
        )

        return self._to_domain_model(db_reservation)

    async def update(self, entity: Reservation, fields: Iterable[str]) -> Reservation:
        """
        Write the named fields of an existing reservation.

        Columns that are not named keep their stored value. Encrypted
        columns are only rewritten when the caller changed them, so a value
        left as ciphertext by a failed decrypt is never wrapped again.
        """
        fields = set(fields)
        unknown = fields - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Reservation fields cannot be updated: {sorted(unknown)}")

        db_reservation = await self._get_row(entity.id)

        if not db_reservation:
            raise ValueError(f"Reservation not found: {entity.id}")

        values = self.cipher.encrypt_fields(
            {field: getattr(entity, field) for field in fields},
            [field for field in Reservation.ENCRYPTED_FIELDS if field in fields],
        )
        for field, value in values.items():
            setattr(db_reservation, field, value)
        db_reservation.updated_at = datetime.utcnow()

        await self.session.flush()

        logger.info(
            "reservation_updated",
            reservation_id=entity.id,
            status=db_reservation.status.value,
            fields=sorted(fields),
        )

        return self._to_domain_model(db_reservation)

    async def has_overlap(
        self,
        ref: ResourceRef,
        date_range: DateRange,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """Check if any non-cancelled reservation of a resource overlaps the range."""
        stmt = self._overlap_query(ref, date_range, exclude_id).limit(1)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def get_by_user(
        self,
        user_id: int,
        status: Optional[ReservationStatus] = None,
        limit: int = 50,
    ) -> list[Reservation]:
        """Get reservations for a user, newest first."""
        stmt = select(ReservationTable).where(ReservationTable.user_id == user_id)
        if status is not None:
            stmt = stmt.where(ReservationTable.status == status)
        stmt = stmt.order_by(ReservationTable.created_at.desc(), ReservationTable.id.desc()).limit(limit)

        result = await self.session.execute(stmt)
        db_reservations = result.scalars().all()

        return [self._to_domain_model(db_res) for db_res in db_reservations]

    async def get_by_resource(
        self, ref: ResourceRef, include_cancelled: bool = False
    ) -> list[Reservation]:
        """Get reservations of a resource ordered by check-in date."""
        stmt = (
            select(ReservationTable)
            .where(ReservationTable.resource_kind == ref.kind)
            .where(ReservationTable.resource_id == ref.id)
        )
        if not include_cancelled:
            stmt = stmt.where(ReservationTable.status != ReservationStatus.CANCELLED)
        stmt = stmt.order_by(ReservationTable.check_in.asc())

        result = await self.session.execute(stmt)
        db_reservations = result.scalars().all()

        return [self._to_domain_model(db_res) for db_res in db_reservations]

    async def count_by_status(self, user_id: int) -> dict[ReservationStatus, int]:
        """Count a user's reservations per status."""
        stmt = (
            select(ReservationTable.status, func.count(ReservationTable.id))
            .where(ReservationTable.user_id == user_id)
            .group_by(ReservationTable.status)
        )
        result = await self.session.execute(stmt)

        counts = {status: 0 for status in ReservationStatus}
        for status, count in result.all():
            counts[ReservationStatus(status)] = count
        return counts

    def _overlap_query(
        self,
        ref: ResourceRef,
        date_range: DateRange,
        exclude_id: Optional[int],
    ):
        # [a, b) and [c, d) overlap iff a < d and c < b
        stmt = (
            select(ReservationTable)
            .where(ReservationTable.resource_kind == ref.kind)
            .where(ReservationTable.resource_id == ref.id)
            .where(ReservationTable.status != ReservationStatus.CANCELLED)
            .where(ReservationTable.check_in < date_range.check_out)
            .where(ReservationTable.check_out > date_range.check_in)
        )
        if exclude_id is not None:
            stmt = stmt.where(ReservationTable.id != exclude_id)
        return stmt

    def _to_domain_model(self, db_reservation: ReservationTable) -> Reservation:
        """Convert database model to domain model, decrypting sensitive fields."""
        values: dict[str, Any] = self.cipher.decrypt_fields(
            {
                "special_requests": db_reservation.special_requests,
                "payment_method": db_reservation.payment_method,
            },
            Reservation.ENCRYPTED_FIELDS,
        )

        return Reservation(
            id=db_reservation.id,
            user_id=db_reservation.user_id,
            resource=ResourceRef(kind=db_reservation.resource_kind, id=db_reservation.resource_id),
            check_in=db_reservation.check_in,
            check_out=db_reservation.check_out,
            total_price=db_reservation.total_price,
            status=db_reservation.status,
            guest_count=db_reservation.guest_count,
            special_requests=values["special_requests"],
            payment_method=values["payment_method"],
            payment_status=db_reservation.payment_status,
            cancelled_at=db_reservation.cancelled_at,
            created_at=db_reservation.created_at,
            updated_at=db_reservation.updated_at,
        )
