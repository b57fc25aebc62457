"""Reservation engine.

Owns the reservation lifecycle for hotels and yachts. Creation and
date changes lock the resource row, re-check availability while the
lock is held and write inside the same transaction, so that committed
non-cancelled reservations of one resource never overlap no matter how
many callers race for the same dates.
"""

from datetime import date, datetime
from typing import Any, Callable, Optional, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from stayfleet.config.settings import Settings
from stayfleet.logging import get_logger
from stayfleet.logging.audit import AuditLogger
from stayfleet.models.errors import CannotCancel, NotFound, ResourceUnavailable, ValidationError
from stayfleet.models.reservation import (
    PaymentMethod,
    Reservation,
    ReservationInput,
    ReservationRequest,
    ReservationStatus,
    ReservationUpdate,
)
from stayfleet.models.resource import DateRange, ResourceKind, ResourceRef
from stayfleet.models.user import Actor
from stayfleet.security.cipher import FieldCipher
from stayfleet.security.permissions import Permission, PermissionChecker
from stayfleet.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationScheduler,
)
from stayfleet.storage.database import Database
from stayfleet.storage.postgres_reservation_repo import PostgresReservationRepository
from stayfleet.storage.postgres_resource_repo import PostgresResourceRepository

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def _utc_today() -> date:
    return datetime.utcnow().date()


def parse_model(model_cls: type[M], data: dict[str, Any]) -> M:
    """Build a pydantic model, re-raising its errors as ValidationError."""
    try:
        return model_cls(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "request"
        raise ValidationError(
            f"Invalid {field}: {first.get('msg', 'invalid value')}",
            field=field,
            error_count=e.error_count(),
        ) from None


class ReservationEngine:
    """Creates, confirms, edits and cancels reservations."""

    def __init__(
        self,
        database: Database,
        cipher: FieldCipher,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        permissions: Optional[PermissionChecker] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize reservation engine.

        Args:
            database: Connected database; each operation runs in its own session
            cipher: Field cipher handed to the reservation repository
            notifier: Dispatcher for post-commit notifications
            settings: Lock timeout and cancellation window (defaults to database settings)
            permissions: Role and ownership checks
            today: Clock returning the current date, injectable for tests
        """
        self.database = database
        self.cipher = cipher
        self.settings = settings or database.settings
        self.notifier = notifier or LoggingNotificationDispatcher(self.settings.admin_email)
        self.permissions = permissions or PermissionChecker()
        self.notifications = NotificationScheduler()
        self._today = today or _utc_today

    @property
    def lock_timeout_ms(self) -> int:
        return self.settings.lock_timeout_ms

    @property
    def cancellation_window_days(self) -> int:
        return self.settings.cancellation_window_days

    async def check_availability(
        self,
        kind: Union[ResourceKind, str],
        resource_id: int,
        check_in: date,
        check_out: date,
    ) -> bool:
        """
        Check whether a resource is free for [check_in, check_out).

        Advisory only: the answer can change before a reservation is made,
        which is why creation repeats the check under a row lock.

        Raises:
            ValidationError: If the kind is unknown or the dates are inverted
        """
        ref = ResourceRef.of(kind, resource_id)
        date_range = parse_model(DateRange, {"check_in": check_in, "check_out": check_out})

        async with self.database.session() as session:
            reservation_repo = PostgresReservationRepository(session, self.cipher)
            taken = await reservation_repo.has_overlap(ref, date_range)

        logger.debug(
            "availability_checked",
            resource=str(ref),
            check_in=str(check_in),
            check_out=str(check_out),
            available=not taken,
        )
        return not taken

    async def create_reservation(
        self,
        user_id: int,
        kind: Union[ResourceKind, str],
        resource_id: int,
        check_in: date,
        check_out: date,
        guest_count: int = 1,
        special_requests: Optional[str] = None,
        payment_method: Union[PaymentMethod, str] = PaymentMethod.CREDIT_CARD,
    ) -> Reservation:
        """
        Reserve a resource for a date range.

        Input is validated before any lock is taken. The resource row is
        then locked, availability re-checked, the stay priced and a pending
        reservation inserted, all in one transaction. Notifications are
        scheduled only after commit.

        Raises:
            ValidationError: Bad dates, guest count, kind or payment method
            NotFound: Resource missing or inactive
            ResourceUnavailable: Dates overlap an existing reservation
            TransientStoreError: Lock wait timed out or deadlocked
        """
        ref = ResourceRef.of(kind, resource_id)
        request = parse_model(
            ReservationRequest,
            {
                "user_id": user_id,
                "resource": ref,
                "check_in": check_in,
                "check_out": check_out,
                "guest_count": guest_count,
                "special_requests": special_requests,
                "payment_method": payment_method,
            },
        )
        self._ensure_future(request.check_in)

        async with self.database.session() as session:
            resource_repo = PostgresResourceRepository(session)
            reservation_repo = PostgresReservationRepository(session, self.cipher)

            resource = await resource_repo.lock_for_update(ref, self.lock_timeout_ms)
            if resource is None or not resource.is_active:
                raise NotFound(f"Resource {ref} not found", resource=str(ref))

            if request.guest_count > resource.capacity:
                raise ValidationError(
                    f"{resource.name} takes at most {resource.capacity} guests",
                    guest_count=request.guest_count,
                    capacity=resource.capacity,
                )

            if await reservation_repo.has_overlap(ref, request.date_range):
                AuditLogger.log_reservation_rejected(
                    actor_id=user_id,
                    resource=str(ref),
                    check_in=str(request.check_in),
                    check_out=str(request.check_out),
                    reason="dates_overlap",
                )
                raise ResourceUnavailable(
                    "The resource is already reserved for these dates",
                    resource=str(ref),
                    check_in=request.check_in,
                    check_out=request.check_out,
                )

            reservation = await reservation_repo.create(
                ReservationInput(
                    user_id=user_id,
                    resource=ref,
                    check_in=request.check_in,
                    check_out=request.check_out,
                    total_price=resource.price_for(request.date_range),
                    guest_count=request.guest_count,
                    special_requests=request.special_requests,
                    payment_method=request.payment_method.value,
                )
            )

        AuditLogger.log_reservation_created(
            actor_id=user_id,
            reservation_id=reservation.id,
            resource=str(ref),
            check_in=str(reservation.check_in),
            check_out=str(reservation.check_out),
            total_price=float(reservation.total_price),
        )

        self.notifications.schedule(
            self.notifier.notify_reservation_created(reservation),
            event="reservation_created",
            reservation_id=reservation.id,
        )

        return reservation

    async def confirm_reservation(self, reservation_id: int, actor: Actor) -> Reservation:
        """
        Confirm a pending reservation (admin only).

        Availability is not re-checked; confirming an already confirmed
        reservation returns it unchanged.

        Raises:
            Unauthorized: Actor is not an admin
            NotFound: Unknown reservation
            ValidationError: Reservation was cancelled
        """
        self.permissions.require(
            self.permissions.can_confirm(actor),
            actor,
            Permission.CONFIRM_RESERVATION,
            reservation_id,
        )

        confirmed = False
        async with self.database.session() as session:
            reservation_repo = PostgresReservationRepository(session, self.cipher)

            reservation = await reservation_repo.get_for_update(reservation_id)
            if reservation is None:
                raise NotFound(f"Reservation {reservation_id} not found", reservation_id=reservation_id)

            if reservation.status == ReservationStatus.CANCELLED:
                raise ValidationError(
                    "Cancelled reservations cannot be confirmed", reservation_id=reservation_id
                )

            if reservation.status == ReservationStatus.PENDING:
                reservation = await reservation_repo.update(
                    reservation.model_copy(update={"status": ReservationStatus.CONFIRMED}),
                    fields={"status"},
                )
                confirmed = True

        if not confirmed:
            logger.info("reservation_already_confirmed", reservation_id=reservation_id)
            return reservation

        AuditLogger.log_reservation_confirmed(actor_id=actor.user_id, reservation_id=reservation_id)

        self.notifications.schedule(
            self.notifier.notify_reservation_confirmed(reservation),
            event="reservation_confirmed",
            reservation_id=reservation_id,
        )

        return reservation

    async def cancel_reservation(self, reservation_id: int, actor: Actor) -> Reservation:
        """
        Cancel a reservation, freeing its dates.

        Owners may cancel only confirmed stays that start more than
        ``cancellation_window_days`` from today. Admins may cancel any
        reservation that is not already cancelled.

        Raises:
            NotFound: Unknown reservation
            Unauthorized: Actor is neither owner nor admin
            CannotCancel: Already cancelled, or outside the owner's window
        """
        async with self.database.session() as session:
            reservation_repo = PostgresReservationRepository(session, self.cipher)

            reservation = await reservation_repo.get_for_update(reservation_id)
            if reservation is None:
                raise NotFound(f"Reservation {reservation_id} not found", reservation_id=reservation_id)

            self.permissions.require(
                self.permissions.can_cancel(actor, reservation),
                actor,
                Permission.CANCEL_RESERVATION,
                reservation_id,
            )

            if reservation.is_terminal:
                raise CannotCancel("Reservation is already cancelled", reservation_id=reservation_id)

            if not actor.is_admin and not reservation.is_cancellable_by_owner(
                self._today(), self.cancellation_window_days
            ):
                raise CannotCancel(
                    "Only confirmed reservations starting more than "
                    f"{self.cancellation_window_days} days from now can be cancelled",
                    reservation_id=reservation_id,
                    status=reservation.status.value,
                    check_in=reservation.check_in,
                )

            reservation = await reservation_repo.update(
                reservation.model_copy(
                    update={
                        "status": ReservationStatus.CANCELLED,
                        "cancelled_at": datetime.utcnow(),
                    }
                ),
                fields={"status", "cancelled_at"},
            )

        AuditLogger.log_reservation_cancelled(
            actor_id=actor.user_id,
            reservation_id=reservation_id,
            by_admin=actor.is_admin,
        )

        return reservation

    async def update_reservation(
        self,
        reservation_id: int,
        actor: Actor,
        changes: Union[ReservationUpdate, dict[str, Any]],
    ) -> Reservation:
        """
        Edit a pending reservation.

        New dates go through the same locked overlap check as creation,
        ignoring the reservation being edited, and the stay is re-priced.

        Raises:
            NotFound: Unknown reservation or resource
            Unauthorized: Actor is neither owner nor admin
            ValidationError: Not pending, bad dates or too many guests
            ResourceUnavailable: New dates overlap another reservation
        """
        if isinstance(changes, dict):
            changes = parse_model(ReservationUpdate, changes)

        updates = changes.model_dump(exclude_none=True)

        async with self.database.session() as session:
            resource_repo = PostgresResourceRepository(session)
            reservation_repo = PostgresReservationRepository(session, self.cipher)

            current = await reservation_repo.get_by_id(reservation_id)
            if current is None:
                raise NotFound(f"Reservation {reservation_id} not found", reservation_id=reservation_id)

            self.permissions.require(
                self.permissions.can_update(actor, current),
                actor,
                Permission.UPDATE_RESERVATION,
                reservation_id,
            )

            if not updates:
                return current

            date_range = current.date_range
            if changes.changes_dates:
                date_range = parse_model(
                    DateRange,
                    {
                        "check_in": changes.check_in or current.check_in,
                        "check_out": changes.check_out or current.check_out,
                    },
                )
                self._ensure_future(date_range.check_in)
                resource = await resource_repo.lock_for_update(current.resource, self.lock_timeout_ms)
            else:
                resource = await resource_repo.get(current.resource)

            if resource is None:
                raise NotFound(f"Resource {current.resource} not found", resource=str(current.resource))

            # Re-read under lock; status may have changed since the first read
            current = await reservation_repo.get_for_update(reservation_id)
            if current is None:
                raise NotFound(f"Reservation {reservation_id} not found", reservation_id=reservation_id)
            if current.status != ReservationStatus.PENDING:
                raise ValidationError(
                    "Only pending reservations can be changed",
                    reservation_id=reservation_id,
                    status=current.status.value,
                )

            guest_count = changes.guest_count or current.guest_count
            if guest_count > resource.capacity:
                raise ValidationError(
                    f"{resource.name} takes at most {resource.capacity} guests",
                    guest_count=guest_count,
                    capacity=resource.capacity,
                )

            values: dict[str, Any] = {"guest_count": guest_count}
            if changes.special_requests is not None:
                values["special_requests"] = changes.special_requests

            if changes.changes_dates:
                if await reservation_repo.has_overlap(
                    current.resource, date_range, exclude_id=reservation_id
                ):
                    AuditLogger.log_reservation_rejected(
                        actor_id=actor.user_id,
                        resource=str(current.resource),
                        check_in=str(date_range.check_in),
                        check_out=str(date_range.check_out),
                        reason="dates_overlap",
                    )
                    raise ResourceUnavailable(
                        "The resource is already reserved for these dates",
                        resource=str(current.resource),
                        check_in=date_range.check_in,
                        check_out=date_range.check_out,
                    )
                values.update(
                    check_in=date_range.check_in,
                    check_out=date_range.check_out,
                    total_price=resource.price_for(date_range),
                )

            reservation = await reservation_repo.update(
                current.model_copy(update=values), fields=set(values)
            )

        AuditLogger.log_reservation_updated(
            actor_id=actor.user_id,
            reservation_id=reservation_id,
            changes=updates,
        )

        return reservation

    async def get_reservation(self, reservation_id: int, actor: Actor) -> Reservation:
        """Load a reservation visible to the actor."""
        async with self.database.session() as session:
            reservation_repo = PostgresReservationRepository(session, self.cipher)
            reservation = await reservation_repo.get_by_id(reservation_id)

        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found", reservation_id=reservation_id)

        self.permissions.require(
            self.permissions.can_view(actor, reservation),
            actor,
            Permission.VIEW_RESERVATION,
            reservation_id,
        )
        return reservation

    async def list_user_reservations(
        self,
        user_id: int,
        status: Optional[ReservationStatus] = None,
        limit: int = 50,
    ) -> list[Reservation]:
        """List a user's reservations, newest first."""
        async with self.database.session() as session:
            reservation_repo = PostgresReservationRepository(session, self.cipher)
            return await reservation_repo.get_by_user(user_id, status=status, limit=limit)

    async def reservation_counts(self, user_id: int) -> dict[ReservationStatus, int]:
        """Count a user's reservations per status."""
        async with self.database.session() as session:
            reservation_repo = PostgresReservationRepository(session, self.cipher)
            return await reservation_repo.count_by_status(user_id)

    def _ensure_future(self, check_in: date) -> None:
        today = self._today()
        if check_in <= today:
            raise ValidationError(
                "check_in must be a future date",
                check_in=check_in,
                today=today,
            )
