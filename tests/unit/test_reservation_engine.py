"""Unit tests for the reservation engine.

Repositories are replaced with AsyncMocks so that ordering of lock,
re-check and insert can be asserted without a database.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, call, patch

import pytest

from stayfleet.models.errors import (
    CannotCancel,
    NotFound,
    ResourceUnavailable,
    Unauthorized,
    ValidationError,
)
from stayfleet.models.reservation import Reservation, ReservationStatus, ReservationUpdate
from stayfleet.models.resource import Hotel, ResourceKind, ResourceRef
from stayfleet.models.user import Actor, UserRole
from stayfleet.services.reservation_engine import ReservationEngine

GUEST = Actor(user_id=11, role=UserRole.USER)
STRANGER = Actor(user_id=99, role=UserRole.USER)
ADMIN = Actor(user_id=1, role=UserRole.ADMIN)
HOTEL_REF = ResourceRef(kind=ResourceKind.HOTEL, id=5)


@pytest.fixture
def resource_repo():
    """Mock resource repository patched into the engine module."""
    with patch("stayfleet.services.reservation_engine.PostgresResourceRepository") as repo_cls:
        repo = AsyncMock()
        repo_cls.return_value = repo
        yield repo


@pytest.fixture
def reservation_repo():
    """Mock reservation repository patched into the engine module."""
    with patch("stayfleet.services.reservation_engine.PostgresReservationRepository") as repo_cls:
        repo = AsyncMock()
        repo_cls.return_value = repo
        yield repo


@pytest.fixture
def sample_hotel():
    """Active hotel at 100.00 per night."""
    return Hotel(
        id=5,
        name="Harbour Hotel",
        city="Helsinki",
        price_per_night=Decimal("100.00"),
        capacity=2,
    )


@pytest.fixture
def engine(mock_database, cipher, dispatcher, today):
    """Engine wired to mocks and a fixed clock."""
    return ReservationEngine(mock_database, cipher, notifier=dispatcher, today=lambda: today)


def make_reservation(today, status=ReservationStatus.PENDING, days_ahead=10, user_id=11):
    check_in = today + timedelta(days=days_ahead)
    return Reservation(
        id=42,
        user_id=user_id,
        resource=HOTEL_REF,
        check_in=check_in,
        check_out=check_in + timedelta(days=3),
        total_price=Decimal("300.00"),
        status=status,
        guest_count=2,
    )


def _persisted(reservation_input):
    return Reservation(
        id=42,
        user_id=reservation_input.user_id,
        resource=reservation_input.resource,
        check_in=reservation_input.check_in,
        check_out=reservation_input.check_out,
        total_price=reservation_input.total_price,
        guest_count=reservation_input.guest_count,
        special_requests=reservation_input.special_requests,
        payment_method=reservation_input.payment_method,
    )


def _saved(reservation, fields):
    return reservation


@pytest.mark.asyncio
async def test_create_reservation_locks_rechecks_and_prices(
    engine, resource_repo, reservation_repo, sample_hotel, dispatcher, today
):
    """Test creation locks the resource, re-checks overlap and prices nights."""
    resource_repo.lock_for_update.return_value = sample_hotel
    reservation_repo.has_overlap.return_value = False
    reservation_repo.create.side_effect = _persisted

    check_in = today + timedelta(days=7)
    reservation = await engine.create_reservation(
        user_id=11,
        kind="hotel",
        resource_id=5,
        check_in=check_in,
        check_out=check_in + timedelta(days=3),
        guest_count=2,
        special_requests="Sea view",
        payment_method="paypal",
    )
    await engine.notifications.drain()

    assert reservation.total_price == Decimal("300.00")
    assert reservation.status == ReservationStatus.PENDING
    resource_repo.lock_for_update.assert_awaited_once_with(HOTEL_REF, engine.lock_timeout_ms)
    created = reservation_repo.create.await_args.args[0]
    assert created.payment_method == "paypal"
    assert created.special_requests == "Sea view"
    assert dispatcher.created == [reservation]


@pytest.mark.asyncio
async def test_create_reservation_rejects_overlap(
    engine, resource_repo, reservation_repo, sample_hotel, dispatcher, today
):
    """Test losing the re-check raises and writes nothing."""
    resource_repo.lock_for_update.return_value = sample_hotel
    reservation_repo.has_overlap.return_value = True

    check_in = today + timedelta(days=7)
    with pytest.raises(ResourceUnavailable):
        await engine.create_reservation(
            user_id=11,
            kind=ResourceKind.HOTEL,
            resource_id=5,
            check_in=check_in,
            check_out=check_in + timedelta(days=2),
        )

    reservation_repo.create.assert_not_awaited()
    assert dispatcher.created == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "days_in, days_out, guests, payment",
    [
        (0, 2, 1, "credit_card"),  # check-in today
        (-1, 2, 1, "credit_card"),  # check-in in the past
        (5, 5, 1, "credit_card"),  # empty stay
        (5, 3, 1, "credit_card"),  # inverted stay
        (5, 7, 0, "credit_card"),  # no guests
        (5, 7, 1, "bitcoin"),  # unknown payment method
    ],
)
async def test_create_reservation_validates_before_locking(
    engine, resource_repo, reservation_repo, today, days_in, days_out, guests, payment
):
    """Test malformed requests fail before any lock is taken."""
    with pytest.raises(ValidationError):
        await engine.create_reservation(
            user_id=11,
            kind="hotel",
            resource_id=5,
            check_in=today + timedelta(days=days_in),
            check_out=today + timedelta(days=days_out),
            guest_count=guests,
            payment_method=payment,
        )

    resource_repo.lock_for_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_reservation_rejects_unknown_kind(engine, resource_repo, today):
    """Test unrecognised resource kinds are a validation failure."""
    with pytest.raises(ValidationError):
        await engine.create_reservation(
            user_id=11,
            kind="castle",
            resource_id=5,
            check_in=today + timedelta(days=3),
            check_out=today + timedelta(days=4),
        )

    resource_repo.lock_for_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_reservation_missing_resource(engine, resource_repo, reservation_repo, today):
    """Test unknown resources raise NotFound."""
    resource_repo.lock_for_update.return_value = None

    with pytest.raises(NotFound):
        await engine.create_reservation(
            user_id=11,
            kind="yacht",
            resource_id=404,
            check_in=today + timedelta(days=3),
            check_out=today + timedelta(days=4),
        )

    reservation_repo.has_overlap.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_reservation_inactive_resource(
    engine, resource_repo, reservation_repo, sample_hotel, today
):
    """Test disabled resources cannot be booked."""
    resource_repo.lock_for_update.return_value = sample_hotel.model_copy(update={"is_active": False})

    with pytest.raises(NotFound):
        await engine.create_reservation(
            user_id=11,
            kind="hotel",
            resource_id=5,
            check_in=today + timedelta(days=3),
            check_out=today + timedelta(days=4),
        )


@pytest.mark.asyncio
async def test_create_reservation_over_capacity(
    engine, resource_repo, reservation_repo, sample_hotel, today
):
    """Test guest count above capacity is rejected under the lock."""
    resource_repo.lock_for_update.return_value = sample_hotel

    with pytest.raises(ValidationError):
        await engine.create_reservation(
            user_id=11,
            kind="hotel",
            resource_id=5,
            check_in=today + timedelta(days=3),
            check_out=today + timedelta(days=4),
            guest_count=3,
        )

    reservation_repo.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_reservation(
    mock_database, cipher, failing_dispatcher, resource_repo, reservation_repo, sample_hotel, today
):
    """Test a failing mailer is logged and the reservation still succeeds."""
    engine = ReservationEngine(mock_database, cipher, notifier=failing_dispatcher, today=lambda: today)
    resource_repo.lock_for_update.return_value = sample_hotel
    reservation_repo.has_overlap.return_value = False
    reservation_repo.create.side_effect = _persisted

    reservation = await engine.create_reservation(
        user_id=11,
        kind="hotel",
        resource_id=5,
        check_in=today + timedelta(days=3),
        check_out=today + timedelta(days=4),
    )
    await engine.notifications.drain()

    assert reservation.id == 42
    assert engine.notifications.pending == 0


@pytest.mark.asyncio
async def test_confirm_requires_admin(engine, reservation_repo):
    """Test guests cannot confirm reservations."""
    with pytest.raises(Unauthorized):
        await engine.confirm_reservation(42, GUEST)

    reservation_repo.get_for_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_confirm_pending_reservation(engine, reservation_repo, dispatcher, today):
    """Test pending reservations become confirmed and the guest is notified."""
    reservation_repo.get_for_update.return_value = make_reservation(today)
    reservation_repo.update.side_effect = _saved

    confirmed = await engine.confirm_reservation(42, ADMIN)
    await engine.notifications.drain()

    assert confirmed.status == ReservationStatus.CONFIRMED
    reservation_repo.has_overlap.assert_not_awaited()
    assert reservation_repo.update.await_args.kwargs["fields"] == {"status"}
    assert dispatcher.confirmed == [confirmed]


@pytest.mark.asyncio
async def test_confirm_is_idempotent(engine, reservation_repo, dispatcher, today):
    """Test confirming twice changes nothing and sends nothing."""
    reservation_repo.get_for_update.return_value = make_reservation(
        today, status=ReservationStatus.CONFIRMED
    )

    result = await engine.confirm_reservation(42, ADMIN)
    await engine.notifications.drain()

    assert result.status == ReservationStatus.CONFIRMED
    reservation_repo.update.assert_not_awaited()
    assert dispatcher.confirmed == []


@pytest.mark.asyncio
async def test_confirm_cancelled_reservation_fails(engine, reservation_repo, today):
    """Test cancelled reservations stay cancelled."""
    reservation_repo.get_for_update.return_value = make_reservation(
        today, status=ReservationStatus.CANCELLED
    )

    with pytest.raises(ValidationError):
        await engine.confirm_reservation(42, ADMIN)


@pytest.mark.asyncio
async def test_confirm_unknown_reservation(engine, reservation_repo):
    """Test unknown ids raise NotFound."""
    reservation_repo.get_for_update.return_value = None

    with pytest.raises(NotFound):
        await engine.confirm_reservation(404, ADMIN)


@pytest.mark.asyncio
async def test_owner_cancels_confirmed_stay_outside_window(engine, reservation_repo, today):
    """Test owners can cancel confirmed stays more than two days out."""
    reservation_repo.get_for_update.return_value = make_reservation(
        today, status=ReservationStatus.CONFIRMED, days_ahead=3
    )
    reservation_repo.update.side_effect = _saved

    cancelled = await engine.cancel_reservation(42, GUEST)

    assert cancelled.status == ReservationStatus.CANCELLED
    assert cancelled.cancelled_at is not None


@pytest.mark.asyncio
async def test_owner_cannot_cancel_inside_window(engine, reservation_repo, today):
    """Test owners cannot cancel a stay starting tomorrow."""
    reservation_repo.get_for_update.return_value = make_reservation(
        today, status=ReservationStatus.CONFIRMED, days_ahead=1
    )

    with pytest.raises(CannotCancel):
        await engine.cancel_reservation(42, GUEST)

    reservation_repo.update.assert_not_awaited()


@pytest.mark.asyncio
async def test_owner_cannot_cancel_pending(engine, reservation_repo, today):
    """Test owners can only cancel confirmed reservations."""
    reservation_repo.get_for_update.return_value = make_reservation(today, days_ahead=30)

    with pytest.raises(CannotCancel):
        await engine.cancel_reservation(42, GUEST)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ReservationStatus.PENDING, ReservationStatus.CONFIRMED])
async def test_admin_cancels_any_live_reservation(engine, reservation_repo, today, status):
    """Test admins bypass the owner window."""
    reservation_repo.get_for_update.return_value = make_reservation(today, status=status, days_ahead=1)
    reservation_repo.update.side_effect = _saved

    cancelled = await engine.cancel_reservation(42, ADMIN)

    assert cancelled.status == ReservationStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert reservation_repo.update.await_args.kwargs["fields"] == {"status", "cancelled_at"}


@pytest.mark.asyncio
async def test_cancel_twice_fails(engine, reservation_repo, today):
    """Test cancellation is terminal."""
    reservation_repo.get_for_update.return_value = make_reservation(
        today, status=ReservationStatus.CANCELLED
    )

    with pytest.raises(CannotCancel):
        await engine.cancel_reservation(42, ADMIN)


@pytest.mark.asyncio
async def test_stranger_cannot_cancel(engine, reservation_repo, today):
    """Test only the owner or an admin may cancel."""
    reservation_repo.get_for_update.return_value = make_reservation(
        today, status=ReservationStatus.CONFIRMED, days_ahead=30
    )

    with pytest.raises(Unauthorized):
        await engine.cancel_reservation(42, STRANGER)


@pytest.mark.asyncio
async def test_update_dates_rechecks_overlap_excluding_itself(
    engine, resource_repo, reservation_repo, sample_hotel, today
):
    """Test moving dates runs the locked overlap check and re-prices."""
    current = make_reservation(today)
    reservation_repo.get_by_id.return_value = current
    reservation_repo.get_for_update.return_value = current
    reservation_repo.has_overlap.return_value = False
    reservation_repo.update.side_effect = _saved
    resource_repo.lock_for_update.return_value = sample_hotel

    new_check_out = current.check_out + timedelta(days=2)
    updated = await engine.update_reservation(42, GUEST, {"check_out": new_check_out})

    assert updated.check_out == new_check_out
    assert updated.total_price == Decimal("500.00")
    resource_repo.lock_for_update.assert_awaited_once()
    assert reservation_repo.has_overlap.await_args == call(
        HOTEL_REF, updated.date_range, exclude_id=42
    )
    assert reservation_repo.update.await_args.kwargs["fields"] == {
        "guest_count",
        "check_in",
        "check_out",
        "total_price",
    }


@pytest.mark.asyncio
async def test_update_dates_conflicting_with_other_booking(
    engine, resource_repo, reservation_repo, sample_hotel, today
):
    """Test date changes into a taken range are rejected."""
    current = make_reservation(today)
    reservation_repo.get_by_id.return_value = current
    reservation_repo.get_for_update.return_value = current
    reservation_repo.has_overlap.return_value = True
    resource_repo.lock_for_update.return_value = sample_hotel

    with pytest.raises(ResourceUnavailable):
        await engine.update_reservation(
            42, GUEST, ReservationUpdate(check_in=current.check_in + timedelta(days=1))
        )

    reservation_repo.update.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_without_dates_does_not_lock(
    engine, resource_repo, reservation_repo, sample_hotel, today
):
    """Test guest count and request edits skip the overlap check."""
    current = make_reservation(today)
    reservation_repo.get_by_id.return_value = current
    reservation_repo.get_for_update.return_value = current
    reservation_repo.update.side_effect = _saved
    resource_repo.get.return_value = sample_hotel

    updated = await engine.update_reservation(
        42, GUEST, {"guest_count": 1, "special_requests": "Extra pillow"}
    )

    assert updated.guest_count == 1
    assert updated.special_requests == "Extra pillow"
    assert updated.total_price == current.total_price
    resource_repo.lock_for_update.assert_not_awaited()
    reservation_repo.has_overlap.assert_not_awaited()
    assert reservation_repo.update.await_args.kwargs["fields"] == {"guest_count", "special_requests"}


@pytest.mark.asyncio
async def test_update_confirmed_reservation_fails(
    engine, resource_repo, reservation_repo, sample_hotel, today
):
    """Test only pending reservations can be edited."""
    current = make_reservation(today, status=ReservationStatus.CONFIRMED)
    reservation_repo.get_by_id.return_value = current
    reservation_repo.get_for_update.return_value = current
    resource_repo.get.return_value = sample_hotel

    with pytest.raises(ValidationError):
        await engine.update_reservation(42, GUEST, {"guest_count": 1})


@pytest.mark.asyncio
async def test_update_by_stranger_is_unauthorized(engine, reservation_repo, today):
    """Test other guests cannot edit a reservation."""
    reservation_repo.get_by_id.return_value = make_reservation(today)

    with pytest.raises(Unauthorized):
        await engine.update_reservation(42, STRANGER, {"guest_count": 1})


@pytest.mark.asyncio
async def test_get_reservation_visibility(engine, reservation_repo, today):
    """Test owners and admins can read a reservation, others cannot."""
    reservation_repo.get_by_id.return_value = make_reservation(today)

    assert (await engine.get_reservation(42, GUEST)).id == 42
    assert (await engine.get_reservation(42, ADMIN)).id == 42
    with pytest.raises(Unauthorized):
        await engine.get_reservation(42, STRANGER)


@pytest.mark.asyncio
async def test_check_availability_is_read_only(engine, resource_repo, reservation_repo, today):
    """Test availability is a pure overlap query."""
    reservation_repo.has_overlap.return_value = False

    available = await engine.check_availability(
        "hotel", 5, today + timedelta(days=1), today + timedelta(days=3)
    )

    assert available is True
    resource_repo.lock_for_update.assert_not_awaited()
    reservation_repo.create.assert_not_awaited()
