"""Integration tests for review links with foreign keys enforced."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import event, text

from stayfleet.models.user import Actor
from stayfleet.services.reservation_engine import ReservationEngine
from stayfleet.services.review_aggregator import ReviewAggregator
from stayfleet.storage.database import Database


@pytest_asyncio.fixture
async def database(settings):
    """SQLite database that enforces foreign keys like PostgreSQL does."""
    db = Database(settings)
    await db.connect()

    @event.listens_for(db.engine.sync_engine, "connect")
    def _enforce_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await db.create_tables()
    try:
        yield db
    finally:
        await db.disconnect()


@pytest.fixture
def aggregator(database, cipher):
    return ReviewAggregator(database, cipher)


@pytest.mark.asyncio
async def test_foreign_keys_are_enforced(database):
    """Test the fixture really turns enforcement on."""
    async with database.session() as session:
        result = await session.execute(text("PRAGMA foreign_keys"))
        assert result.scalar_one() == 1


@pytest.mark.asyncio
async def test_review_citing_unknown_reservation_is_stored_unverified(aggregator, database, guest, hotel):
    """Test a dangling reservation id neither fails the write nor verifies the review."""
    review = await aggregator.create_review(
        user_id=guest.id,
        kind="hotel",
        resource_id=hotel.id,
        rating=4,
        comment="Quiet rooms",
        reservation_id=9999,
    )

    assert not review.is_verified
    assert review.reservation_id is None

    async with database.session() as session:
        result = await session.execute(
            text("SELECT reservation_id, is_verified FROM reviews WHERE id = :id"), {"id": review.id}
        )
        reservation_id, is_verified = result.one()

    assert reservation_id is None
    assert not is_verified


@pytest.mark.asyncio
async def test_review_citing_own_stay_keeps_the_link(
    aggregator, database, cipher, dispatcher, guest, admin, yacht, today
):
    """Test an existing cited reservation stays linked and verifies the review."""
    engine = ReservationEngine(database, cipher, notifier=dispatcher, today=lambda: today)
    stay = await engine.create_reservation(
        user_id=guest.id,
        kind="yacht",
        resource_id=yacht.id,
        check_in=today + timedelta(days=5),
        check_out=today + timedelta(days=8),
    )
    await engine.confirm_reservation(stay.id, Actor.from_user(admin))
    await engine.notifications.drain()

    review = await aggregator.create_review(
        user_id=guest.id,
        kind="yacht",
        resource_id=yacht.id,
        rating=5,
        reservation_id=stay.id,
    )

    assert review.is_verified
    assert review.reservation_id == stay.id
