"""Pytest configuration and shared fixtures."""

import sys
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import pytest_asyncio
from unittest.mock import MagicMock

from stayfleet.config.settings import Settings
from stayfleet.models.reservation import Reservation
from stayfleet.models.resource import Hotel, HotelInput, Yacht, YachtInput
from stayfleet.models.user import User, UserInput, UserRole
from stayfleet.security.cipher import FieldCipher
from stayfleet.services.notifications import NotificationDispatcher
from stayfleet.storage.database import Database
from stayfleet.storage.postgres_resource_repo import PostgresResourceRepository
from stayfleet.storage.postgres_user_repo import PostgresUserRepository

TEST_ENCRYPTION_KEY = "test-encryption-secret"

# Fixed "today" injected into services; all test stays are dated after it
TODAY = date(2030, 1, 10)


class RecordingDispatcher(NotificationDispatcher):
    """Notification dispatcher that remembers what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.created: list[Reservation] = []
        self.confirmed: list[Reservation] = []

    async def notify_reservation_created(self, reservation: Reservation) -> None:
        if self.fail:
            raise ConnectionError("mail server unreachable")
        self.created.append(reservation)

    async def notify_reservation_confirmed(self, reservation: Reservation) -> None:
        if self.fail:
            raise ConnectionError("mail server unreachable")
        self.confirmed.append(reservation)


@pytest.fixture
def cipher():
    """Field cipher with a test key."""
    return FieldCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'stayfleet.db'}",
        encryption_key=TEST_ENCRYPTION_KEY,
    )


@pytest.fixture
def mock_database(settings):
    """Database stand-in whose sessions are plain mocks."""
    database = MagicMock()
    database.settings = settings
    database.session_mock = MagicMock()

    @asynccontextmanager
    async def _session():
        yield database.session_mock

    database.session = _session
    return database


@pytest.fixture
def today():
    """Fixed current date used by services under test."""
    return TODAY


@pytest.fixture
def dispatcher():
    """Recording notification dispatcher."""
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher():
    """Dispatcher whose every delivery raises."""
    return RecordingDispatcher(fail=True)


@pytest_asyncio.fixture
async def database(settings):
    """Connected SQLite database with all tables created."""
    db = Database(settings)
    await db.connect()
    await db.create_tables()
    try:
        yield db
    finally:
        await db.disconnect()


@pytest_asyncio.fixture
async def guest(database, cipher) -> User:
    """Registered guest with personal data."""
    async with database.session() as session:
        return await PostgresUserRepository(session, cipher).create(
            UserInput(
                name="Alice Guest",
                email="alice@example.com",
                phone="+358401234567",
                address="Mannerheimintie 1, Helsinki",
            )
        )


@pytest_asyncio.fixture
async def other_guest(database, cipher) -> User:
    """Second registered guest."""
    async with database.session() as session:
        return await PostgresUserRepository(session, cipher).create(
            UserInput(name="Bob Guest", email="bob@example.com")
        )


@pytest_asyncio.fixture
async def admin(database, cipher) -> User:
    """Administrator account."""
    async with database.session() as session:
        return await PostgresUserRepository(session, cipher).create(
            UserInput(name="Admin", email="admin@example.com", role=UserRole.ADMIN)
        )


@pytest_asyncio.fixture
async def hotel(database) -> Hotel:
    """Hotel at 100.00 per night for up to 4 guests."""
    async with database.session() as session:
        return await PostgresResourceRepository(session).create_hotel(
            HotelInput(
                name="Harbour Hotel",
                city="Helsinki",
                price_per_night=Decimal("100.00"),
                stars=4,
                capacity=4,
            )
        )


@pytest_asyncio.fixture
async def yacht(database) -> Yacht:
    """Yacht at 750.00 per day for up to 8 guests."""
    async with database.session() as session:
        return await PostgresResourceRepository(session).create_yacht(
            YachtInput(
                name="Sea Breeze",
                location="Split",
                price_per_day=Decimal("750.00"),
                capacity=8,
                crew_size=2,
            )
        )

