"""SQLAlchemy database models.

Maps domain models to relational tables. Reservations and reviews point
at hotels or yachts through a (resource_kind, resource_id) pair; use
``resolve_resource_table`` to get the table behind a kind.
"""

from datetime import datetime
from typing import Type, Union

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from stayfleet.models.reservation import PaymentStatus, ReservationStatus
from stayfleet.models.resource import ResourceKind
from stayfleet.models.user import UserRole


def _enum(enum_cls: type, name: str) -> Enum:
    """Store enum values (lowercase tags) rather than member names."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=True,
        values_callable=lambda members: [member.value for member in members],
    )


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class UserTable(Base):
    """User entity table."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    # Ciphertext columns
    phone = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    role = Column(_enum(UserRole, "userrole"), nullable=False, default=UserRole.USER)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservations = relationship("ReservationTable", back_populates="user", passive_deletes=True)

    __table_args__ = (Index("ix_users_email", email, unique=True),)


class HotelTable(Base):
    """Hotel catalog table."""

    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    address = Column(Text, nullable=True)
    price_per_night = Column(Numeric(10, 2), nullable=False)
    stars = Column(Integer, nullable=False, default=3)
    capacity = Column(Integer, nullable=False, default=2)
    rating = Column(Numeric(2, 1), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price_per_night >= 0", name="check_hotel_nonnegative_price"),
        Index("ix_hotels_city_active", city, is_active),
        Index("ix_hotels_rating_active", rating, is_active),
    )


class YachtTable(Base):
    """Yacht catalog table."""

    __tablename__ = "yachts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    location = Column(String(100), nullable=False)
    price_per_day = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)
    crew_size = Column(Integer, nullable=False, default=0)
    rating = Column(Numeric(2, 1), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price_per_day >= 0", name="check_yacht_nonnegative_price"),
        Index("ix_yachts_location_active", location, is_active),
        Index("ix_yachts_capacity_active", capacity, is_active),
    )


RESOURCE_KIND_TYPE = _enum(ResourceKind, "resourcekind")

ResourceTable = Union[Type[HotelTable], Type[YachtTable]]

_RESOURCE_TABLES: dict[ResourceKind, ResourceTable] = {
    ResourceKind.HOTEL: HotelTable,
    ResourceKind.YACHT: YachtTable,
}


def resolve_resource_table(kind: ResourceKind) -> ResourceTable:
    """Map a resource kind to its catalog table."""
    return _RESOURCE_TABLES[ResourceKind(kind)]


class ReservationTable(Base):
    """Reservation entity table."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    resource_kind = Column(RESOURCE_KIND_TYPE, nullable=False)
    resource_id = Column(Integer, nullable=False)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(
        _enum(ReservationStatus, "reservationstatus"),
        nullable=False,
        default=ReservationStatus.PENDING,
    )
    guest_count = Column(Integer, nullable=False, default=1)
    # Ciphertext columns
    special_requests = Column(Text, nullable=True)
    payment_method = Column(Text, nullable=True)
    payment_status = Column(
        _enum(PaymentStatus, "paymentstatus"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserTable", back_populates="reservations")

    __table_args__ = (
        CheckConstraint("check_out > check_in", name="check_valid_dates"),
        CheckConstraint("guest_count > 0", name="check_positive_guest_count"),
        CheckConstraint("total_price >= 0", name="check_nonnegative_total_price"),
        Index("ix_reservations_user_status", user_id, status),
        Index("ix_reservations_resource", resource_kind, resource_id),
        Index("ix_reservations_resource_dates", resource_kind, resource_id, check_in, check_out),
        Index("ix_reservations_status_created", status, created_at),
    )


class ReviewTable(Base):
    """Review entity table."""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    resource_kind = Column(RESOURCE_KIND_TYPE, nullable=False)
    resource_id = Column(Integer, nullable=False)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True
    )
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False, default="")
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_rating_range"),
        UniqueConstraint("user_id", "resource_kind", "resource_id", name="uq_reviews_user_resource"),
        Index("ix_reviews_resource", resource_kind, resource_id),
        Index("ix_reviews_user_created", user_id, created_at),
    )
