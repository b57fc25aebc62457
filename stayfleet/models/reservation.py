"""Reservation domain model."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, Field, model_validator

from stayfleet.models.resource import DateRange, ResourceRef


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """Accepted payment method tags."""

    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"


class Reservation(BaseModel):
    """Reservation of a hotel or yacht for a date range."""

    ENCRYPTED_FIELDS: ClassVar[tuple[str, ...]] = ("special_requests", "payment_method")

    id: int
    user_id: int = Field(gt=0)
    resource: ResourceRef
    check_in: date
    check_out: date
    total_price: Decimal = Field(ge=0)
    status: ReservationStatus = Field(default=ReservationStatus.PENDING)
    guest_count: int = Field(default=1, ge=1)
    # Plain str: a legacy or undecryptable value is kept as stored
    special_requests: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def date_range(self) -> DateRange:
        return DateRange(check_in=self.check_in, check_out=self.check_out)

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @property
    def is_terminal(self) -> bool:
        return self.status == ReservationStatus.CANCELLED

    def blocks(self, date_range: DateRange) -> bool:
        """Check if this reservation occupies any night of the range."""
        return self.status != ReservationStatus.CANCELLED and self.date_range.overlaps(date_range)

    def is_cancellable_by_owner(self, today: date, window_days: int = 2) -> bool:
        """Owners may cancel confirmed stays starting more than ``window_days`` out."""
        return (
            self.status == ReservationStatus.CONFIRMED
            and self.check_in > today + timedelta(days=window_days)
        )


class ReservationRequest(BaseModel):
    """Validated input for reservation creation."""

    user_id: int = Field(gt=0)
    resource: ResourceRef
    check_in: date
    check_out: date
    guest_count: int = Field(ge=1)
    special_requests: Optional[str] = Field(default=None, max_length=2000)
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD

    @model_validator(mode="after")
    def validate_dates(self) -> "ReservationRequest":
        """Ensure check-out is strictly after check-in."""
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self

    @property
    def date_range(self) -> DateRange:
        return DateRange(check_in=self.check_in, check_out=self.check_out)


class ReservationInput(BaseModel):
    """Row values for a new reservation, priced and ready to persist."""

    user_id: int = Field(gt=0)
    resource: ResourceRef
    check_in: date
    check_out: date
    total_price: Decimal = Field(ge=0)
    guest_count: int = Field(ge=1)
    special_requests: Optional[str] = None
    payment_method: str


class ReservationUpdate(BaseModel):
    """Changes allowed on a pending reservation."""

    check_in: Optional[date] = None
    check_out: Optional[date] = None
    guest_count: Optional[int] = Field(default=None, ge=1)
    special_requests: Optional[str] = Field(default=None, max_length=2000)

    @property
    def changes_dates(self) -> bool:
        return self.check_in is not None or self.check_out is not None
