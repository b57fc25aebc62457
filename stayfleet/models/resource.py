"""Bookable resource domain models (hotels and yachts)."""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stayfleet.models.errors import ValidationError


class ResourceKind(str, Enum):
    """Kinds of bookable resources."""

    HOTEL = "hotel"
    YACHT = "yacht"


class ResourceRef(BaseModel):
    """Reference to a bookable resource: a kind tag plus its row id."""

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    id: int = Field(gt=0)

    @classmethod
    def of(cls, kind: "ResourceKind | str", resource_id: int) -> "ResourceRef":
        """Build a reference, rejecting unknown kinds."""
        try:
            resource_kind = ResourceKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown resource kind: {kind}", kind=kind) from None
        if isinstance(resource_id, bool) or not isinstance(resource_id, int):
            raise ValidationError("Resource id must be an integer", resource_id=resource_id)
        if resource_id <= 0:
            raise ValidationError("Resource id must be positive", resource_id=resource_id)
        return cls(kind=resource_kind, id=resource_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class DateRange(BaseModel):
    """Half-open stay interval [check_in, check_out)."""

    model_config = ConfigDict(frozen=True)

    check_in: date
    check_out: date

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        """Ensure check-out is strictly after check-in."""
        if self.check_out <= self.check_in:
            raise ValueError(
                f"check_out ({self.check_out}) must be after check_in ({self.check_in})"
            )
        return self

    @property
    def nights(self) -> int:
        """Number of whole nights (or days for yachts) in the stay."""
        return (self.check_out - self.check_in).days

    def overlaps(self, other: "DateRange") -> bool:
        """Check whether two stays share at least one night.

        Covers start-inside, end-inside and full containment in either
        direction. A stay ending on day X never conflicts with one
        starting on day X.
        """
        return self.check_in < other.check_out and other.check_in < self.check_out


class StayBlocker(Protocol):
    """Anything that may block a date range (reservations)."""

    def blocks(self, date_range: DateRange) -> bool: ...


class BookableResource(BaseModel, ABC):
    """Common attributes of hotels and yachts."""

    id: int
    name: str = Field(min_length=1, max_length=255)
    capacity: int = Field(default=2, gt=0)
    rating: Decimal = Field(default=Decimal("0"), ge=0, le=5)
    is_active: bool = True

    @property
    @abstractmethod
    def kind(self) -> ResourceKind:
        """Kind tag stored in reservation and review references."""

    @property
    @abstractmethod
    def unit_price(self) -> Decimal:
        """Price of one night (hotels) or one day (yachts)."""

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(kind=self.kind, id=self.id)

    def is_available(self, date_range: DateRange, reservations: Iterable[StayBlocker]) -> bool:
        """Check the range against already loaded reservations of this resource."""
        return not any(reservation.blocks(date_range) for reservation in reservations)

    def price_for(self, date_range: DateRange) -> Decimal:
        """Total price of a stay at the current unit price."""
        return (self.unit_price * Decimal(date_range.nights)).quantize(Decimal("0.01"))


class Hotel(BookableResource):
    """Hotel priced per night."""

    city: str = Field(max_length=100)
    address: Optional[str] = None
    price_per_night: Decimal = Field(ge=0)
    stars: int = Field(default=3, ge=1, le=5)

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.HOTEL

    @property
    def unit_price(self) -> Decimal:
        return self.price_per_night


class Yacht(BookableResource):
    """Yacht priced per day."""

    location: str = Field(max_length=100)
    price_per_day: Decimal = Field(ge=0)
    crew_size: int = Field(default=0, ge=0)

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.YACHT

    @property
    def unit_price(self) -> Decimal:
        return self.price_per_day


class HotelInput(BaseModel):
    """Input model for hotel creation."""

    name: str = Field(min_length=1, max_length=255)
    city: str = Field(max_length=100)
    address: Optional[str] = None
    price_per_night: Decimal = Field(ge=0)
    stars: int = Field(default=3, ge=1, le=5)
    capacity: int = Field(default=2, gt=0)


class YachtInput(BaseModel):
    """Input model for yacht creation."""

    name: str = Field(min_length=1, max_length=255)
    location: str = Field(max_length=100)
    price_per_day: Decimal = Field(ge=0)
    capacity: int = Field(gt=0)
    crew_size: int = Field(default=0, ge=0)
