"""Models package - Pydantic domain models."""

from .errors import (
    BookingError,
    CannotCancel,
    CipherError,
    ErrorCode,
    NotFound,
    ResourceUnavailable,
    TransientStoreError,
    Unauthorized,
    ValidationError,
)
from .reservation import (
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationInput,
    ReservationRequest,
    ReservationStatus,
    ReservationUpdate,
)
from .resource import (
    BookableResource,
    DateRange,
    Hotel,
    HotelInput,
    ResourceKind,
    ResourceRef,
    Yacht,
    YachtInput,
)
from .review import Review, ReviewInput
from .user import Actor, User, UserInput, UserRole

__all__ = [
    "Actor",
    "BookableResource",
    "BookingError",
    "CannotCancel",
    "CipherError",
    "DateRange",
    "ErrorCode",
    "Hotel",
    "HotelInput",
    "NotFound",
    "PaymentMethod",
    "PaymentStatus",
    "Reservation",
    "ReservationInput",
    "ReservationRequest",
    "ReservationStatus",
    "ReservationUpdate",
    "ResourceKind",
    "ResourceRef",
    "ResourceUnavailable",
    "Review",
    "ReviewInput",
    "TransientStoreError",
    "Unauthorized",
    "User",
    "UserInput",
    "UserRole",
    "ValidationError",
    "Yacht",
    "YachtInput",
]
