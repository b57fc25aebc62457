"""User domain model."""

from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """User role enumeration."""

    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    """Registered guest or administrator."""

    ENCRYPTED_FIELDS: ClassVar[tuple[str, ...]] = ("phone", "address")

    id: int = Field(description="Auto-increment primary key")
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255)
    phone: Optional[str] = None
    address: Optional[str] = None
    role: UserRole = Field(default=UserRole.USER)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserInput(BaseModel):
    """Input model for user creation."""

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = Field(default=None, max_length=32)
    address: Optional[str] = Field(default=None, max_length=500)
    role: UserRole = UserRole.USER


class Actor(BaseModel):
    """Identity performing an operation on the core."""

    user_id: int = Field(gt=0)
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=user.role)
