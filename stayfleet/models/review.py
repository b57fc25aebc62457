"""Review domain model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from stayfleet.models.resource import ResourceRef


class Review(BaseModel):
    """Guest review of a hotel or yacht."""

    id: int
    user_id: int = Field(gt=0)
    resource: ResourceRef
    reservation_id: Optional[int] = None
    rating: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=1000)
    is_verified: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ReviewInput(BaseModel):
    """Input model for review creation."""

    user_id: int = Field(gt=0)
    resource: ResourceRef
    reservation_id: Optional[int] = None
    rating: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=1000)
    is_verified: bool = False
