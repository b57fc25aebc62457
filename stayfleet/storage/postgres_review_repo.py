"""PostgreSQL repository for Review entities."""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select

from stayfleet.logging import get_logger
from stayfleet.models.resource import ResourceRef
from stayfleet.models.review import Review, ReviewInput
from stayfleet.storage.db_models import ReviewTable
from stayfleet.storage.repository_base import RepositoryBase

logger = get_logger(__name__)


class PostgresReviewRepository(RepositoryBase[Review]):
    """Review repository using PostgreSQL."""

    table = ReviewTable
    entity_name = "review"

    async def get_by_user_and_resource(self, user_id: int, ref: ResourceRef) -> Optional[Review]:
        """Retrieve the review a user left for a resource, if any."""
        stmt = (
            select(ReviewTable)
            .where(ReviewTable.user_id == user_id)
            .where(ReviewTable.resource_kind == ref.kind)
            .where(ReviewTable.resource_id == ref.id)
        )
        result = await self.session.execute(stmt)
        db_review = result.scalar_one_or_none()

        if not db_review:
            return None

        return self._to_domain_model(db_review)

    async def create(self, entity: ReviewInput) -> Review:
        """Create new review."""
        db_review = ReviewTable(
            user_id=entity.user_id,
            resource_kind=entity.resource.kind,
            resource_id=entity.resource.id,
            reservation_id=entity.reservation_id,
            rating=entity.rating,
            comment=entity.comment,
            is_verified=entity.is_verified,
        )

        self.session.add(db_review)
        await self.session.flush()

        logger.info(
            "review_row_created",
            review_id=db_review.id,
            resource=str(entity.resource),
            verified=entity.is_verified,
        )

        return self._to_domain_model(db_review)

    async def update(self, entity: Review, fields: Iterable[str]) -> Review:
        """Update the named fields (rating, comment) of an existing review."""
        fields = set(fields)
        if not fields <= {"rating", "comment"}:
            raise ValueError(f"Review fields cannot be updated: {sorted(fields)}")

        db_review = await self._get_row(entity.id)

        if not db_review:
            raise ValueError(f"Review not found: {entity.id}")

        for field in fields:
            setattr(db_review, field, getattr(entity, field))
        db_review.updated_at = datetime.utcnow()

        await self.session.flush()

        logger.info("review_updated", review_id=entity.id)

        return self._to_domain_model(db_review)

    async def get_by_resource(self, ref: ResourceRef, limit: int = 50) -> list[Review]:
        """Get reviews of a resource, newest first."""
        stmt = (
            select(ReviewTable)
            .where(ReviewTable.resource_kind == ref.kind)
            .where(ReviewTable.resource_id == ref.id)
            .order_by(ReviewTable.created_at.desc(), ReviewTable.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        db_reviews = result.scalars().all()

        return [self._to_domain_model(db_review) for db_review in db_reviews]

    async def average_rating(self, ref: ResourceRef) -> Optional[Decimal]:
        """Mean rating over all reviews of a resource, None when there are none."""
        stmt = (
            select(func.avg(ReviewTable.rating))
            .where(ReviewTable.resource_kind == ref.kind)
            .where(ReviewTable.resource_id == ref.id)
        )
        result = await self.session.execute(stmt)
        average = result.scalar_one_or_none()

        if average is None:
            return None

        return Decimal(str(average))

    async def rating_distribution(self, ref: ResourceRef) -> dict[int, int]:
        """Count reviews per star rating, highest first."""
        stmt = (
            select(ReviewTable.rating, func.count(ReviewTable.id))
            .where(ReviewTable.resource_kind == ref.kind)
            .where(ReviewTable.resource_id == ref.id)
            .group_by(ReviewTable.rating)
            .order_by(ReviewTable.rating.desc())
        )
        result = await self.session.execute(stmt)
        return {rating: count for rating, count in result.all()}

    def _to_domain_model(self, db_review: ReviewTable) -> Review:
        """Convert database model to domain model."""
        return Review(
            id=db_review.id,
            user_id=db_review.user_id,
            resource=ResourceRef(kind=db_review.resource_kind, id=db_review.resource_id),
            reservation_id=db_review.reservation_id,
            rating=db_review.rating,
            comment=db_review.comment,
            is_verified=db_review.is_verified,
            created_at=db_review.created_at,
            updated_at=db_review.updated_at,
        )
