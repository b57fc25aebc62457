"""Review aggregation service.

Stores guest reviews and keeps the cached average rating of each hotel
and yacht in step with them. The average is recomputed in its own
transaction after every review write.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError

from stayfleet.logging import get_logger
from stayfleet.logging.audit import AuditEventType, AuditLogger
from stayfleet.models.errors import NotFound, ValidationError
from stayfleet.models.reservation import Reservation, ReservationStatus
from stayfleet.models.resource import ResourceKind, ResourceRef
from stayfleet.models.review import Review, ReviewInput
from stayfleet.security.cipher import FieldCipher
from stayfleet.services.reservation_engine import parse_model
from stayfleet.storage.database import Database
from stayfleet.storage.postgres_reservation_repo import PostgresReservationRepository
from stayfleet.storage.postgres_resource_repo import PostgresResourceRepository
from stayfleet.storage.postgres_review_repo import PostgresReviewRepository

logger = get_logger(__name__)

RATING_PRECISION = Decimal("0.1")


def is_verified_stay(reservation: Optional[Reservation], user_id: int, ref: ResourceRef) -> bool:
    """A review is verified when it cites the author's confirmed stay at the same resource."""
    return (
        reservation is not None
        and reservation.user_id == user_id
        and reservation.resource == ref
        and reservation.status == ReservationStatus.CONFIRMED
    )


class ReviewAggregator:
    """Creates, edits and removes reviews and maintains resource ratings."""

    def __init__(self, database: Database, cipher: FieldCipher):
        """
        Initialize review aggregator.

        Args:
            database: Connected database
            cipher: Field cipher for reading cited reservations
        """
        self.database = database
        self.cipher = cipher

    async def create_review(
        self,
        user_id: int,
        kind: Union[ResourceKind, str],
        resource_id: int,
        rating: int,
        comment: str = "",
        reservation_id: Optional[int] = None,
    ) -> Review:
        """
        Store a review and refresh the resource rating.

        Raises:
            ValidationError: Bad rating or comment, or the user already reviewed the resource
            NotFound: Resource does not exist
        """
        ref = ResourceRef.of(kind, resource_id)
        review_input = parse_model(
            ReviewInput,
            {
                "user_id": user_id,
                "resource": ref,
                "reservation_id": reservation_id,
                "rating": rating,
                "comment": comment,
            },
        )

        try:
            async with self.database.session() as session:
                resource_repo = PostgresResourceRepository(session)
                review_repo = PostgresReviewRepository(session)
                reservation_repo = PostgresReservationRepository(session, self.cipher)

                if await resource_repo.get(ref) is None:
                    raise NotFound(f"Resource {ref} not found", resource=str(ref))

                if await review_repo.get_by_user_and_resource(user_id, ref) is not None:
                    raise ValidationError(
                        "You have already reviewed this resource",
                        user_id=user_id,
                        resource=str(ref),
                    )

                if reservation_id is not None:
                    reservation = await reservation_repo.get_by_id(reservation_id)
                    if reservation is None:
                        # Keep the foreign key valid; the review is just unverified
                        logger.info(
                            "review_reservation_missing",
                            user_id=user_id,
                            reservation_id=reservation_id,
                        )
                        review_input.reservation_id = None
                    review_input.is_verified = is_verified_stay(reservation, user_id, ref)

                review = await review_repo.create(review_input)
        except IntegrityError as e:
            # Lost a race against a concurrent review by the same user
            if "UNIQUE" in str(e.orig).upper() or "uq_reviews_user_resource" in str(e.orig):
                raise ValidationError(
                    "You have already reviewed this resource",
                    user_id=user_id,
                    resource=str(ref),
                ) from e
            raise

        AuditLogger.log_review_event(
            AuditEventType.REVIEW_CREATED,
            actor_id=user_id,
            review_id=review.id,
            resource=str(ref),
            rating=review.rating,
        )

        await self.recompute_average(ref.kind, ref.id)
        return review

    async def update_review(
        self,
        review_id: int,
        user_id: int,
        rating: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> Review:
        """
        Edit the rating or comment of the caller's own review.

        Raises:
            NotFound: Unknown review or not written by ``user_id``
            ValidationError: Bad rating or comment
        """
        async with self.database.session() as session:
            review_repo = PostgresReviewRepository(session)

            review = await review_repo.get_by_id(review_id)
            if review is None or review.user_id != user_id:
                raise NotFound(f"Review {review_id} not found", review_id=review_id)

            changed = parse_model(
                Review,
                {
                    **review.model_dump(),
                    "rating": review.rating if rating is None else rating,
                    "comment": review.comment if comment is None else comment,
                },
            )
            fields = {
                field
                for field, value in (("rating", rating), ("comment", comment))
                if value is not None
            }
            review = await review_repo.update(changed, fields=fields)

        AuditLogger.log_review_event(
            AuditEventType.REVIEW_UPDATED,
            actor_id=user_id,
            review_id=review_id,
            resource=str(review.resource),
            rating=review.rating,
        )

        await self.recompute_average(review.resource.kind, review.resource.id)
        return review

    async def delete_review(self, review_id: int, user_id: int) -> None:
        """
        Remove the caller's own review.

        Raises:
            NotFound: Unknown review or not written by ``user_id``
        """
        async with self.database.session() as session:
            review_repo = PostgresReviewRepository(session)

            review = await review_repo.get_by_id(review_id)
            if review is None or review.user_id != user_id:
                raise NotFound(f"Review {review_id} not found", review_id=review_id)

            await review_repo.delete(review_id)

        AuditLogger.log_review_event(
            AuditEventType.REVIEW_DELETED,
            actor_id=user_id,
            review_id=review_id,
            resource=str(review.resource),
        )

        await self.recompute_average(review.resource.kind, review.resource.id)

    async def recompute_average(self, kind: Union[ResourceKind, str], resource_id: int) -> Decimal:
        """
        Set the cached rating of a resource to the mean of its reviews.

        The mean is rounded to one decimal place; a resource without
        reviews gets 0.
        """
        ref = ResourceRef.of(kind, resource_id)

        async with self.database.session() as session:
            review_repo = PostgresReviewRepository(session)
            resource_repo = PostgresResourceRepository(session)

            average = await review_repo.average_rating(ref)
            rating = (
                Decimal("0")
                if average is None
                else average.quantize(RATING_PRECISION, rounding=ROUND_HALF_UP)
            )

            if not await resource_repo.set_rating(ref, rating):
                logger.warning("rating_target_missing", resource=str(ref))

        logger.info("resource_rating_recomputed", resource=str(ref), rating=str(rating))
        return rating

    async def rating_distribution(
        self, kind: Union[ResourceKind, str], resource_id: int
    ) -> dict[int, int]:
        """Count reviews per star, with every star from 5 down to 1 present."""
        ref = ResourceRef.of(kind, resource_id)

        async with self.database.session() as session:
            review_repo = PostgresReviewRepository(session)
            counts = await review_repo.rating_distribution(ref)

        return {stars: counts.get(stars, 0) for stars in range(5, 0, -1)}

    async def list_reviews(
        self, kind: Union[ResourceKind, str], resource_id: int, limit: int = 50
    ) -> list[Review]:
        """List reviews of a resource, newest first."""
        ref = ResourceRef.of(kind, resource_id)

        async with self.database.session() as session:
            review_repo = PostgresReviewRepository(session)
            return await review_repo.get_by_resource(ref, limit=limit)
