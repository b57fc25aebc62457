"""Structured audit logging for reservation and review actions.

Every state change of a reservation or review leaves an audit trail
entry, as do denied actions and legacy-data encryption runs.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from stayfleet.logging import get_logger

logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """Types of auditable events."""

    # Reservation lifecycle
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_UPDATED = "reservation_updated"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_REJECTED = "reservation_rejected"

    # Reviews
    REVIEW_CREATED = "review_created"
    REVIEW_UPDATED = "review_updated"
    REVIEW_DELETED = "review_deleted"

    # Data protection
    DATA_ENCRYPTED = "data_encrypted"

    # Security
    PERMISSION_DENIED = "permission_denied"


class AuditLogger:
    """Centralized audit logging service."""

    @staticmethod
    def log_event(
        event_type: AuditEventType,
        actor_id: int | None,
        resource_type: str,
        resource_id: int | str,
        action: str,
        success: bool = True,
        metadata: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        Log an auditable event with structured context.

        Args:
            event_type: Type of audit event
            actor_id: User ID performing the action (None for system jobs)
            resource_type: Type of record (reservation, review, user)
            resource_id: ID of the affected record
            action: Human-readable action description
            success: Whether the action succeeded
            metadata: Additional context (dates, prices, fields)
            error: Error message if action failed
        """
        audit_entry = {
            "event_type": event_type.value,
            "actor_id": actor_id,
            "resource_type": resource_type,
            "resource_id": str(resource_id),
            "action": action,
            "success": success,
            "timestamp": datetime.utcnow().isoformat(),
            "metadata": metadata or {},
        }

        if error:
            audit_entry["error"] = error

        logger.info(
            "audit_event",
            **audit_entry,
        )

    @staticmethod
    def log_reservation_created(
        actor_id: int,
        reservation_id: int,
        resource: str,
        check_in: str,
        check_out: str,
        total_price: float,
    ) -> None:
        """Log reservation creation."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_CREATED,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action=f"Reserved {resource} from {check_in} to {check_out}",
            metadata={
                "resource": resource,
                "check_in": check_in,
                "check_out": check_out,
                "total_price": total_price,
            },
        )

    @staticmethod
    def log_reservation_rejected(
        actor_id: int,
        resource: str,
        check_in: str,
        check_out: str,
        reason: str,
    ) -> None:
        """Log a reservation attempt that lost to an existing booking."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_REJECTED,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=resource,
            action=f"Reservation rejected for {resource}",
            success=False,
            metadata={"check_in": check_in, "check_out": check_out},
            error=reason,
        )

    @staticmethod
    def log_reservation_updated(
        actor_id: int,
        reservation_id: int,
        changes: dict[str, Any],
    ) -> None:
        """Log reservation edits."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_UPDATED,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action="Reservation updated",
            metadata={"changed_fields": sorted(changes)},
        )

    @staticmethod
    def log_reservation_confirmed(actor_id: int, reservation_id: int) -> None:
        """Log reservation confirmation."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_CONFIRMED,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action="Reservation confirmed",
        )

    @staticmethod
    def log_reservation_cancelled(
        actor_id: int,
        reservation_id: int,
        by_admin: bool,
    ) -> None:
        """Log reservation cancellation."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_CANCELLED,
            actor_id=actor_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action="Reservation cancelled by admin" if by_admin else "Reservation cancelled by guest",
            metadata={"by_admin": by_admin},
        )

    @staticmethod
    def log_review_event(
        event_type: AuditEventType,
        actor_id: int,
        review_id: int,
        resource: str,
        rating: int | None = None,
    ) -> None:
        """Log review creation, edit or deletion."""
        AuditLogger.log_event(
            event_type=event_type,
            actor_id=actor_id,
            resource_type="review",
            resource_id=review_id,
            action=f"{event_type.value.replace('_', ' ').capitalize()} on {resource}",
            metadata={"resource": resource, "rating": rating},
        )

    @staticmethod
    def log_data_encrypted(
        resource_type: str,
        resource_id: int,
        fields: list[str],
    ) -> None:
        """Log legacy plaintext fields encrypted by a migration run."""
        AuditLogger.log_event(
            event_type=AuditEventType.DATA_ENCRYPTED,
            actor_id=None,
            resource_type=resource_type,
            resource_id=resource_id,
            action=f"Encrypted {len(fields)} legacy field(s)",
            metadata={"fields": fields},
        )

    @staticmethod
    def log_permission_denied(
        actor_id: int,
        resource_type: str,
        resource_id: int | str,
        attempted_action: str,
    ) -> None:
        """Log unauthorized access attempts."""
        AuditLogger.log_event(
            event_type=AuditEventType.PERMISSION_DENIED,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=f"Permission denied: {attempted_action}",
            success=False,
            metadata={"attempted_action": attempted_action},
        )
