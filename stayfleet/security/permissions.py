"""Permission checks for reservation and review actions."""

from enum import Enum

from stayfleet.logging.audit import AuditLogger
from stayfleet.models.errors import Unauthorized
from stayfleet.models.reservation import Reservation
from stayfleet.models.user import Actor


class Permission(str, Enum):
    """Permission types."""

    VIEW_RESERVATION = "view_reservation"
    UPDATE_RESERVATION = "update_reservation"
    CONFIRM_RESERVATION = "confirm_reservation"
    CANCEL_RESERVATION = "cancel_reservation"


class PermissionChecker:
    """Check actor permissions for actions on reservations."""

    def is_admin(self, actor: Actor) -> bool:
        """Check if actor has the admin role."""
        return actor.is_admin

    def is_owner(self, actor: Actor, reservation: Reservation) -> bool:
        """Check if actor made the reservation."""
        return reservation.user_id == actor.user_id

    def can_view(self, actor: Actor, reservation: Reservation) -> bool:
        """Owners and admins may read a reservation."""
        return self.is_admin(actor) or self.is_owner(actor, reservation)

    def can_update(self, actor: Actor, reservation: Reservation) -> bool:
        """Owners and admins may edit a reservation."""
        return self.is_admin(actor) or self.is_owner(actor, reservation)

    def can_confirm(self, actor: Actor) -> bool:
        """Check if actor can confirm reservations (admin only)."""
        return self.is_admin(actor)

    def can_cancel(self, actor: Actor, reservation: Reservation) -> bool:
        """Owners and admins may attempt a cancellation; state rules apply afterwards."""
        return self.is_admin(actor) or self.is_owner(actor, reservation)

    def require(
        self,
        allowed: bool,
        actor: Actor,
        permission: Permission,
        reservation_id: int,
    ) -> None:
        """
        Raise Unauthorized and leave an audit entry when a check failed.

        Raises:
            Unauthorized: If ``allowed`` is False
        """
        if allowed:
            return

        AuditLogger.log_permission_denied(
            actor_id=actor.user_id,
            resource_type="reservation",
            resource_id=reservation_id,
            attempted_action=permission.value,
        )
        raise Unauthorized(
            f"Not allowed to {permission.value.replace('_', ' ')}",
            reservation_id=reservation_id,
            actor_id=actor.user_id,
        )
