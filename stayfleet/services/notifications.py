"""Reservation notifications.

Notifications are sent only after the reservation transaction has
committed. Dispatch runs in background tasks; a failing dispatcher is
logged and never affects the reservation that triggered it.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Optional

from stayfleet.logging import get_logger
from stayfleet.models.reservation import Reservation

logger = get_logger(__name__)


class NotificationDispatcher(ABC):
    """Delivers reservation notifications to guests and administrators."""

    @abstractmethod
    async def notify_reservation_created(self, reservation: Reservation) -> None:
        """Tell the guest their booking was received and the admin a new one arrived."""
        pass

    @abstractmethod
    async def notify_reservation_confirmed(self, reservation: Reservation) -> None:
        """Tell the guest their booking was confirmed."""
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Dispatcher that records notifications in the application log."""

    def __init__(self, admin_email: str):
        self.admin_email = admin_email

    async def notify_reservation_created(self, reservation: Reservation) -> None:
        logger.info(
            "notification_sent",
            template="reservation_created",
            recipient="guest",
            user_id=reservation.user_id,
            reservation_id=reservation.id,
        )
        logger.info(
            "notification_sent",
            template="new_reservation_admin",
            recipient=self.admin_email,
            reservation_id=reservation.id,
            resource=str(reservation.resource),
        )

    async def notify_reservation_confirmed(self, reservation: Reservation) -> None:
        logger.info(
            "notification_sent",
            template="reservation_confirmed",
            recipient="guest",
            user_id=reservation.user_id,
            reservation_id=reservation.id,
        )


class NotificationScheduler:
    """Runs notification coroutines as fire-and-forget tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, coro: Awaitable[None], event: str, reservation_id: int) -> asyncio.Task:
        """
        Start a notification in the background.

        The task is referenced until it finishes. An exception raised by it
        is logged as ``notification_failed`` and otherwise dropped.
        """
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _on_done(done: asyncio.Task) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                return
            error: Optional[BaseException] = done.exception()
            if error is not None:
                logger.error(
                    "notification_failed",
                    notification=event,
                    reservation_id=reservation_id,
                    error=str(error),
                    error_type=type(error).__name__,
                )

        task.add_done_callback(_on_done)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled notification to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
