import logging
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from coachbook.core.database import AsyncSessionLocal
from coachbook.models import NotificationEvent

logger = logging.getLogger(__name__)

REQUEST_CREATED = "request_created"
REQUEST_CONFIRMED = "request_confirmed"
REQUEST_DECLINED = "request_declined"
REQUEST_CANCELLED = "request_cancelled"
REQUEST_COMPLETED = "request_completed"
RESCHEDULE_REQUESTED = "reschedule_requested"
RESCHEDULE_CONFIRMED = "reschedule_confirmed"
RESCHEDULE_DECLINED = "reschedule_declined"

EVENT_TYPES = {
    REQUEST_CREATED,
    REQUEST_CONFIRMED,
    REQUEST_DECLINED,
    REQUEST_CANCELLED,
    REQUEST_COMPLETED,
    RESCHEDULE_REQUESTED,
    RESCHEDULE_CONFIRMED,
    RESCHEDULE_DECLINED,
}


class NotificationService:
    """Queue of coach-facing events, processed later into digests.

    Writes go through their own session so a failed enqueue never rolls
    back or poisons the caller's booking transaction.
    """

    def __init__(self, session_factory: Optional[Callable[[], Any]] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def enqueue(
        self,
        coach_id,
        event_type: str,
        booking_id,
        student_name: Optional[str] = None,
        student_email: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> bool:
        if event_type not in EVENT_TYPES:
            logger.error(f"Unknown notification event type: {event_type}")
            return False

        try:
            async with self.session_factory() as session:
                session.add(
                    NotificationEvent(
                        coach_id=coach_id,
                        event_type=event_type,
                        booking_id=booking_id,
                        student_name=student_name,
                        student_email=student_email,
                        event_metadata=metadata or {},
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to enqueue {event_type} for booking {booking_id}: {e}")
            return False

        logger.debug(f"Enqueued {event_type} for booking {booking_id}")
        return True
