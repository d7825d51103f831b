from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from coachbook.models import (
    ACTIVE_STATUSES,
    BookingRequest,
    BookingStatus,
    Coach,
    GoogleConnection,
    WeeklyAvailability,
)
from coachbook.models.booking import NO_OVERLAP_CONSTRAINT, PENDING_RESCHEDULE_INDEX
from coachbook.services.results import DuplicateRescheduleError, SlotTakenError, StatusChangedError
from typing import Optional, List
import logging
import uuid

logger = logging.getLogger(__name__)

EXCLUSION_VIOLATION = "23P01"
UNIQUE_VIOLATION = "23505"


def _as_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def classify_integrity_error(error: IntegrityError) -> Optional[Exception]:
    """Map constraint violations we own to their booking errors.

    Returns ``None`` for anything else so the caller re-raises the
    original database error.
    """
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    message = str(orig)

    if code == EXCLUSION_VIOLATION or NO_OVERLAP_CONSTRAINT in message or "exclusion" in message.lower():
        return SlotTakenError(message)
    if PENDING_RESCHEDULE_INDEX in message or (
        code == UNIQUE_VIOLATION and "reschedule_of" in message
    ):
        return DuplicateRescheduleError(message)
    return None


class DBService:
    """
    Service for database operations
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ==================== COACHES ====================

    async def get_coach(self, coach_id: str) -> Optional[Coach]:
        """Get coach by ID"""
        c_uuid = _as_uuid(coach_id)
        if c_uuid is None:
            return None

        result = await self.session.execute(
            select(Coach).where(Coach.id == c_uuid)
        )
        return result.scalar_one_or_none()

    async def get_availability_rules(self, coach_id: str) -> List[WeeklyAvailability]:
        """Get a coach's weekly availability windows"""
        c_uuid = _as_uuid(coach_id)
        if c_uuid is None:
            return []

        result = await self.session.execute(
            select(WeeklyAvailability)
            .where(WeeklyAvailability.coach_id == c_uuid)
            .order_by(WeeklyAvailability.day_of_week, WeeklyAvailability.start_time)
        )
        return result.scalars().all()

    # ==================== GOOGLE CONNECTIONS ====================

    async def get_google_connection(self, coach_id: str) -> Optional[GoogleConnection]:
        c_uuid = _as_uuid(coach_id)
        if c_uuid is None:
            return None

        result = await self.session.execute(
            select(GoogleConnection).where(GoogleConnection.coach_id == c_uuid)
        )
        return result.scalar_one_or_none()

    async def update_google_connection(self, coach_id: str, data: dict) -> None:
        """Update token fields / reconnect flag for a coach's Google grant."""
        c_uuid = _as_uuid(coach_id)
        if c_uuid is None:
            return
        await self.session.execute(
            update(GoogleConnection)
            .where(GoogleConnection.coach_id == c_uuid)
            .values(**data)
        )
        await self.session.commit()

    # ==================== BOOKING REQUESTS ====================

    async def get_booking(self, booking_id: str) -> Optional[BookingRequest]:
        """Get booking request by ID"""
        b_uuid = _as_uuid(booking_id)
        if b_uuid is None:
            return None

        result = await self.session.execute(
            select(BookingRequest).where(BookingRequest.id == b_uuid)
        )
        return result.scalar_one_or_none()

    async def get_active_bookings(
        self,
        coach_id: str,
        exclude_booking_id: Optional[str] = None,
    ) -> List[BookingRequest]:
        """Get a coach's pending and confirmed bookings (the occupied time)."""
        c_uuid = _as_uuid(coach_id)
        if c_uuid is None:
            return []

        query = select(BookingRequest).where(
            BookingRequest.coach_id == c_uuid,
            BookingRequest.status.in_(ACTIVE_STATUSES),
        )
        excluded = _as_uuid(exclude_booking_id) if exclude_booking_id else None
        if excluded is not None:
            query = query.where(BookingRequest.id != excluded)

        result = await self.session.execute(query.order_by(BookingRequest.scheduled_start))
        return result.scalars().all()

    async def get_pending_reschedule(self, original_booking_id: str) -> Optional[BookingRequest]:
        """Get the pending reschedule request for an original booking, if any."""
        b_uuid = _as_uuid(original_booking_id)
        if b_uuid is None:
            return None

        result = await self.session.execute(
            select(BookingRequest)
            .where(
                BookingRequest.reschedule_of == b_uuid,
                BookingRequest.status == BookingStatus.PENDING.value,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def insert_booking(self, data: dict) -> BookingRequest:
        """Insert a booking request; the row holds its slot immediately.

        Raises ``SlotTakenError`` when the exclusion constraint rejects the
        interval and ``DuplicateRescheduleError`` when another pending
        reschedule exists for the same original booking.
        """
        booking = BookingRequest(**data)
        self.session.add(booking)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            mapped = classify_integrity_error(e)
            if mapped is None:
                raise
            logger.info(f"Booking insert rejected for coach {data.get('coach_id')}: {type(mapped).__name__}")
            raise mapped from e
        await self.session.refresh(booking)
        return booking

    async def transition_status(
        self,
        booking_id: str,
        expected_status: str,
        data: dict,
    ) -> BookingRequest:
        """Single-row conditional update guarded on the current status.

        Raises ``StatusChangedError`` when the row is gone or no longer in
        ``expected_status``, and ``SlotTakenError`` if moving the row back
        into an active status collides with another booking.
        """
        b_uuid = _as_uuid(booking_id)
        if b_uuid is None:
            raise StatusChangedError(f"Booking {booking_id} not found")

        statement = (
            update(BookingRequest)
            .where(
                BookingRequest.id == b_uuid,
                BookingRequest.status == expected_status,
            )
            .values(**data)
            .returning(BookingRequest.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(statement)
            updated_id = result.scalar_one_or_none()
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            mapped = classify_integrity_error(e)
            if mapped is None:
                raise
            raise mapped from e

        if updated_id is None:
            raise StatusChangedError(
                f"Booking {booking_id} is no longer {expected_status}"
            )

        result = await self.session.execute(
            select(BookingRequest)
            .where(BookingRequest.id == updated_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def update_booking(
        self,
        booking_id: str,
        data: dict
    ) -> Optional[BookingRequest]:
        """Update non-status booking fields (calendar ids, meeting link)"""
        booking = await self.get_booking(booking_id)
        if booking:
            for key, value in data.items():
                setattr(booking, key, value)
            await self.session.commit()
            await self.session.refresh(booking)
        return booking
