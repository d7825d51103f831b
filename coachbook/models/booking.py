from sqlalchemy import Column, String, Integer, JSON, DateTime, ForeignKey, Text, Index, CheckConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from enum import Enum
import uuid
from coachbook.core.database import Base

# Declared in the migration (needs btree_gist); named here so the store
# can recognise its violations.
NO_OVERLAP_CONSTRAINT = "booking_requests_no_overlap"
PENDING_RESCHEDULE_INDEX = "uq_booking_requests_pending_reschedule"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
TERMINAL_STATUSES = (
    BookingStatus.DECLINED.value,
    BookingStatus.CANCELLED.value,
    BookingStatus.COMPLETED.value,
)


class BookingRequest(Base):
    __tablename__ = "booking_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'declined', 'cancelled', 'completed')",
            name="ck_booking_requests_status",
        ),
        CheckConstraint(
            "scheduled_end IS NULL OR scheduled_start IS NULL OR scheduled_end > scheduled_start",
            name="ck_booking_requests_interval",
        ),
        Index(
            PENDING_RESCHEDULE_INDEX,
            "reschedule_of",
            unique=True,
            postgresql_where=text("status = 'pending' AND reschedule_of IS NOT NULL"),
        ),
        Index("idx_booking_requests_coach_status", "coach_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coach_id = Column(UUID(as_uuid=True), ForeignKey("coaches.id"), nullable=False)

    # Student Info
    student_name = Column(String, nullable=False)
    student_email = Column(String, nullable=False)
    student_timezone = Column(String, nullable=False, default="UTC")

    # Slot
    requested_times = Column(JSON, default=list)  # raw payload as submitted
    scheduled_start = Column(DateTime(timezone=True), nullable=True)
    scheduled_end = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, default=60)

    # Status
    status = Column(String, nullable=False, default=BookingStatus.PENDING.value)
    reschedule_of = Column(UUID(as_uuid=True), ForeignKey("booking_requests.id"), nullable=True)

    # Calendar sync
    calendar_event_id = Column(String, nullable=True)
    calendar_provider = Column(String, nullable=True)  # google
    meeting_url = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    coach = relationship("Coach", backref="booking_requests")

    def __repr__(self):
        return f"<BookingRequest(id={self.id}, coach={self.coach_id}, status={self.status})>"
