from sqlalchemy import Column, String, JSON, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
import uuid
from coachbook.core.database import Base
from coachbook.models.booking import _utcnow


class NotificationEvent(Base):
    __tablename__ = "notification_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coach_id = Column(UUID(as_uuid=True), ForeignKey("coaches.id"), nullable=False)
    event_type = Column(String, nullable=False)
    booking_id = Column(UUID(as_uuid=True), ForeignKey("booking_requests.id"), nullable=True)
    student_name = Column(String, nullable=True)
    student_email = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, default=dict)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<NotificationEvent(id={self.id}, type={self.event_type})>"
