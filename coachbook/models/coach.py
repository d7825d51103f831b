from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from coachbook.core.database import Base
from coachbook.models.booking import _utcnow


class Coach(Base):
    __tablename__ = "coaches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    slug = Column(String, unique=True, nullable=False)

    # Scheduling settings
    timezone = Column(String, nullable=False, default="UTC")
    min_notice_minutes = Column(Integer, nullable=False, default=0)
    buffer_minutes = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Coach(id={self.id}, name={self.name})>"


class GoogleConnection(Base):
    __tablename__ = "google_connections"

    coach_id = Column(UUID(as_uuid=True), ForeignKey("coaches.id"), primary_key=True)
    google_email = Column(String, nullable=True)
    refresh_token = Column(Text, nullable=False)  # Fernet-encrypted
    access_token = Column(Text, nullable=True)
    token_expiry = Column(DateTime(timezone=True), nullable=True)

    # Set when Google rejects the grant; cleared by a fresh OAuth connect
    needs_reconnect = Column(Boolean, nullable=False, default=False)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    coach = relationship("Coach", backref="google_connection", uselist=False)

    def __repr__(self):
        return f"<GoogleConnection(coach={self.coach_id}, email={self.google_email})>"
