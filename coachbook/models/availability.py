from sqlalchemy import Column, String, SmallInteger, ForeignKey, CheckConstraint, PrimaryKeyConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from coachbook.core.database import Base


class WeeklyAvailability(Base):
    """A coach's recurring open window; 0 = Sunday."""

    __tablename__ = "availability_rules"
    __table_args__ = (
        PrimaryKeyConstraint("coach_id", "day_of_week", "start_time", "end_time"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_day"),
        CheckConstraint("start_time < end_time", name="ck_availability_rules_window"),
    )

    coach_id = Column(UUID(as_uuid=True), ForeignKey("coaches.id"), nullable=False)
    day_of_week = Column(SmallInteger, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM, coach-local
    end_time = Column(String(5), nullable=False)

    coach = relationship("Coach", backref="availability_rules")

    def __repr__(self):
        return f"<WeeklyAvailability(coach={self.coach_id}, day={self.day_of_week}, {self.start_time}-{self.end_time})>"
