import enum
import uuid

from sqlalchemy import Column, Integer, String, DateTime, JSON, Float, UniqueConstraint
from sqlalchemy.sql import func

from ..platform.database import Base


class AttemptStatus(str, enum.Enum):
    CREATED = "created"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


def _new_attempt_id() -> str:
    return str(uuid.uuid4())


class AssessmentAttempt(Base):
    __tablename__ = "assessment_attempts"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "assessment_id", "attempt_number", name="uq_attempt_student_assessment_number"
        ),
    )

    id = Column(String(64), primary_key=True, default=_new_attempt_id)
    assessment_id = Column(String(64), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True))
    score = Column(Float)
    answers = Column(JSON)
    time_spent_seconds = Column(Integer)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class AssessmentResult(Base):
    """Compatibility copy of a completed attempt's score for reporting screens."""

    __tablename__ = "assessment_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(String(64), nullable=False, index=True)
    assessment_id = Column(String(64), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    score = Column(Float)
    total_points = Column(Integer)
    answers = Column(JSON)
    feedback = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
