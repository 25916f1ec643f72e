"""Attempt records exchanged with the persistence layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ...models.attempt import AttemptStatus
from ...shared.utils import utcnow


class AttemptRecord(BaseModel):
    id: Optional[str] = None
    assessment_id: str
    student_id: str
    attempt_number: int = 1
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    answers: Optional[Dict[str, Any]] = None
    time_spent_seconds: Optional[int] = None


class AttemptHandle(BaseModel):
    """The session's view of its attempt, durable or not."""

    attempt_id: str
    student_id: str
    assessment_id: str
    durable: bool = True
    # Name of the fallback strategy that produced the id ("local" when none did).
    strategy: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS


class ResultRecord(BaseModel):
    attempt_id: str
    assessment_id: str
    student_id: str
    score: float
    total_points: int
    answers: Dict[str, Any] = {}
    feedback: Optional[str] = None
