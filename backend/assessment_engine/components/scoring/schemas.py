"""Pydantic models describing the scoring result payload."""

from __future__ import annotations

import enum
from typing import Dict, List

from pydantic import BaseModel, Field


class Verdict(str, enum.Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"
    UNGRADED = "ungraded"


class ScoreResult(BaseModel):
    score_percent: int = Field(ge=0, le=100)
    total_points: int = 0
    earned_points: int = 0
    # Answered essay/coding/file-upload items awaiting manual review.
    pending_review: List[str] = []
    verdicts: Dict[str, Verdict] = {}
