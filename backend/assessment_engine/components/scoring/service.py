"""Score computation over a whole question set.

Ungraded kinds (essay, coding, file-upload) still count toward total points
but earn nothing until a reviewer grades them, so assessments containing them
display a lower automatic score.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping

from ..questions.schemas import Question
from .normalizer import grade_answer, is_answered
from .schemas import ScoreResult, Verdict

logger = logging.getLogger(__name__)


def score_percent(earned_points: int, total_points: int) -> int:
    """Half-up rounded percentage; 0 when there is nothing to score."""
    if total_points <= 0:
        return 0
    return (earned_points * 200 + total_points) // (2 * total_points)


def score(questions: Iterable[Question], answers: Mapping[str, Any] | None) -> ScoreResult:
    """Fold all answers into a ScoreResult."""
    answers = answers or {}
    total_points = 0
    earned_points = 0
    verdicts: Dict[str, Verdict] = {}
    pending_review: List[str] = []

    for question in questions:
        total_points += question.points
        verdict = grade_answer(question, answers)
        verdicts[question.id] = verdict
        if verdict == Verdict.CORRECT:
            earned_points += question.points
        elif verdict == Verdict.UNGRADED and is_answered(question, answers):
            pending_review.append(question.id)

    result = ScoreResult(
        score_percent=score_percent(earned_points, total_points),
        total_points=total_points,
        earned_points=earned_points,
        pending_review=pending_review,
        verdicts=verdicts,
    )
    logger.info(
        "Scored %d questions: %d/%d points (%d%%), %d pending review",
        len(verdicts),
        earned_points,
        total_points,
        result.score_percent,
        len(pending_review),
    )
    return result
