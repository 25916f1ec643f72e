from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from ...models.attempt import AttemptStatus
from ...shared.utils import utcnow
from .fallback import DEFAULT_STRATEGIES, AttemptStrategy, run_strategies
from .repository import AttemptStore
from .schemas import AttemptHandle, ResultRecord

logger = logging.getLogger(__name__)


class AttemptLifecycleManager:
    """Opens and closes attempts against an unreliable store."""

    def __init__(self, store: AttemptStore, strategies: Sequence[AttemptStrategy] = DEFAULT_STRATEGIES):
        self.store = store
        self.strategies = strategies

    async def open(self, student_id: str, assessment_id: str) -> AttemptHandle:
        """Return a handle for the student's attempt; never raises on store failure."""
        return await run_strategies(self.store, student_id, assessment_id, self.strategies)

    async def complete(
        self,
        handle: AttemptHandle,
        score: float,
        answers: Dict[str, Any],
        time_spent_seconds: int,
        *,
        total_points: Optional[int] = None,
    ) -> bool:
        """Persist the final score. Returns True when the attempt row was updated."""
        attempt_id = handle.attempt_id
        stored = False
        try:
            await self.store.complete_attempt(attempt_id, score, answers, time_spent_seconds)
            stored = True
        except Exception as exc:
            self._log_failure(handle, "complete_attempt", exc)

        if not stored:
            try:
                await self.store.update_attempt_fields(
                    attempt_id,
                    {
                        "status": AttemptStatus.COMPLETED,
                        "completed_at": utcnow(),
                        "score": score,
                        "answers": answers,
                        "time_spent_seconds": time_spent_seconds,
                    },
                )
                stored = True
            except Exception as exc:
                self._log_failure(handle, "update_attempt_fields", exc)

        if not stored:
            if handle.durable:
                logger.error("Attempt %s could not be completed; score %s was not persisted", attempt_id, score)
            else:
                logger.debug("Non-durable attempt %s finished with score %s", attempt_id, score)
            return False

        logger.info("Completed attempt %s with score %s", attempt_id, score)
        if total_points is not None:
            await self._save_result(handle, score, total_points, answers)
        return True

    async def _save_result(self, handle: AttemptHandle, score: float, total_points: int, answers: Dict[str, Any]):
        # Read-side copy only; the attempt row is authoritative.
        try:
            await self.store.save_result(
                ResultRecord(
                    attempt_id=handle.attempt_id,
                    assessment_id=handle.assessment_id,
                    student_id=handle.student_id,
                    score=score,
                    total_points=total_points,
                    answers=answers,
                )
            )
        except Exception as exc:
            logger.warning("Result row for attempt %s was not written: %s", handle.attempt_id, exc)

    def _log_failure(self, handle: AttemptHandle, operation: str, exc: Exception) -> None:
        if handle.durable:
            logger.warning("%s failed for attempt %s: %s", operation, handle.attempt_id, exc)
        else:
            logger.debug("%s failed for non-durable attempt %s: %s", operation, handle.attempt_id, exc)
