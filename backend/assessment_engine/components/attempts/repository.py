"""Attempt store interface and its SQLAlchemy implementation."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...models.attempt import AssessmentAttempt, AssessmentResult, AttemptStatus
from ...platform.config import settings
from ...shared.utils import utcnow
from .errors import (
    AttemptNotFoundError,
    MaxAttemptsExceededError,
    PersistenceError,
    PersistenceUnavailableError,
    classify_integrity_error,
)
from .schemas import AttemptRecord, ResultRecord

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"status", "completed_at", "score", "answers", "time_spent_seconds"})


class AttemptStore(Protocol):
    """Persistence operations the attempt lifecycle depends on."""

    async def start_attempt(self, student_id: str, assessment_id: str) -> str:
        ...

    async def find_attempt(
        self, student_id: str, assessment_id: str, status: AttemptStatus | None = None
    ) -> Optional[str]:
        ...

    async def insert_attempt(self, record: AttemptRecord) -> str:
        ...

    async def complete_attempt(
        self, attempt_id: str, score: float, answers: Dict[str, Any], time_spent_seconds: int
    ) -> None:
        ...

    async def update_attempt_fields(self, attempt_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def save_result(self, record: ResultRecord) -> None:
        ...


def serialize_answers(answers: Dict[str, Any] | None) -> Dict[str, Any]:
    """Flat key -> value map with JSON-safe values."""
    out: Dict[str, Any] = {}
    for key, value in (answers or {}).items():
        if isinstance(value, (set, frozenset, tuple)):
            value = list(value)
        out[str(key)] = value
    return out


def deserialize_answers(raw: Any) -> Dict[str, Any]:
    """Read a stored answers payload; corrupt payloads come back empty."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("Stored answers payload is not valid JSON; treating as no answers")
            return {}
        if isinstance(parsed, dict):
            return parsed
    logger.warning("Stored answers payload has unexpected type %s; treating as no answers", type(raw).__name__)
    return {}


class SqlAttemptStore:
    """AttemptStore backed by the assessment_attempts table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], max_attempts: int | None = None):
        self.session_maker = session_maker
        self.max_attempts = max_attempts if max_attempts is not None else settings.MAX_ATTEMPTS_PER_ASSESSMENT

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as db:
            try:
                yield db
            except IntegrityError as exc:
                await db.rollback()
                raise classify_integrity_error(exc) from exc
            except OperationalError as exc:
                await db.rollback()
                raise PersistenceUnavailableError(str(exc)) from exc
            except SQLAlchemyError as exc:
                await db.rollback()
                raise PersistenceError(str(exc)) from exc

    async def start_attempt(self, student_id: str, assessment_id: str) -> str:
        async with self._session() as db:
            used, last_number = (
                await db.execute(
                    select(func.count(AssessmentAttempt.id), func.max(AssessmentAttempt.attempt_number)).where(
                        AssessmentAttempt.student_id == student_id,
                        AssessmentAttempt.assessment_id == assessment_id,
                    )
                )
            ).one()
            if self.max_attempts and used >= self.max_attempts:
                raise MaxAttemptsExceededError()
            attempt = AssessmentAttempt(
                student_id=student_id,
                assessment_id=assessment_id,
                attempt_number=(last_number or 0) + 1,
                status=AttemptStatus.IN_PROGRESS.value,
                started_at=utcnow(),
            )
            db.add(attempt)
            await db.commit()
            logger.info("Started attempt %s (#%d) for student %s", attempt.id, attempt.attempt_number, student_id)
            return attempt.id

    async def find_attempt(
        self, student_id: str, assessment_id: str, status: AttemptStatus | None = None
    ) -> Optional[str]:
        async with self._session() as db:
            query = select(AssessmentAttempt.id).where(
                AssessmentAttempt.student_id == student_id,
                AssessmentAttempt.assessment_id == assessment_id,
            )
            if status is not None:
                query = query.where(AssessmentAttempt.status == AttemptStatus(status).value)
            query = query.order_by(AssessmentAttempt.started_at.desc(), AssessmentAttempt.attempt_number.desc()).limit(1)
            return (await db.execute(query)).scalar_one_or_none()

    async def insert_attempt(self, record: AttemptRecord) -> str:
        async with self._session() as db:
            attempt = AssessmentAttempt(
                student_id=record.student_id,
                assessment_id=record.assessment_id,
                attempt_number=record.attempt_number,
                status=AttemptStatus(record.status).value,
                started_at=record.started_at,
                answers=serialize_answers(record.answers) if record.answers else None,
            )
            if record.id:
                attempt.id = record.id
            db.add(attempt)
            await db.commit()
            return attempt.id

    async def complete_attempt(
        self, attempt_id: str, score: float, answers: Dict[str, Any], time_spent_seconds: int
    ) -> None:
        async with self._session() as db:
            attempt = await db.get(AssessmentAttempt, attempt_id)
            if attempt is None:
                raise AttemptNotFoundError(f"Attempt {attempt_id} not found")
            attempt.status = AttemptStatus.COMPLETED.value
            attempt.completed_at = utcnow()
            attempt.score = score
            attempt.answers = serialize_answers(answers)
            attempt.time_spent_seconds = time_spent_seconds
            await db.commit()

    async def update_attempt_fields(self, attempt_id: str, fields: Dict[str, Any]) -> None:
        values = {k: v for k, v in (fields or {}).items() if k in UPDATABLE_FIELDS}
        if not values:
            raise ValueError("No updatable attempt fields supplied")
        if "status" in values:
            values["status"] = AttemptStatus(values["status"]).value
        if "answers" in values:
            values["answers"] = serialize_answers(values["answers"])
        async with self._session() as db:
            result = await db.execute(
                update(AssessmentAttempt).where(AssessmentAttempt.id == attempt_id).values(**values)
            )
            if not result.rowcount:
                await db.rollback()
                raise AttemptNotFoundError(f"Attempt {attempt_id} not found")
            await db.commit()

    async def save_result(self, record: ResultRecord) -> None:
        async with self._session() as db:
            db.add(
                AssessmentResult(
                    attempt_id=record.attempt_id,
                    assessment_id=record.assessment_id,
                    student_id=record.student_id,
                    score=record.score,
                    total_points=record.total_points,
                    answers=serialize_answers(record.answers),
                    feedback=record.feedback,
                )
            )
            await db.commit()

    async def get_attempt(self, attempt_id: str) -> Optional[AttemptRecord]:
        async with self._session() as db:
            attempt = await db.get(AssessmentAttempt, attempt_id)
            if attempt is None:
                return None
            return AttemptRecord(
                id=attempt.id,
                assessment_id=attempt.assessment_id,
                student_id=attempt.student_id,
                attempt_number=attempt.attempt_number,
                status=attempt.status,
                started_at=attempt.started_at,
                completed_at=attempt.completed_at,
                score=attempt.score,
                answers=deserialize_answers(attempt.answers),
                time_spent_seconds=attempt.time_spent_seconds,
            )
