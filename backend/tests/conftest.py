import os
# Override settings before any package imports so tests never touch a real
# database file or the hosted sandbox.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JUDGE0_BASE_URL"] = "http://judge0.test"
os.environ["JUDGE0_API_KEY"] = ""
os.environ["JUDGE0_USE_RAPIDAPI"] = "false"
os.environ["JUDGE0_WAIT_FOR_RESULT"] = "true"
os.environ["MAX_ATTEMPTS_PER_ASSESSMENT"] = "3"

import asyncio
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from assessment_engine.components.attempts.errors import (
    AttemptNotFoundError,
    PersistenceUnavailableError,
)
from assessment_engine.components.attempts.schemas import AttemptRecord, ResultRecord
from assessment_engine.models.attempt import AttemptStatus
from assessment_engine.platform.database import create_engine_for, create_schema, session_factory


class FakeAttemptStore:
    """In-memory AttemptStore with per-operation call counters and scripted failures.

    ``failures`` maps an operation name to an exception (raised every call) or a
    list of exceptions (raised in order, then the call succeeds).
    """

    def __init__(self, failures: Optional[Dict[str, Any]] = None):
        self.rows: Dict[str, AttemptRecord] = {}
        self.results: List[ResultRecord] = []
        self.calls: Dict[str, int] = {}
        self.failures = dict(failures or {})
        self._next_id = 0
        self.delay = 0.0

    def _enter(self, op: str) -> None:
        self.calls[op] = self.calls.get(op, 0) + 1
        failure = self.failures.get(op)
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
        elif failure is not None:
            raise failure

    def _new_id(self) -> str:
        self._next_id += 1
        return f"attempt-{self._next_id}"

    def seed(self, student_id: str, assessment_id: str, status=AttemptStatus.IN_PROGRESS, attempt_id=None) -> str:
        record = AttemptRecord(
            id=attempt_id or self._new_id(),
            student_id=student_id,
            assessment_id=assessment_id,
            attempt_number=len(self.rows) + 1,
            status=status,
        )
        self.rows[record.id] = record
        return record.id

    async def start_attempt(self, student_id, assessment_id):
        if self.delay:
            await asyncio.sleep(self.delay)
        self._enter("start_attempt")
        return self.seed(student_id, assessment_id)

    async def find_attempt(self, student_id, assessment_id, status=None):
        self._enter("find_attempt")
        matches = [
            r
            for r in self.rows.values()
            if r.student_id == student_id
            and r.assessment_id == assessment_id
            and (status is None or r.status == status)
        ]
        if not matches:
            return None
        return max(matches, key=lambda r: (r.started_at, r.attempt_number)).id

    async def insert_attempt(self, record):
        self._enter("insert_attempt")
        record = record.model_copy(update={"id": record.id or self._new_id()})
        self.rows[record.id] = record
        return record.id

    async def complete_attempt(self, attempt_id, score, answers, time_spent_seconds):
        self._enter("complete_attempt")
        if attempt_id not in self.rows:
            raise AttemptNotFoundError(attempt_id)
        self.rows[attempt_id] = self.rows[attempt_id].model_copy(
            update={
                "status": AttemptStatus.COMPLETED,
                "score": score,
                "answers": dict(answers),
                "time_spent_seconds": time_spent_seconds,
            }
        )

    async def update_attempt_fields(self, attempt_id, fields):
        self._enter("update_attempt_fields")
        if attempt_id not in self.rows:
            raise AttemptNotFoundError(attempt_id)
        self.rows[attempt_id] = self.rows[attempt_id].model_copy(update=dict(fields))

    async def save_result(self, record):
        self._enter("save_result")
        self.results.append(record)


class DownAttemptStore(FakeAttemptStore):
    """Every operation fails as if the database were unreachable."""

    def _enter(self, op: str) -> None:
        self.calls[op] = self.calls.get(op, 0) + 1
        raise PersistenceUnavailableError("connection refused")


class StaticQuestionSource:
    def __init__(self, rows: List[Dict[str, Any]]):
        self.rows = rows
        self.calls = 0

    async def get_questions(self, assessment_id):
        self.calls += 1
        return list(self.rows)


@pytest.fixture
def fake_store():
    return FakeAttemptStore()


@pytest.fixture
def store_factory():
    return FakeAttemptStore


@pytest.fixture
def down_store():
    return DownAttemptStore()


@pytest.fixture
def question_source_factory():
    return StaticQuestionSource


@pytest_asyncio.fixture
async def session_maker():
    engine = create_engine_for(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_schema(engine)
    try:
        yield session_factory(engine)
    finally:
        await engine.dispose()
