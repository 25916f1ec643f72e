"""Wiring for a configured assessment engine: logging, store, sandbox, sessions."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .components.attempts.repository import SqlAttemptStore
from .components.attempts.service import AttemptLifecycleManager
from .components.execution.service import Judge0Client
from .components.questions.loader import QuestionSource
from .components.session.service import AssessmentSession
from .platform.config import settings
from .platform.database import create_schema, get_engine, session_factory
from .platform.logging import setup_logging

# Set up logging
logger = setup_logging()


class AssessmentEngine:
    """Shared collaborators for every session in this process."""

    def __init__(self, engine: AsyncEngine | None = None, executor: Judge0Client | None = None):
        self.db_engine = engine or get_engine()
        self.store = SqlAttemptStore(session_factory(self.db_engine))
        self.lifecycle = AttemptLifecycleManager(self.store)
        self.executor = executor or Judge0Client()

    async def init_db(self) -> None:
        await create_schema(self.db_engine)
        logger.info("Attempt store ready | env=%s", settings.DEPLOYMENT_ENV)

    async def check_sandbox(self) -> Dict[str, Any]:
        status = await self.executor.check_connection()
        if not status.get("success"):
            logger.warning("Code execution sandbox unavailable: %s", status.get("message"))
        return status

    def new_session(
        self,
        *,
        assessment_id: str,
        student_id: str,
        question_source: QuestionSource,
        duration: str | int | None = None,
        on_complete: Optional[Callable[[int, Dict[str, Any]], Any]] = None,
        on_tick: Optional[Callable[[int], Any]] = None,
    ) -> AssessmentSession:
        return AssessmentSession(
            assessment_id=assessment_id,
            student_id=student_id,
            question_source=question_source,
            lifecycle=self.lifecycle,
            executor=self.executor,
            duration=duration,
            on_complete=on_complete,
            on_tick=on_tick,
        )

    async def close(self) -> None:
        await self.db_engine.dispose()
