"""
Assessment session orchestration.

One ``AssessmentSession`` drives one student through one timed assessment:
load questions, start the clock and the attempt, collect answers, run coding
answers in the sandbox, and on submit (manual or on expiry) score the answers,
persist the attempt and report the score upward. All mutable state lives in
the session's own ``SessionState`` so concurrent sessions never share flags.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from ...models.attempt import AttemptStatus
from ...platform.config import settings
from ...platform.session_context import reset_session_id, set_session_id
from ...shared.utils import format_time, parse_duration_seconds, utcnow
from ..attempts.schemas import AttemptHandle
from ..attempts.service import AttemptLifecycleManager
from ..execution.languages import default_code_for
from ..execution.schemas import ExecutionResult
from ..execution.service import ExecutionError, ExecutionValidationError, Judge0Client
from ..questions.loader import QuestionSource, load_questions
from ..questions.schemas import CodingQuestion, FillInBlanksQuestion, Question, blank_answer_key
from ..scoring.normalizer import is_answered, normalize_answer_value
from ..scoring.schemas import ScoreResult
from ..scoring.service import score
from .timer import TimerController, maybe_await

logger = logging.getLogger(__name__)

CompleteCallback = Callable[[int, Dict[str, Any]], Any]


class SessionError(RuntimeError):
    """Base class for session orchestration failures."""


class NoQuestionsError(SessionError):
    """Raised when an assessment has no loadable questions."""


class InvalidSessionStateError(SessionError):
    """Raised when an operation is not allowed in the session's current phase."""


class SessionPhase(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    DONE = "done"


class SubmitTrigger(str, enum.Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"


@dataclass
class SessionState:
    phase: SessionPhase = SessionPhase.LOADING
    questions: List[Question] = field(default_factory=list)
    current_index: int = 0
    answers: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, str] = field(default_factory=dict)
    execution_results: Dict[str, ExecutionResult] = field(default_factory=dict)
    duration_seconds: int = 0
    time_remaining: int = 0
    is_submitting: bool = False
    show_confirm_submit: bool = False
    started_at: Optional[datetime] = None
    handle: Optional[AttemptHandle] = None
    result: Optional[ScoreResult] = None
    submit_trigger: Optional[SubmitTrigger] = None


class AssessmentSession:
    def __init__(
        self,
        *,
        assessment_id: str,
        student_id: str,
        question_source: QuestionSource,
        lifecycle: AttemptLifecycleManager,
        executor: Judge0Client | None = None,
        duration: str | int | None = None,
        timer: TimerController | None = None,
        on_complete: CompleteCallback | None = None,
        on_tick: Callable[[int], Any] | None = None,
        session_id: str | None = None,
    ):
        self.assessment_id = assessment_id
        self.student_id = student_id
        self.question_source = question_source
        self.lifecycle = lifecycle
        self.executor = executor
        self.duration = duration
        self.timer = timer or TimerController()
        self.on_complete = on_complete
        self.on_tick = on_tick
        self.session_id = session_id or uuid.uuid4().hex
        self.state = SessionState()
        self._open_task: Optional[asyncio.Task] = None

    @contextmanager
    def _bound(self) -> Iterator[None]:
        token = set_session_id(self.session_id)
        try:
            yield
        finally:
            reset_session_id(token)

    def _require_phase(self, *phases: SessionPhase) -> None:
        if self.state.phase not in phases:
            raise InvalidSessionStateError(
                f"Operation not allowed while session is {self.state.phase.value}"
            )

    # Loading / starting

    async def load(self) -> List[Question]:
        self._require_phase(SessionPhase.LOADING)
        with self._bound():
            questions = await load_questions(self.question_source, self.assessment_id)
            if not questions:
                raise NoQuestionsError(f"Assessment {self.assessment_id} has no questions")

            state = self.state
            state.questions = questions
            state.current_index = 0
            state.answers = {}
            for question in questions:
                if isinstance(question, CodingQuestion):
                    template = question.code_template or default_code_for(question.code_language)
                    if template:
                        state.answers[question.id] = template
            state.duration_seconds = parse_duration_seconds(
                self.duration, settings.ASSESSMENT_DEFAULT_DURATION_MINUTES
            )
            state.time_remaining = state.duration_seconds
            state.phase = SessionPhase.READY
            logger.info(
                "Loaded %d questions for assessment %s (duration=%s)",
                len(questions),
                self.assessment_id,
                format_time(state.duration_seconds),
            )
            return questions

    async def start(self) -> None:
        """Open the attempt in the background and start the countdown."""
        self._require_phase(SessionPhase.READY)
        with self._bound():
            self.state.phase = SessionPhase.IN_PROGRESS
            self.state.started_at = utcnow()
            self._open_task = asyncio.create_task(self._open_attempt())
            self.timer.start(
                self.state.duration_seconds,
                on_tick=self._handle_tick,
                on_expire=self._handle_expire,
                guard=lambda: self.state.is_submitting,
            )

    async def _open_attempt(self) -> AttemptHandle:
        handle = await self.lifecycle.open(self.student_id, self.assessment_id)
        self.state.handle = handle
        return handle

    async def _handle_tick(self, remaining: int) -> None:
        self.state.time_remaining = remaining
        await maybe_await(self.on_tick, remaining)

    async def _handle_expire(self) -> None:
        logger.info("Time is up for assessment %s; submitting", self.assessment_id)
        await self.submit(SubmitTrigger.TIMEOUT)

    # Navigation

    @property
    def current_question(self) -> Optional[Question]:
        questions = self.state.questions
        if not questions:
            return None
        return questions[self.state.current_index]

    @property
    def formatted_time_remaining(self) -> str:
        return format_time(self.state.time_remaining)

    def next(self) -> int:
        if self.state.current_index < len(self.state.questions) - 1:
            self.state.current_index += 1
        return self.state.current_index

    def previous(self) -> int:
        if self.state.current_index > 0:
            self.state.current_index -= 1
        return self.state.current_index

    def go_to(self, index: int) -> int:
        if not 0 <= index < len(self.state.questions):
            raise IndexError(f"Question index {index} out of range")
        self.state.current_index = index
        return index

    # Answers

    def _question(self, question_id: str) -> Question:
        for question in self.state.questions:
            if question.id == question_id:
                return question
        raise KeyError(question_id)

    def _store(self, key: str, value: Any) -> None:
        normalized = normalize_answer_value(value)
        if normalized is None:
            self.state.answers.pop(key, None)
        else:
            self.state.answers[key] = normalized

    def set_answer(self, question_id: str, value: Any) -> None:
        self._require_phase(SessionPhase.READY, SessionPhase.IN_PROGRESS)
        self._question(question_id)
        self._store(question_id, value)

    def set_blank(self, question_id: str, blank_index: int, value: Any) -> None:
        self._require_phase(SessionPhase.READY, SessionPhase.IN_PROGRESS)
        question = self._question(question_id)
        if not isinstance(question, FillInBlanksQuestion):
            raise InvalidSessionStateError(f"Question {question_id} has no blanks")
        self._store(blank_answer_key(question_id, blank_index), value)

    def set_stdin(self, question_id: str, text: str | None) -> None:
        self._question(question_id)
        if text:
            self.state.inputs[question_id] = text
        else:
            self.state.inputs.pop(question_id, None)

    async def run_code(self, question_id: str | None = None) -> ExecutionResult:
        """Run a coding answer; the result lands in that question's slot."""
        self._require_phase(SessionPhase.READY, SessionPhase.IN_PROGRESS)
        if question_id is None:
            question = self.current_question
        else:
            question = self._question(question_id)
        if not isinstance(question, CodingQuestion):
            raise InvalidSessionStateError("Only coding questions can be run")
        if self.executor is None:
            raise SessionError("No code executor configured for this session")

        qid = question.id
        results = self.state.execution_results
        results[qid] = ExecutionResult.running()
        with self._bound():
            try:
                result = await self.executor.run(
                    question.code_language, self.state.answers.get(qid), self.state.inputs.get(qid, "")
                )
            except ExecutionValidationError as exc:
                result = ExecutionResult.failed(str(exc))
            except ExecutionError as exc:
                logger.warning("Code run for question %s failed: %s", qid, exc)
                result = ExecutionResult.failed(str(exc))
            except Exception:
                logger.exception("Unexpected error running code for question %s", qid)
                result = ExecutionResult.failed("Code execution failed. Please try again.")
        results[qid] = result
        return result

    # Submission

    def submission_summary(self) -> Dict[str, int]:
        total = len(self.state.questions)
        answered = sum(1 for q in self.state.questions if is_answered(q, self.state.answers))
        return {"answered": answered, "unanswered": total - answered, "total": total}

    def request_submit(self) -> Dict[str, int]:
        """Show the confirmation warning; nothing is submitted yet."""
        self._require_phase(SessionPhase.IN_PROGRESS)
        self.state.show_confirm_submit = True
        return self.submission_summary()

    def cancel_submit(self) -> None:
        self.state.show_confirm_submit = False

    async def confirm_submit(self) -> Optional[ScoreResult]:
        self.state.show_confirm_submit = False
        return await self.submit(SubmitTrigger.MANUAL)

    async def submit(self, trigger: SubmitTrigger = SubmitTrigger.MANUAL) -> Optional[ScoreResult]:
        """Score and persist the attempt. Returns None when a submit is already underway."""
        state = self.state
        if state.is_submitting or state.phase == SessionPhase.DONE:
            logger.info("Ignoring %s submit for session %s; already submitting", trigger.value, self.session_id)
            return None
        self._require_phase(SessionPhase.IN_PROGRESS)
        state.is_submitting = True
        state.phase = SessionPhase.SUBMITTING
        state.submit_trigger = trigger
        self.timer.stop()
        state.time_remaining = self.timer.remaining

        with self._bound():
            handle = state.handle
            if self._open_task is not None:
                handle = await self._open_task

            answers = dict(state.answers)
            result = score(state.questions, answers)
            time_spent = max(0, state.duration_seconds - state.time_remaining)

            persisted = await self.lifecycle.complete(
                handle,
                result.score_percent,
                answers,
                time_spent,
                total_points=result.total_points,
            )
            if persisted or trigger == SubmitTrigger.MANUAL:
                handle.status = AttemptStatus.COMPLETED
            else:
                handle.status = AttemptStatus.ABANDONED
            logger.info(
                "Submitted attempt %s (%s): score=%d%%, persisted=%s",
                handle.attempt_id,
                trigger.value,
                result.score_percent,
                persisted,
            )

            state.result = result
            try:
                await maybe_await(self.on_complete, result.score_percent, answers)
            except Exception:
                logger.exception("Completion callback failed for attempt %s", handle.attempt_id)
            finally:
                state.phase = SessionPhase.DONE
        return result

    async def close(self) -> None:
        """Stop the clock without submitting; the attempt stays in progress."""
        self.timer.stop()
        if self._open_task is not None and not self._open_task.done():
            await self._open_task
