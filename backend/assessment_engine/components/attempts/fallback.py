"""
Ordered strategy chain used to open an attempt.

Each strategy returns ``Ok(attempt_id)`` when it produced a usable id,
``Retry`` to hand over to the next strategy, or ``Fail`` when the store is
unreachable and no later strategy can succeed. The driver falls back to a
locally generated, non-durable id when nothing produced one.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from ...models.attempt import AttemptStatus
from ...platform.config import settings
from .errors import (
    ConstraintViolationError,
    PersistenceError,
    PersistenceUnavailableError,
    UniqueViolationError,
    is_max_attempts_error,
)
from .repository import AttemptStore
from .schemas import AttemptHandle, AttemptRecord

logger = logging.getLogger(__name__)

LOCAL_STRATEGY = "local"
_LOCAL_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class Ok:
    attempt_id: str


@dataclass(frozen=True)
class Retry:
    reason: str = ""


@dataclass(frozen=True)
class Fail:
    reason: str = ""


Outcome = Union[Ok, Retry, Fail]


@dataclass
class OpenContext:
    """Inputs shared by every strategy plus the last creation failure seen."""

    student_id: str
    assessment_id: str
    last_error: Optional[BaseException] = None


def local_attempt_id() -> str:
    suffix = "".join(secrets.choice(_LOCAL_ID_ALPHABET) for _ in range(9))
    return f"{settings.LOCAL_ATTEMPT_ID_PREFIX}{int(time.time() * 1000)}_{suffix}"


def is_local_attempt_id(attempt_id: str | None) -> bool:
    return bool(attempt_id) and str(attempt_id).startswith(settings.LOCAL_ATTEMPT_ID_PREFIX)


class AttemptStrategy:
    name = "base"

    async def attempt(self, store: AttemptStore, ctx: OpenContext) -> Outcome:
        raise NotImplementedError


class PrimaryStart(AttemptStrategy):
    """Server-side start; enforces the attempt limit."""

    name = "primary"

    async def attempt(self, store, ctx):
        try:
            return Ok(await store.start_attempt(ctx.student_id, ctx.assessment_id))
        except PersistenceUnavailableError as exc:
            return Fail(str(exc))
        except PersistenceError as exc:
            ctx.last_error = exc
            return Retry(str(exc))


class AdoptInProgress(AttemptStrategy):
    """Reuse the most recent in-progress attempt for the pair."""

    name = "adopt_in_progress"

    async def attempt(self, store, ctx):
        try:
            found = await store.find_attempt(ctx.student_id, ctx.assessment_id, AttemptStatus.IN_PROGRESS)
        except PersistenceUnavailableError as exc:
            return Fail(str(exc))
        except PersistenceError as exc:
            return Retry(str(exc))
        return Ok(found) if found else Retry("no in-progress attempt")


class AdoptLatestOnMaxAttempts(AttemptStrategy):
    """When the limit is exhausted, reuse the latest attempt of any status."""

    name = "adopt_latest"

    async def attempt(self, store, ctx):
        if not is_max_attempts_error(ctx.last_error):
            return Retry("attempt limit not reached")
        try:
            found = await store.find_attempt(ctx.student_id, ctx.assessment_id)
        except PersistenceUnavailableError as exc:
            return Fail(str(exc))
        except PersistenceError as exc:
            return Retry(str(exc))
        return Ok(found) if found else Retry("no previous attempt")


class DirectInsert(AttemptStrategy):
    """Insert a first attempt row and let the store assign its id."""

    name = "direct_insert"

    async def attempt(self, store, ctx):
        record = AttemptRecord(
            student_id=ctx.student_id,
            assessment_id=ctx.assessment_id,
            attempt_number=1,
            status=AttemptStatus.IN_PROGRESS,
        )
        try:
            return Ok(await store.insert_attempt(record))
        except PersistenceUnavailableError as exc:
            return Fail(str(exc))
        except PersistenceError as exc:
            ctx.last_error = exc
            return Retry(str(exc))


class ClientIdInsert(AttemptStrategy):
    """Repeat the insert with a client-generated id after a constraint violation."""

    name = "client_id_insert"

    async def attempt(self, store, ctx):
        error = ctx.last_error
        if not isinstance(error, ConstraintViolationError) or isinstance(error, UniqueViolationError):
            return Retry("no constraint violation to recover from")
        record = AttemptRecord(
            id=str(uuid.uuid4()),
            student_id=ctx.student_id,
            assessment_id=ctx.assessment_id,
            attempt_number=1,
            status=AttemptStatus.IN_PROGRESS,
        )
        try:
            return Ok(await store.insert_attempt(record))
        except PersistenceUnavailableError as exc:
            return Fail(str(exc))
        except PersistenceError as exc:
            ctx.last_error = exc
            return Retry(str(exc))


class AdoptExistingOnConflict(AttemptStrategy):
    """After a uniqueness conflict, the row exists: look it up and reuse it."""

    name = "adopt_existing"

    async def attempt(self, store, ctx):
        if not isinstance(ctx.last_error, UniqueViolationError):
            return Retry("no uniqueness conflict")
        try:
            found = await store.find_attempt(ctx.student_id, ctx.assessment_id)
        except PersistenceUnavailableError as exc:
            return Fail(str(exc))
        except PersistenceError as exc:
            return Retry(str(exc))
        return Ok(found) if found else Retry("conflicting row not found")


DEFAULT_STRATEGIES: Sequence[AttemptStrategy] = (
    PrimaryStart(),
    AdoptInProgress(),
    AdoptLatestOnMaxAttempts(),
    DirectInsert(),
    ClientIdInsert(),
    AdoptExistingOnConflict(),
)


async def run_strategies(
    store: AttemptStore,
    student_id: str,
    assessment_id: str,
    strategies: Sequence[AttemptStrategy] = DEFAULT_STRATEGIES,
) -> AttemptHandle:
    ctx = OpenContext(student_id=student_id, assessment_id=assessment_id)
    for strategy in strategies:
        try:
            outcome = await strategy.attempt(store, ctx)
        except Exception as exc:
            logger.exception("Attempt strategy %s raised unexpectedly", strategy.name)
            outcome = Fail(str(exc))

        if isinstance(outcome, Ok):
            logger.info(
                "Opened attempt %s via %s (student=%s, assessment=%s)",
                outcome.attempt_id,
                strategy.name,
                student_id,
                assessment_id,
            )
            return AttemptHandle(
                attempt_id=outcome.attempt_id,
                student_id=student_id,
                assessment_id=assessment_id,
                durable=True,
                strategy=strategy.name,
            )
        if isinstance(outcome, Fail):
            logger.warning("Attempt strategy %s failed, giving up on the store: %s", strategy.name, outcome.reason)
            break
        logger.debug("Attempt strategy %s passed: %s", strategy.name, outcome.reason)

    attempt_id = local_attempt_id()
    logger.warning(
        "Using non-durable attempt id %s (student=%s, assessment=%s)", attempt_id, student_id, assessment_id
    )
    return AttemptHandle(
        attempt_id=attempt_id,
        student_id=student_id,
        assessment_id=assessment_id,
        durable=False,
        strategy=LOCAL_STRATEGY,
    )
