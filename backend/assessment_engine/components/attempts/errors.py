from __future__ import annotations


UNIQUE_VIOLATION_SQLSTATE = "23505"
NOT_NULL_VIOLATION_SQLSTATE = "23502"
MAX_ATTEMPTS_MESSAGE = "Maximum attempts exceeded"


class PersistenceError(RuntimeError):
    """Base class for attempt-store failures."""


class PersistenceUnavailableError(PersistenceError):
    """Raised when the attempt store cannot be reached at all."""


class MaxAttemptsExceededError(PersistenceError):
    """Raised when the student has used every allowed attempt."""

    def __init__(self, message: str = MAX_ATTEMPTS_MESSAGE):
        super().__init__(message)


class ConstraintViolationError(PersistenceError):
    """Raised when a write violates a column or table constraint."""


class NotNullViolationError(ConstraintViolationError):
    """Raised when a required column was written as null."""


class UniqueViolationError(ConstraintViolationError):
    """Raised when a write collides with an existing row."""


class AttemptNotFoundError(PersistenceError):
    """Raised when an attempt id has no stored row."""


def _sqlstate(exc: BaseException) -> str | None:
    for candidate in (exc, getattr(exc, "orig", None), getattr(exc, "__cause__", None)):
        if candidate is None:
            continue
        for attr in ("sqlstate", "pgcode", "code"):
            value = getattr(candidate, attr, None)
            if isinstance(value, str) and len(value) == 5 and value.isdigit():
                return value
    return None


def is_max_attempts_error(exc: BaseException) -> bool:
    if isinstance(exc, MaxAttemptsExceededError):
        return True
    return MAX_ATTEMPTS_MESSAGE.lower() in str(exc or "").lower()


def classify_integrity_error(exc: BaseException) -> PersistenceError:
    """Map a driver integrity error onto the constraint taxonomy."""
    if isinstance(exc, PersistenceError):
        return exc
    code = _sqlstate(exc)
    text = str(exc or "").lower()
    if code == UNIQUE_VIOLATION_SQLSTATE or "unique constraint" in text or "duplicate key" in text:
        return UniqueViolationError(str(exc))
    if code == NOT_NULL_VIOLATION_SQLSTATE or "not null constraint" in text or "null value in column" in text:
        return NotNullViolationError(str(exc))
    if is_max_attempts_error(exc):
        return MaxAttemptsExceededError(str(exc))
    return ConstraintViolationError(str(exc))
