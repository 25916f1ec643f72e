"""Execution result payloads returned by the sandbox client."""

from __future__ import annotations

import enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ExecutionStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    COMPILATION_ERROR = "compilation_error"
    RUNTIME_ERROR = "runtime_error"
    TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
    ERROR = "error"
    # Program reads stdin but none was supplied; nothing was dispatched.
    NEEDS_INPUT = "needs_input"
    RUNNING = "running"
    # Run never reached a verdict: rejected locally or the sandbox was unusable.
    FAILED = "failed"


# Judge0 status ids.
STATUS_IN_QUEUE = 1
STATUS_PROCESSING = 2
PENDING_STATUS_IDS = frozenset({STATUS_IN_QUEUE, STATUS_PROCESSING})

STATUS_LABELS: Dict[int, str] = {
    1: "In Queue",
    2: "Processing",
    3: "Accepted",
    4: "Wrong Answer",
    5: "Time Limit Exceeded",
    6: "Compilation Error",
    7: "Runtime Error (SIGSEGV)",
    8: "Runtime Error (SIGXFSZ)",
    9: "Runtime Error (SIGFPE)",
    10: "Runtime Error (SIGABRT)",
    11: "Runtime Error (NZEC)",
    12: "Runtime Error (Other)",
    13: "Internal Error",
    14: "Exec Format Error",
}

RUNTIME_ERROR_STATUS_IDS = frozenset(range(7, 13))


class ExecutionResult(BaseModel):
    """One run of a coding answer. Every field is independently nullable.

    ``stdout == ""`` means the program ran and printed nothing; ``None`` means
    there is no output to show (not run yet, or not produced).
    """

    stdout: Optional[str] = None
    stderr: Optional[str] = None
    compile_output: Optional[str] = None
    status: Optional[ExecutionStatus] = None
    status_label: Optional[str] = None
    error_message: Optional[str] = None
    time: Optional[str] = None
    memory: Optional[int] = None

    @property
    def has_run(self) -> bool:
        return self.status not in (
            None,
            ExecutionStatus.RUNNING,
            ExecutionStatus.NEEDS_INPUT,
            ExecutionStatus.FAILED,
        )

    @classmethod
    def running(cls) -> "ExecutionResult":
        return cls(status=ExecutionStatus.RUNNING, status_label="Running...")

    @classmethod
    def failed(cls, message: str) -> "ExecutionResult":
        return cls(status=ExecutionStatus.FAILED, status_label="Error", error_message=message)

    @classmethod
    def needs_input(cls, language_name: str) -> "ExecutionResult":
        return cls(
            status=ExecutionStatus.NEEDS_INPUT,
            status_label="Input Required",
            error_message=(
                f"This {language_name} program reads from standard input. "
                "Enter the input in the stdin box (one value per line) and run again."
            ),
        )


def classify_status(status_id: int | None) -> ExecutionStatus:
    if status_id == 3:
        return ExecutionStatus.ACCEPTED
    if status_id == 5:
        return ExecutionStatus.TIME_LIMIT_EXCEEDED
    if status_id == 6:
        return ExecutionStatus.COMPILATION_ERROR
    if status_id in RUNTIME_ERROR_STATUS_IDS:
        return ExecutionStatus.RUNTIME_ERROR
    return ExecutionStatus.ERROR


def result_from_submission(payload: Dict[str, Any]) -> ExecutionResult:
    """Map a Judge0 submission payload onto an ExecutionResult."""
    status = payload.get("status") or {}
    status_id = status.get("id") if isinstance(status, dict) else None
    if status_id is None:
        status_id = payload.get("status_id")
    description = status.get("description") if isinstance(status, dict) else None
    classified = classify_status(status_id)

    error_message = payload.get("message")
    if classified == ExecutionStatus.ERROR and not error_message:
        error_message = description or "Execution failed."

    memory = payload.get("memory")
    return ExecutionResult(
        stdout=payload.get("stdout"),
        stderr=payload.get("stderr"),
        compile_output=payload.get("compile_output"),
        status=classified,
        status_label=STATUS_LABELS.get(status_id, description),
        error_message=error_message,
        time=str(payload["time"]) if payload.get("time") is not None else None,
        memory=int(memory) if isinstance(memory, (int, float)) else None,
    )
