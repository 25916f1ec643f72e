"""Question-bank row normalization into the typed Question union."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from .schemas import BOOLEAN_OPTIONS, Question, QuestionKind, question_adapter

logger = logging.getLogger(__name__)

KIND_ALIASES = {
    "single-choice": QuestionKind.SINGLE_CHOICE,
    "single_choice": QuestionKind.SINGLE_CHOICE,
    "multiple-choice": QuestionKind.SINGLE_CHOICE,
    "multiple_choice": QuestionKind.SINGLE_CHOICE,
    "multi-select": QuestionKind.MULTI_SELECT,
    "multiple-select": QuestionKind.MULTI_SELECT,
    "multiple_select": QuestionKind.MULTI_SELECT,
    "boolean": QuestionKind.BOOLEAN,
    "true-false": QuestionKind.BOOLEAN,
    "true_false": QuestionKind.BOOLEAN,
    "short-text": QuestionKind.SHORT_TEXT,
    "short-answer": QuestionKind.SHORT_TEXT,
    "short_answer": QuestionKind.SHORT_TEXT,
    "essay": QuestionKind.ESSAY,
    "coding": QuestionKind.CODING,
    "coding-challenge": QuestionKind.CODING,
    "coding_challenge": QuestionKind.CODING,
    "file-upload": QuestionKind.FILE_UPLOAD,
    "file_upload": QuestionKind.FILE_UPLOAD,
    "fill-in-blanks": QuestionKind.FILL_IN_BLANKS,
    "fill_in_blanks": QuestionKind.FILL_IN_BLANKS,
}


class QuestionSource(Protocol):
    """Read side of the question bank; rows already carry kind-specific extras."""

    async def get_questions(self, assessment_id: str) -> List[Dict[str, Any]]:
        ...


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _json_list(value: Any, field: str, question_id: Any) -> List[Any]:
    """Accept a list or a JSON-encoded list; anything else becomes []."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Failed to parse %s JSON for question %s", field, question_id)
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def resolve_kind(raw_kind: Any) -> Optional[QuestionKind]:
    return KIND_ALIASES.get(str(raw_kind or "").strip().lower())


def parse_question_row(row: Dict[str, Any]) -> Question:
    """Convert one raw question-bank row into a typed Question.

    Raises ValueError when the row cannot produce a valid question.
    """
    question_id = _first(row, "id", "question_id")
    kind = resolve_kind(_first(row, "question_type", "type", "kind"))
    if kind is None:
        raise ValueError(f"Unsupported question type for question {question_id}")

    try:
        points = int(_first(row, "points") or 0)
    except (TypeError, ValueError):
        points = 0

    payload: Dict[str, Any] = {
        "id": str(question_id) if question_id is not None else "",
        "kind": kind.value,
        "prompt": str(_first(row, "question_text", "question", "prompt") or ""),
        "points": points if points > 0 else 1,
        "explanation": row.get("explanation"),
    }

    correct_answer = _first(row, "correct_answer", "correctAnswer", "canonical_answer")
    correct_answers = _json_list(
        _first(row, "correct_answers", "correctAnswers"), "correct_answers", question_id
    )

    if kind in (QuestionKind.SINGLE_CHOICE, QuestionKind.MULTI_SELECT):
        payload["options"] = [str(o) for o in _json_list(row.get("options"), "options", question_id)]
    if kind == QuestionKind.BOOLEAN:
        payload["options"] = list(BOOLEAN_OPTIONS)

    if kind in (QuestionKind.SINGLE_CHOICE, QuestionKind.BOOLEAN, QuestionKind.SHORT_TEXT):
        payload["canonical_answer"] = correct_answer
        if kind == QuestionKind.SHORT_TEXT and correct_answer is not None:
            payload["canonical_answer"] = str(correct_answer)
    elif kind == QuestionKind.MULTI_SELECT:
        payload["canonical_answer"] = correct_answers or correct_answer
    elif kind == QuestionKind.FILL_IN_BLANKS:
        canonical = [str(a) for a in correct_answers]
        blanks = _json_list(row.get("blank_positions"), "blank_positions", question_id)
        payload["canonical_answer"] = canonical
        payload["blank_count"] = int(row.get("blank_count") or len(blanks) or len(canonical))
    elif kind == QuestionKind.CODING:
        payload["code_language"] = str(_first(row, "code_language", "codeLanguage") or "Python")
        payload["code_template"] = _first(row, "code_template", "codeTemplate")
        payload["test_cases"] = _json_list(_first(row, "test_cases", "testCases"), "test_cases", question_id)
    elif kind == QuestionKind.FILE_UPLOAD:
        payload["allowed_extensions"] = [
            str(e) for e in _json_list(_first(row, "allowed_extensions", "file_types"), "allowed_extensions", question_id)
        ]
        payload["max_file_size"] = row.get("max_file_size")
    elif kind == QuestionKind.ESSAY:
        payload["word_limit"] = row.get("word_limit")

    try:
        return question_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid question {question_id}: {exc.errors()[0].get('msg')}") from exc


def parse_question_rows(rows: List[Dict[str, Any]] | None) -> List[Question]:
    """Parse rows, skipping (and logging) any that cannot form a valid question."""
    questions: List[Question] = []
    for row in rows or []:
        if not isinstance(row, dict):
            logger.warning("Skipping non-object question row: %r", type(row).__name__)
            continue
        try:
            questions.append(parse_question_row(row))
        except ValueError:
            logger.warning("Skipping malformed question row %s", row.get("id"), exc_info=True)
    return questions


async def load_questions(source: QuestionSource, assessment_id: str) -> List[Question]:
    rows = await source.get_questions(assessment_id)
    questions = parse_question_rows(rows)
    logger.info("Loaded %d/%d questions for assessment %s", len(questions), len(rows or []), assessment_id)
    return questions
