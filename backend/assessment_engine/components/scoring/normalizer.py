"""Answer normalization and per-kind correctness comparison.

Raw answers arrive as a flat key -> value map (strings, or lists of strings for
multi-select). Fill-in-blanks sub-answers live under ``<questionId>_<blankIndex>``
keys. Every comparator works on trimmed, lower-cased text so call sites never
branch on question kind themselves.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..questions.schemas import (
    BooleanQuestion,
    CodingQuestion,
    EssayQuestion,
    FileUploadQuestion,
    FillInBlanksQuestion,
    MultiSelectQuestion,
    Question,
    ShortTextQuestion,
    SingleChoiceQuestion,
    blank_answer_key,
)
from .schemas import Verdict

logger = logging.getLogger(__name__)

SHORT_TEXT_WORD_MATCH_THRESHOLD = 0.5

_INDEX_RE = re.compile(r"^\s*\d+\s*$")

AnswerValue = Any


def normalize_answer_value(value: AnswerValue) -> AnswerValue:
    """Collapse blank input to None so an empty answer is never stored."""
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [str(v) for v in value if v is not None and str(v).strip()]
        return items or None
    return value


def _text(value: Any) -> str:
    return str(value if value is not None else "").strip().lower()


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INDEX_RE.match(value):
        return int(value)
    return None


def resolve_option_text(options: List[str], canonical: Any) -> Optional[str]:
    """Resolve an index-valued canonical answer to its option text.

    Non-index values are returned as literal text; an out-of-range index falls
    back to its literal form as well.
    """
    if canonical is None:
        return None
    index = _as_index(canonical)
    if index is not None and 0 <= index < len(options):
        return _text(options[index])
    if isinstance(canonical, bool):
        return "true" if canonical else "false"
    return _text(canonical)


def _canonical_option_set(question: MultiSelectQuestion) -> set[str]:
    raw = question.canonical_answer
    if raw is None:
        return set()
    if isinstance(raw, str):
        parts: List[Any] = [p.strip() for p in raw.split(",") if p.strip()]
    else:
        parts = list(raw)
    resolved = set()
    for part in parts:
        index = _as_index(part)
        if index is not None:
            if 0 <= index < len(question.options):
                resolved.add(_text(question.options[index]))
            continue
        resolved.add(_text(part))
    resolved.discard("")
    return resolved


def _coerce_selection(question_id: str, raw: Any) -> Optional[List[str]]:
    """Multi-select answers may come back from storage as a JSON-encoded list."""
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [str(v) for v in raw]
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Malformed stored selection for question %s; treating as unanswered", question_id)
            return None
        if isinstance(parsed, list):
            return [str(v) for v in parsed]
        logger.warning("Stored selection for question %s is not a list; treating as unanswered", question_id)
    return None


# ---------------------------------------------------------------------------
# Comparators
# ---------------------------------------------------------------------------

def _compare_single_choice(question: SingleChoiceQuestion | BooleanQuestion, raw: Any) -> bool:
    if isinstance(raw, (list, tuple, set, frozenset)):
        return False
    expected = resolve_option_text(question.options, question.canonical_answer)
    if not expected:
        return False
    return _text(raw) == expected


def _compare_multi_select(question: MultiSelectQuestion, raw: Any) -> bool:
    selection = _coerce_selection(question.id, raw)
    if selection is None:
        return False
    expected = _canonical_option_set(question)
    if not expected:
        return False
    return {_text(v) for v in selection} == expected


def short_text_matches(user_answer: Any, canonical_answer: Any) -> bool:
    """Fuzzy match: containment either way, or >= 50% canonical word overlap."""
    user = _text(user_answer)
    expected = _text(canonical_answer)
    if not user or not expected:
        return False
    if user in expected or expected in user:
        return True
    expected_words = expected.split()
    user_words = set(user.split())
    matched = sum(1 for word in expected_words if word in user_words)
    return matched / len(expected_words) >= SHORT_TEXT_WORD_MATCH_THRESHOLD


def _compare_short_text(question: ShortTextQuestion, raw: Any) -> bool:
    if isinstance(raw, (list, tuple, set, frozenset)):
        return False
    return short_text_matches(raw, question.canonical_answer)


def _compare_fill_in_blanks(question: FillInBlanksQuestion, raw: Any) -> bool:
    # Exact blank count plus set containment; position is not compared.
    user = [_text(v) for v in (raw or [])]
    expected = [_text(v) for v in question.canonical_answer]
    if not expected or len(user) != len(expected):
        return False
    user_set = set(user)
    return all(answer in user_set for answer in expected)


_COMPARATORS: Dict[type, Optional[Callable[[Any, Any], bool]]] = {
    SingleChoiceQuestion: _compare_single_choice,
    BooleanQuestion: _compare_single_choice,
    MultiSelectQuestion: _compare_multi_select,
    ShortTextQuestion: _compare_short_text,
    FillInBlanksQuestion: _compare_fill_in_blanks,
    # Ungraded kinds: no automatic judgment.
    EssayQuestion: None,
    CodingQuestion: None,
    FileUploadQuestion: None,
}


def comparator_for(question: Question) -> Optional[Callable[[Any, Any], bool]]:
    try:
        return _COMPARATORS[type(question)]
    except KeyError:
        raise TypeError(f"No comparator registered for question type {type(question).__name__}") from None


def blank_count_for(question: FillInBlanksQuestion) -> int:
    return question.blank_count or len(question.canonical_answer)


def collect_raw_answer(question: Question, answers: Mapping[str, Any]) -> Any:
    """Pull the raw answer for a question out of the flat answer map."""
    if isinstance(question, FillInBlanksQuestion):
        collected = []
        for index in range(blank_count_for(question)):
            value = normalize_answer_value(answers.get(blank_answer_key(question.id, index)))
            if value is not None:
                collected.append(value)
        return collected or None
    return normalize_answer_value(answers.get(question.id))


def is_answered(question: Question, answers: Mapping[str, Any]) -> bool:
    return collect_raw_answer(question, answers) is not None


def grade_answer(question: Question, answers: Mapping[str, Any]) -> Verdict:
    """Judge one question against the answer map."""
    comparator = comparator_for(question)
    raw = collect_raw_answer(question, answers)
    if comparator is None:
        return Verdict.UNGRADED
    if raw is None:
        return Verdict.UNANSWERED
    try:
        return Verdict.CORRECT if comparator(question, raw) else Verdict.INCORRECT
    except (TypeError, ValueError):
        logger.exception("Could not compare answer for question %s; treating as unanswered", question.id)
        return Verdict.UNANSWERED
