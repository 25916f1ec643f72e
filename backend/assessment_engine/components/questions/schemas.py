"""Question variants, one per kind, carrying only the fields that kind uses."""

from __future__ import annotations

import enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class QuestionKind(str, enum.Enum):
    SINGLE_CHOICE = "single-choice"
    MULTI_SELECT = "multi-select"
    BOOLEAN = "boolean"
    SHORT_TEXT = "short-text"
    ESSAY = "essay"
    CODING = "coding"
    FILE_UPLOAD = "file-upload"
    FILL_IN_BLANKS = "fill-in-blanks"


UNGRADED_KINDS = frozenset({QuestionKind.ESSAY, QuestionKind.CODING, QuestionKind.FILE_UPLOAD})

BOOLEAN_OPTIONS = ["True", "False"]


class _QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    prompt: str = ""
    points: int = Field(default=1, gt=0)
    explanation: Optional[str] = None

    @property
    def requires_manual_review(self) -> bool:
        return QuestionKind(self.kind) in UNGRADED_KINDS


class _ChoiceQuestion(_QuestionBase):
    options: List[str]

    @field_validator("options")
    @classmethod
    def _options_present(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("options must be non-empty for choice questions")
        return value


class SingleChoiceQuestion(_ChoiceQuestion):
    kind: Literal["single-choice"] = "single-choice"
    # Either an index into options or the literal option text.
    canonical_answer: Union[int, str, None] = None


class BooleanQuestion(_ChoiceQuestion):
    kind: Literal["boolean"] = "boolean"
    options: List[str] = Field(default_factory=lambda: list(BOOLEAN_OPTIONS))
    canonical_answer: Union[int, str, bool, None] = None


class MultiSelectQuestion(_ChoiceQuestion):
    kind: Literal["multi-select"] = "multi-select"
    # Comma-separated indices ("0, 2") or an explicit list of indices / option texts.
    canonical_answer: Union[str, List[Union[int, str]], None] = None


class ShortTextQuestion(_QuestionBase):
    kind: Literal["short-text"] = "short-text"
    canonical_answer: Optional[str] = None


class EssayQuestion(_QuestionBase):
    kind: Literal["essay"] = "essay"
    word_limit: Optional[int] = None


class CodingQuestion(_QuestionBase):
    kind: Literal["coding"] = "coding"
    code_language: str = "Python"
    code_template: Optional[str] = None
    test_cases: List[Dict[str, Any]] = Field(default_factory=list)


class FileUploadQuestion(_QuestionBase):
    kind: Literal["file-upload"] = "file-upload"
    allowed_extensions: List[str] = Field(default_factory=list)
    max_file_size: Optional[int] = None


class FillInBlanksQuestion(_QuestionBase):
    kind: Literal["fill-in-blanks"] = "fill-in-blanks"
    canonical_answer: List[str] = Field(default_factory=list)
    blank_count: int = Field(default=0, ge=0)

    def answer_key(self, blank_index: int) -> str:
        return blank_answer_key(self.id, blank_index)


Question = Annotated[
    Union[
        SingleChoiceQuestion,
        MultiSelectQuestion,
        BooleanQuestion,
        ShortTextQuestion,
        EssayQuestion,
        CodingQuestion,
        FileUploadQuestion,
        FillInBlanksQuestion,
    ],
    Field(discriminator="kind"),
]

QUESTION_TYPES = (
    SingleChoiceQuestion,
    MultiSelectQuestion,
    BooleanQuestion,
    ShortTextQuestion,
    EssayQuestion,
    CodingQuestion,
    FileUploadQuestion,
    FillInBlanksQuestion,
)

question_adapter: TypeAdapter[Question] = TypeAdapter(Question)


def blank_answer_key(question_id: str, blank_index: int) -> str:
    """Flat answer-map key for one blank of a fill-in-blanks question."""
    return f"{question_id}_{blank_index}"
