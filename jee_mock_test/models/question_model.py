"""
models/question_model.py

JEE mock-test question model and the tagged answer variants.
Pydantic v2 models; no UI code.

Answer = SingleAnswer | MultiAnswer | NumericalAnswer | Unanswered
"""

import math
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_serializer, field_validator, model_validator

from jee_mock_test.errors import InvalidAnswerShape


class Subject(str, Enum):
    PHYSICS = "physics"
    CHEMISTRY = "chemistry"
    MATHEMATICS = "mathematics"


class QuestionType(str, Enum):
    SINGLE_CORRECT = "single-correct"
    MULTI_CORRECT = "multi-correct"
    NUMERICAL = "numerical"


# Names used by older saved tests / answer sheets
_SUBJECT_ALIASES = {"maths": "mathematics", "math": "mathematics"}
_TYPE_ALIASES = {"mcq": "single-correct", "single": "single-correct", "multi": "multi-correct"}


def normalize_subject(value: Any) -> Any:
    if isinstance(value, str):
        v = value.strip().lower()
        return _SUBJECT_ALIASES.get(v, v)
    return value


def normalize_question_type(value: Any) -> Any:
    if isinstance(value, str):
        v = value.strip().lower()
        return _TYPE_ALIASES.get(v, v)
    return value


# ── Answer variants ──────────────────────────────────────────────────────────

class SingleAnswer(BaseModel):
    """One option key (single-correct)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    key: str = Field(..., min_length=1)


class MultiAnswer(BaseModel):
    """A set of option keys (multi-correct)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["multi"] = "multi"
    keys: FrozenSet[str]

    @field_serializer("keys")
    def _serialize_keys(self, keys: FrozenSet[str]):
        # sets have no stable order; keep the JSON form deterministic
        return sorted(keys)


class NumericalAnswer(BaseModel):
    """A real-number response (numerical)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["numerical"] = "numerical"
    value: float = Field(..., allow_inf_nan=False)


class Unanswered(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["unanswered"] = "unanswered"


Answer = Annotated[
    Union[SingleAnswer, MultiAnswer, NumericalAnswer, Unanswered],
    Field(discriminator="kind"),
]

UNANSWERED = Unanswered()

_KIND_FOR_TYPE = {
    QuestionType.SINGLE_CORRECT: "single",
    QuestionType.MULTI_CORRECT: "multi",
    QuestionType.NUMERICAL: "numerical",
}

_VARIANTS = (SingleAnswer, MultiAnswer, NumericalAnswer)


def _check_keys(keys: Iterable[str], options: Optional[Dict[str, str]]) -> None:
    if not options:
        return
    unknown = sorted(k for k in keys if k not in options)
    if unknown:
        raise InvalidAnswerShape(f"unknown option key(s) {unknown}; expected one of {sorted(options)}")


def to_answer(
    question_type: QuestionType,
    value: Any,
    options: Optional[Dict[str, str]] = None,
) -> Union[SingleAnswer, MultiAnswer, NumericalAnswer, Unanswered]:
    """
    Convert a raw response (or an Answer variant) into the variant for question_type.

    Raw shapes:
      - single-correct: str (trimmed, upper-cased)
      - multi-correct:  list/tuple/set of str
      - numerical:      int or float

    None, a blank string and an empty collection are Unanswered.

    Raises:
        InvalidAnswerShape: value shape does not match question_type,
                            or an option key is not among options.
    """
    question_type = QuestionType(normalize_question_type(question_type))
    expected = _KIND_FOR_TYPE[question_type]

    if value is None or isinstance(value, Unanswered):
        return UNANSWERED

    if isinstance(value, _VARIANTS):
        if value.kind != expected:
            raise InvalidAnswerShape(f"{value.kind} answer given for a {question_type.value} question")
        if isinstance(value, SingleAnswer):
            _check_keys([value.key], options)
        elif isinstance(value, MultiAnswer):
            if not value.keys:
                return UNANSWERED
            _check_keys(value.keys, options)
        return value

    if question_type is QuestionType.SINGLE_CORRECT:
        if not isinstance(value, str):
            raise InvalidAnswerShape(f"single-correct answer must be a string, got {type(value).__name__}")
        key = value.strip().upper()
        if not key:
            return UNANSWERED
        _check_keys([key], options)
        return SingleAnswer(key=key)

    if question_type is QuestionType.MULTI_CORRECT:
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, set, frozenset)):
            raise InvalidAnswerShape(f"multi-correct answer must be a collection of strings, got {type(value).__name__}")
        if not all(isinstance(k, str) for k in value):
            raise InvalidAnswerShape("multi-correct answer must contain only strings")
        keys = frozenset(k.strip().upper() for k in value if k.strip())
        if not keys:
            return UNANSWERED
        _check_keys(keys, options)
        return MultiAnswer(keys=keys)

    # numerical
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidAnswerShape(f"numerical answer must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise InvalidAnswerShape(f"numerical answer must be finite, got {value!r}")
    return NumericalAnswer(value=float(value))


# ── Question ─────────────────────────────────────────────────────────────────

class Question(BaseModel):
    """
    One question of a generated mock test. Immutable once built.

    correct_answer is None when no answer-key entry exists for the question
    number; such a question is reported as ungraded by the scoring engine.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., description="Unique, stable identifier")
    number: int = Field(..., ge=1, description="Display / ordering number (1-based)")
    subject: Subject
    type: QuestionType
    text: str = ""
    options: Optional[Dict[str, str]] = None
    correct_answer: Optional[Answer] = Field(None, alias="correctAnswer")
    marks: float = Field(4, gt=0, description="Reward for full credit")
    negative_mark: float = Field(-1, alias="negativeMark", description="Penalty for a wrong attempt")

    @field_validator("subject", mode="before")
    @classmethod
    def _subject_alias(cls, v: Any) -> Any:
        return normalize_subject(v)

    @field_validator("type", mode="before")
    @classmethod
    def _type_alias(cls, v: Any) -> Any:
        return normalize_question_type(v)

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _raw_correct_answer(cls, v: Any, info: ValidationInfo) -> Any:
        """Accept the raw key shapes (str / list / number) used by saved tests."""
        if v is None or isinstance(v, (dict, BaseModel)):
            return v
        qtype = info.data.get("type")
        if qtype is None:
            return v
        answer = to_answer(qtype, v)
        return None if isinstance(answer, Unanswered) else answer

    @model_validator(mode="after")
    def _check_shape(self) -> "Question":
        if self.type is QuestionType.NUMERICAL:
            if self.options:
                raise ValueError("numerical questions carry no options")
        elif not self.options:
            raise ValueError(f"{self.type.value} question {self.number} needs options")

        if isinstance(self.correct_answer, Unanswered):
            raise ValueError("correct_answer cannot be 'unanswered'; use None for a missing key")
        if self.correct_answer is not None:
            # re-run the shape check against the options
            to_answer(self.type, self.correct_answer, self.options)
        return self

    @property
    def has_answer_key(self) -> bool:
        return self.correct_answer is not None
