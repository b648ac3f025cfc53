"""
models/results.py

Scored outcome of a completed attempt. Derived and immutable:
recompute from a snapshot instead of patching.
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from jee_mock_test.models.diagnostic import Diagnostic
from jee_mock_test.models.question_model import Answer, QuestionType, Subject


class Outcome(str, Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"
    UNGRADED = "ungraded"  # no answer key for the question


class QuestionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: int
    question_number: int
    subject: Subject
    type: QuestionType
    outcome: Outcome
    marks_awarded: float
    max_marks: float
    time_spent_seconds: int
    user_answer: Optional[Answer] = None
    correct_answer: Optional[Answer] = None

    @property
    def attempted(self) -> bool:
        return self.user_answer is not None

    @property
    def correct(self) -> bool:
        return self.outcome is Outcome.CORRECT


class SubjectWiseResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: Subject
    total_questions: int
    attempted: int
    correct: int
    partial_correct: int
    incorrect: int
    unanswered: int
    ungraded: int
    total_marks: float
    max_possible_marks: float


class OverallResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_questions: int
    attempted: int
    correct: int
    partial_correct: int
    incorrect: int
    unanswered: int
    ungraded: int
    total_marks: float          # may be negative
    max_possible_marks: float
    percentage: float           # floored at 0
    total_time_spent_minutes: int


class TestResults(BaseModel):
    __test__ = False  # not a pytest class

    model_config = ConfigDict(frozen=True)

    overall: OverallResult
    subject_wise: Tuple[SubjectWiseResult, ...]
    question_wise: Tuple[QuestionResult, ...]
    diagnostics: Tuple[Diagnostic, ...] = ()

    def for_subject(self, subject: Subject) -> Optional[SubjectWiseResult]:
        for s in self.subject_wise:
            if s.subject == subject:
                return s
        return None
