"""
models/session_state.py

State of one mock-test attempt (the candidate's OMR sheet).
Pydantic BaseModel based: JSON serialization for persistence and type safety.
No UI code.
"""

from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from jee_mock_test.models.question_model import Answer, Question, Subject


class SessionState(BaseModel):
    """
    Mutable state of a single attempt. Owned by SessionStore.

    Attributes:
        questions:                  ordered question set, fixed for the session.
        current_index:              question being viewed (0-based).
        current_subject:            subject tab of the current question.
        answers:                    {question.id: Answer}. Missing key = unattempted.
        marked_for_review:          question ids flagged for review (a true set).
        time_remaining_ms:          countdown; never increases while active.
        time_spent_per_question_ms: {question.id: accumulated ms}; never decreases.
        duration_ms:                configured duration (for elapsed-time reporting).
        started / completed:        lifecycle flags.
        auto_submitted:             completed by timer expiry rather than by the candidate.
    """

    questions: List[Question] = Field(default_factory=list)
    current_index: int = Field(default=0, ge=0)
    current_subject: Subject = Subject.PHYSICS
    answers: Dict[int, Answer] = Field(default_factory=dict)
    marked_for_review: Set[int] = Field(default_factory=set)
    time_remaining_ms: int = Field(default=0, ge=0)
    time_spent_per_question_ms: Dict[int, int] = Field(default_factory=dict)
    duration_ms: int = Field(default=0, ge=0)
    started: bool = False
    completed: bool = False
    auto_submitted: bool = False

    @field_serializer("marked_for_review")
    def _serialize_marked(self, marked: Set[int]):
        return sorted(marked)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def is_resumable(self) -> bool:
        return self.started and not self.completed and bool(self.questions)


class SessionSnapshot(BaseModel):
    """
    Read-only copy of a SessionState handed to the scoring engine.
    Built from deep copies; never shares containers with the live state.

    Mappings are held as sorted (question id, value) pairs and exposed as
    read-only views.
    """
    model_config = ConfigDict(frozen=True)

    questions: Tuple[Question, ...]
    current_index: int
    answer_items: Tuple[Tuple[int, Answer], ...]
    marked_for_review: FrozenSet[int]
    time_remaining_ms: int
    time_spent_items: Tuple[Tuple[int, int], ...]
    duration_ms: int
    started: bool
    completed: bool
    auto_submitted: bool

    @classmethod
    def from_state(cls, state: SessionState) -> "SessionSnapshot":
        s = state.model_copy(deep=True)
        return cls(
            questions=tuple(s.questions),
            current_index=s.current_index,
            answer_items=tuple(sorted(s.answers.items())),
            marked_for_review=frozenset(s.marked_for_review),
            time_remaining_ms=s.time_remaining_ms,
            time_spent_items=tuple(sorted(s.time_spent_per_question_ms.items())),
            duration_ms=s.duration_ms,
            started=s.started,
            completed=s.completed,
            auto_submitted=s.auto_submitted,
        )

    @property
    def answers(self) -> Mapping[int, Answer]:
        return MappingProxyType(dict(self.answer_items))

    @property
    def time_spent_per_question_ms(self) -> Mapping[int, int]:
        return MappingProxyType(dict(self.time_spent_items))

    @property
    def elapsed_ms(self) -> int:
        return max(0, self.duration_ms - self.time_remaining_ms)
