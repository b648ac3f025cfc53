"""
services/scoring.py

Mock-test scoring and result analysis.
Pure Python functions — no UI code, no I/O, never mutates its inputs.
Calling score() twice on the same input yields equal TestResults.

Marking policies:
  - single-correct: key match +marks, mismatch negative_mark, blank 0
  - numerical:      |answer - key| <= tolerance +marks, otherwise 0
  - multi-correct:  any wrong key → negative_mark (flat); exact set → +marks;
                    proper subset → partial credit (PartialCreditPolicy)
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from config import NUMERICAL_TOLERANCE
from jee_mock_test.errors import InvalidAnswerShape, MalformedAnswer
from jee_mock_test.models.diagnostic import Diagnostic
from jee_mock_test.models.question_model import (
    MultiAnswer,
    NumericalAnswer,
    Question,
    SingleAnswer,
    Unanswered,
    to_answer,
)
from jee_mock_test.models.results import (
    OverallResult,
    Outcome,
    QuestionResult,
    SubjectWiseResult,
    TestResults,
)
from jee_mock_test.models.session_state import SessionSnapshot

logger = logging.getLogger(__name__)


class PartialCreditMode(str, Enum):
    PER_KEY = "per-key"              # per_key_marks for each correct key chosen
    PROPORTIONAL = "proportional"    # marks * chosen / len(correct set)


class PartialCreditPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: PartialCreditMode = PartialCreditMode.PER_KEY
    per_key_marks: float = Field(1.0, ge=0)
    cap_at_marks: bool = False


class ScoringPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    numerical_tolerance: float = Field(NUMERICAL_TOLERANCE, ge=0)
    multi_correct: PartialCreditPolicy = Field(default_factory=PartialCreditPolicy)


_DEFAULT_POLICY = ScoringPolicy()


# ── per-question marking ─────────────────────────────────────────────────────

def _within_tolerance(value: float, key: float, tolerance: float) -> bool:
    # decimal arithmetic so that a difference of exactly the tolerance is inside
    diff = abs(Decimal(repr(value)) - Decimal(repr(key)))
    return diff <= Decimal(repr(tolerance))


def _partial_credit(chosen: int, total: int, marks: float, policy: PartialCreditPolicy) -> float:
    if policy.mode is PartialCreditMode.PROPORTIONAL:
        credit = marks * chosen / total
    else:
        credit = chosen * policy.per_key_marks
    if policy.cap_at_marks:
        credit = min(credit, marks)
    return credit


def mark_question(
    question: Question,
    answer: Any,
    policy: ScoringPolicy = _DEFAULT_POLICY,
) -> Tuple[Outcome, float]:
    """
    Apply the marking policy of question.type to one answer.

    Args:
        question: question with its answer key.
        answer:   Answer variant, raw value, or None.

    Returns:
        (outcome, marks awarded)

    Raises:
        MalformedAnswer: answer shape does not fit the question type.
    """
    try:
        response = to_answer(question.type, answer)
    except InvalidAnswerShape as e:
        raise MalformedAnswer(str(e)) from e

    key = question.correct_answer
    if key is None:
        return Outcome.UNGRADED, 0
    if isinstance(response, Unanswered):
        return Outcome.UNANSWERED, 0

    if isinstance(response, SingleAnswer):
        if response.key == key.key:
            return Outcome.CORRECT, question.marks
        return Outcome.INCORRECT, question.negative_mark

    if isinstance(response, NumericalAnswer):
        if _within_tolerance(response.value, key.value, policy.numerical_tolerance):
            return Outcome.CORRECT, question.marks
        return Outcome.INCORRECT, 0

    if isinstance(response, MultiAnswer):
        correct_set = key.keys
        chosen = response.keys
        if chosen - correct_set:
            # a wrong pick always dominates partial credit
            return Outcome.INCORRECT, question.negative_mark
        if chosen == correct_set:
            return Outcome.CORRECT, question.marks
        credit = _partial_credit(len(chosen), len(correct_set), question.marks, policy.multi_correct)
        return Outcome.PARTIAL, credit

    raise MalformedAnswer(f"cannot score {type(response).__name__} for a {question.type.value} question")


# ── aggregation ──────────────────────────────────────────────────────────────

_COUNTERS = ("attempted", "correct", "partial_correct", "incorrect", "unanswered", "ungraded")
_COUNTER_FOR_OUTCOME = {
    Outcome.CORRECT: "correct",
    Outcome.PARTIAL: "partial_correct",
    Outcome.INCORRECT: "incorrect",
    Outcome.UNANSWERED: "unanswered",
    Outcome.UNGRADED: "ungraded",
}


def _new_bucket() -> Dict[str, Any]:
    bucket: Dict[str, Any] = {name: 0 for name in _COUNTERS}
    bucket.update(total_questions=0, total_marks=0, max_possible_marks=0)
    return bucket


def _add(bucket: Dict[str, Any], result: QuestionResult) -> None:
    bucket["total_questions"] += 1
    bucket[_COUNTER_FOR_OUTCOME[result.outcome]] += 1
    if result.attempted:
        bucket["attempted"] += 1
    bucket["total_marks"] += result.marks_awarded
    if result.outcome is not Outcome.UNGRADED:
        bucket["max_possible_marks"] += result.max_marks


def _percentage(total: float, maximum: float) -> float:
    if maximum <= 0:
        return 0.0
    return round(max(0.0, total / maximum * 100), 2)


def score(
    questions: Sequence[Question],
    answers: Mapping[int, Any],
    time_spent_per_question_ms: Optional[Mapping[int, int]] = None,
    policy: Optional[ScoringPolicy] = None,
    elapsed_ms: Optional[int] = None,
) -> TestResults:
    """
    Score a completed attempt.

    A question without an answer key is ungraded: it awards 0 and is left out
    of max-possible marks. An answer whose shape does not fit its question is
    treated as unanswered and reported as a MalformedAnswer diagnostic.

    Args:
        questions:                  the question set, in display order.
        answers:                    {question.id: Answer | raw value}.
        time_spent_per_question_ms: {question.id: ms}; reported as whole seconds.
        policy:                     tolerance / partial-credit settings.
        elapsed_ms:                 total session time; defaults to the sum of
                                    per-question time. Reported as whole minutes.

    Returns:
        TestResults with overall, subject-wise (order of first appearance) and
        question-wise breakdowns.
    """
    policy = policy or _DEFAULT_POLICY
    time_spent = time_spent_per_question_ms or {}

    question_results: List[QuestionResult] = []
    diagnostics: List[Diagnostic] = []
    overall = _new_bucket()
    by_subject: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()

    for q in questions:
        raw = answers.get(q.id)
        user_answer = None
        try:
            outcome, awarded = mark_question(q, raw, policy)
            response = to_answer(q.type, raw)
            if not isinstance(response, Unanswered):
                user_answer = response
        except MalformedAnswer as e:
            logger.warning(f"score: Q{q.number} (id={q.id}) malformed answer treated as unanswered — {e}")
            diagnostics.append(Diagnostic(
                kind="MalformedAnswer",
                question_id=q.id,
                question_number=q.number,
                message=str(e),
            ))
            outcome, awarded = Outcome.UNANSWERED, 0

        result = QuestionResult(
            question_id=q.id,
            question_number=q.number,
            subject=q.subject,
            type=q.type,
            outcome=outcome,
            marks_awarded=awarded,
            max_marks=q.marks,
            time_spent_seconds=int(time_spent.get(q.id, 0)) // 1000,
            user_answer=user_answer,
            correct_answer=q.correct_answer,
        )
        question_results.append(result)

        _add(overall, result)
        _add(by_subject.setdefault(q.subject, _new_bucket()), result)

    if elapsed_ms is None:
        elapsed_ms = sum(int(time_spent.get(q.id, 0)) for q in questions)

    subject_wise = tuple(
        SubjectWiseResult(subject=subject, **bucket)
        for subject, bucket in by_subject.items()
    )

    results = TestResults(
        overall=OverallResult(
            **overall,
            percentage=_percentage(overall["total_marks"], overall["max_possible_marks"]),
            total_time_spent_minutes=max(0, int(elapsed_ms)) // 60_000,
        ),
        subject_wise=subject_wise,
        question_wise=tuple(question_results),
        diagnostics=tuple(diagnostics),
    )
    logger.info(
        f"score: {results.overall.total_marks}/{results.overall.max_possible_marks} "
        f"({results.overall.percentage}%), {results.overall.attempted}/{len(questions)} attempted"
    )
    return results


def score_snapshot(snapshot: SessionSnapshot, policy: Optional[ScoringPolicy] = None) -> TestResults:
    """Score a frozen session snapshot (elapsed time = duration - remaining)."""
    return score(
        snapshot.questions,
        snapshot.answers,
        snapshot.time_spent_per_question_ms,
        policy=policy,
        elapsed_ms=snapshot.elapsed_ms if snapshot.duration_ms else None,
    )


def incorrect_questions(results: TestResults) -> List[QuestionResult]:
    """
    Question results for the review list: wrong, partially right, or unanswered.

    Ungraded questions have no key and are left out. Original order kept.
    """
    return [
        r for r in results.question_wise
        if r.outcome in (Outcome.INCORRECT, Outcome.PARTIAL, Outcome.UNANSWERED)
    ]
