"""
services/question_builder.py

Question-set generation from a paper configuration and an answer key.
Pure Python functions — no UI code, no global state.

Public API:
  - build_questions(config, answer_key=None, fallback=AnswerKeyFallback.REPORT) -> QuestionSet
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from config import DEFAULT_OPTION_KEYS
from jee_mock_test.errors import EmptyConfiguration, InvalidAnswerShape
from jee_mock_test.models.diagnostic import Diagnostic
from jee_mock_test.models.question_model import (
    MultiAnswer,
    NumericalAnswer,
    Question,
    QuestionType,
    SingleAnswer,
    Subject,
    normalize_subject,
    to_answer,
)
from jee_mock_test.models.test_config import RangeConfig, TestConfiguration
from jee_mock_test.services.answer_key import AnswerKey, parse_answer_key

logger = logging.getLogger(__name__)

# Range keys as they appear in a subject block (snake_case or upload-form camelCase)
_RANGE_KEYS: Dict[QuestionType, Tuple[str, ...]] = {
    QuestionType.SINGLE_CORRECT: ("single_correct", "singleCorrect"),
    QuestionType.MULTI_CORRECT: ("multi_correct", "multiCorrect"),
    QuestionType.NUMERICAL: ("numerical",),
}


class AnswerKeyFallback(str, Enum):
    """What a generated question gets when the answer key has no usable entry."""
    REPORT = "report"              # correct_answer=None, question is ungraded
    PLACEHOLDER = "placeholder"    # legacy defaults: "A", {"A", "B"}, 0


_PLACEHOLDERS = {
    QuestionType.SINGLE_CORRECT: SingleAnswer(key="A"),
    QuestionType.MULTI_CORRECT: MultiAnswer(keys=frozenset({"A", "B"})),
    QuestionType.NUMERICAL: NumericalAnswer(value=0.0),
}


class QuestionSet(BaseModel):
    """Builder output: questions sorted by number, plus what went wrong on the way."""
    model_config = ConfigDict(frozen=True)

    questions: Tuple[Question, ...]
    missing_answer_numbers: Tuple[int, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()

    @property
    def affected_count(self) -> int:
        """Questions whose answer key was missing or unusable."""
        return len(self.missing_answer_numbers)

    def __len__(self) -> int:
        return len(self.questions)


# ── helpers ──────────────────────────────────────────────────────────────────

def _default_options() -> Dict[str, str]:
    return {k: f"Option {k}" for k in DEFAULT_OPTION_KEYS}


def _coerce_key(qtype: QuestionType, answer: Any, options: Optional[Dict[str, str]]):
    """Fit an answer-key entry to the question type; a lone letter is a 1-member set."""
    if qtype is QuestionType.MULTI_CORRECT and isinstance(answer, SingleAnswer):
        answer = MultiAnswer(keys=frozenset({answer.key}))
    return to_answer(qtype, answer, options)


def _iter_ranges(
    config: Union[TestConfiguration, Mapping[str, Any]],
    diagnostics: List[Diagnostic],
) -> List[Tuple[Subject, QuestionType, RangeConfig]]:
    """
    Flatten the configuration into (subject, type, range) triples.

    A raw mapping is validated row by row: an invalid range is skipped with a
    diagnostic instead of rejecting the whole configuration.
    """
    if isinstance(config, TestConfiguration):
        return [
            (subject, qtype, rng)
            for subject, sub_cfg in config.subjects.items()
            for qtype, rng in sub_cfg.ranges().items()
        ]

    subjects = config.get("subjects", config)
    triples: List[Tuple[Subject, QuestionType, RangeConfig]] = []
    for raw_subject, block in subjects.items():
        try:
            subject = Subject(normalize_subject(raw_subject))
        except ValueError:
            logger.warning(f"build_questions: unknown subject {raw_subject!r} skipped")
            diagnostics.append(Diagnostic(kind="InvalidRange", message=f"unknown subject {raw_subject!r}"))
            continue
        if not isinstance(block, Mapping):
            diagnostics.append(Diagnostic(kind="InvalidRange", message=f"{subject.value}: not a mapping"))
            continue

        for qtype, keys in _RANGE_KEYS.items():
            raw = next((block[k] for k in keys if k in block), None)
            if raw is None:
                continue
            try:
                rng = raw if isinstance(raw, RangeConfig) else RangeConfig.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"build_questions: {subject.value}/{qtype.value} range skipped — {e.error_count()} error(s)")
                diagnostics.append(Diagnostic(
                    kind="InvalidRange",
                    message=f"{subject.value}/{qtype.value}: {e.errors()[0]['msg']}",
                ))
                continue
            triples.append((subject, qtype, rng))
    return triples


# ══════════════════════════════════════════════════════════════════════════════
# Public API
# ══════════════════════════════════════════════════════════════════════════════

def build_questions(
    config: Union[TestConfiguration, Mapping[str, Any]],
    answer_key: Union[AnswerKey, Mapping[Any, Any], None] = None,
    fallback: AnswerKeyFallback = AnswerKeyFallback.REPORT,
) -> QuestionSet:
    """
    Generate one Question per number of every enabled range.

    ids are assigned 1, 2, 3... in generation order; the result is sorted by
    question number (stable, so overlapping ranges keep generation order).
    Overlapping ranges are not de-duplicated.

    Args:
        config:     TestConfiguration, or the raw mapping the upload form produces.
        answer_key: AnswerKey, or a raw {number: answer} mapping.
        fallback:   behaviour for numbers without a usable key entry.

    Returns:
        QuestionSet with missing_answer_numbers listing every affected number.

    Raises:
        EmptyConfiguration: no question would be generated.
    """
    diagnostics: List[Diagnostic] = []

    if answer_key is None:
        key = AnswerKey()
    elif isinstance(answer_key, AnswerKey):
        key = answer_key
    else:
        key = parse_answer_key(answer_key)
    diagnostics.extend(key.diagnostics)

    triples = _iter_ranges(config, diagnostics)

    questions: List[Question] = []
    missing: List[int] = []
    next_id = 1

    for subject, qtype, rng in triples:
        if not rng.enabled:
            continue
        options = None if qtype is QuestionType.NUMERICAL else _default_options()

        for number in range(rng.start, rng.end + 1):
            correct = None
            entry = key.get(number)
            if entry is not None:
                try:
                    correct = _coerce_key(qtype, entry, options)
                except InvalidAnswerShape as e:
                    logger.warning(f"build_questions: Q{number} key does not fit {qtype.value} — {e}")
                    diagnostics.append(Diagnostic(
                        kind="AnswerKeyMismatch",
                        question_number=number,
                        message=f"Q{number}: {e}",
                    ))

            if correct is None:
                missing.append(number)
                if entry is None:
                    diagnostics.append(Diagnostic(
                        kind="MissingAnswerKey",
                        question_number=number,
                        message=f"Q{number}: no answer key entry",
                    ))
                if fallback is AnswerKeyFallback.PLACEHOLDER:
                    correct = _PLACEHOLDERS[qtype]

            questions.append(Question(
                id=next_id,
                number=number,
                subject=subject,
                type=qtype,
                text=f"Question {number}",
                options=options,
                correct_answer=correct,
                marks=rng.marks,
                negative_mark=rng.negative_mark,
            ))
            next_id += 1

    if not questions:
        logger.error("build_questions: configuration produced no questions")
        raise EmptyConfiguration("no enabled question ranges in the configuration")

    questions.sort(key=lambda q: q.number)

    if missing:
        logger.warning(f"build_questions: {len(missing)} question(s) without a usable answer key ({fallback.value})")
    logger.info(f"build_questions: {len(questions)} questions generated")

    return QuestionSet(
        questions=tuple(questions),
        missing_answer_numbers=tuple(sorted(set(missing))),
        diagnostics=tuple(diagnostics),
    )
