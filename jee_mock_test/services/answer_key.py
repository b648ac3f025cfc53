"""
services/answer_key.py

Answer-key parsing.
Public API:
  - interpret_answer_value(raw) -> Answer | None
  - parse_answer_key(rows) -> AnswerKey
  - load_answer_key_file(path) -> AnswerKey    : .xlsx / .csv sheet

Sheet format: header row, column A = question number,
column B = answer ("B", "A,C", or a numeric literal).
Bad rows are skipped with a diagnostic; one bad row never fails the whole key.
"""

import logging
import math
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from jee_mock_test.models.diagnostic import Diagnostic
from jee_mock_test.models.question_model import MultiAnswer, NumericalAnswer, SingleAnswer

logger = logging.getLogger(__name__)

KeyAnswer = Union[SingleAnswer, MultiAnswer, NumericalAnswer]


class AnswerKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: Dict[int, KeyAnswer] = Field(default_factory=dict)
    diagnostics: Tuple[Diagnostic, ...] = ()

    def get(self, number: int) -> Optional[KeyAnswer]:
        return self.entries.get(number)

    def __len__(self) -> int:
        return len(self.entries)


def _is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, float) and math.isnan(raw):
        return True
    return isinstance(raw, str) and not raw.strip()


def interpret_answer_value(raw: Any) -> Optional[KeyAnswer]:
    """
    Raw answer cell → Answer variant.

    - contains a comma        → MultiAnswer (trimmed, upper-cased tokens)
    - parses as a number      → NumericalAnswer
    - anything else           → SingleAnswer (upper-cased)
    - blank / NaN             → None
    """
    if _is_blank(raw):
        return None
    if isinstance(raw, bool):
        raise ValueError(f"boolean is not an answer: {raw!r}")
    if isinstance(raw, (list, tuple, set, frozenset)):
        keys = frozenset(str(k).strip().upper() for k in raw if str(k).strip())
        return MultiAnswer(keys=keys) if keys else None
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            raise ValueError(f"non-finite numeric answer: {raw!r}")
        return NumericalAnswer(value=float(raw))

    text = str(raw).strip()
    if "," in text:
        keys = frozenset(t.strip().upper() for t in text.split(",") if t.strip())
        return MultiAnswer(keys=keys) if keys else None
    try:
        value = float(text)
    except ValueError:
        return SingleAnswer(key=text.upper())
    if not math.isfinite(value):
        # "nan" / "inf" are not numeric answers
        return SingleAnswer(key=text.upper())
    return NumericalAnswer(value=value)


def _parse_number(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError("boolean")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValueError("not an integer")
        number = int(raw)
    else:
        number = int(str(raw).strip())
    if number <= 0:
        raise ValueError("must be positive")
    return number


def parse_answer_key(rows: Union[Mapping[Any, Any], Iterable[Tuple[Any, Any]]]) -> AnswerKey:
    """
    (question number, raw answer) pairs → AnswerKey.

    Rows with an unparseable or non-positive question number, or a blank or
    unusable answer, are skipped and reported in AnswerKey.diagnostics.
    A later row for the same number overrides an earlier one.
    """
    items = rows.items() if isinstance(rows, Mapping) else rows
    entries: Dict[int, KeyAnswer] = {}
    diagnostics: List[Diagnostic] = []

    for row_idx, (raw_number, raw_answer) in enumerate(items, start=1):
        try:
            number = _parse_number(raw_number)
        except (TypeError, ValueError) as e:
            logger.warning(f"answer key row {row_idx}: invalid question number {raw_number!r} ({e})")
            diagnostics.append(Diagnostic(
                kind="InvalidQuestionNumber",
                message=f"row {row_idx}: invalid question number {raw_number!r}",
            ))
            continue

        try:
            answer = interpret_answer_value(raw_answer)
        except ValueError as e:
            answer = None
            logger.warning(f"answer key Q{number}: unusable answer {raw_answer!r} ({e})")

        if answer is None:
            diagnostics.append(Diagnostic(
                kind="BlankAnswer",
                question_number=number,
                message=f"row {row_idx}: no usable answer for Q{number}",
            ))
            continue

        entries[number] = answer

    logger.info(f"parse_answer_key: {len(entries)} answers parsed, {len(diagnostics)} rows skipped")
    return AnswerKey(entries=entries, diagnostics=tuple(diagnostics))


def load_answer_key_file(path: str) -> AnswerKey:
    """
    Read an answer-key sheet (first row is a header, columns A/B used).

    Raises:
        ValueError: unsupported extension, unreadable file, or fewer than two columns.
    """
    ext = os.path.splitext(path)[1].lower()
    try:
        if ext == ".xlsx":
            df = pd.read_excel(path, engine="openpyxl", header=0, dtype=object)
        elif ext == ".csv":
            df = pd.read_csv(path, header=0, dtype=str, keep_default_na=False)
        else:
            raise ValueError(f"unsupported answer key format: {ext or path}")
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"load_answer_key_file: cannot read {path} - {e}")
        raise ValueError(f"cannot read answer key file {path}: {e}") from e

    if df.shape[1] < 2:
        raise ValueError("answer key needs two columns: question number, answer")

    rows = [(r[0], r[1]) for r in df.iloc[:, :2].itertuples(index=False, name=None)]
    logger.info(f"load_answer_key_file: {len(rows)} rows read from {os.path.basename(path)}")
    return parse_answer_key(rows)
