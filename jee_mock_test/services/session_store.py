"""
services/session_store.py

Authoritative in-memory state of one attempt plus its persistence boundary.

Saves on every answer / review / navigation change, on start and completion,
and every AUTOSAVE_INTERVAL_MS of ticked time. A failed save is logged and
never interrupts the mutation that triggered it.

Not thread-safe by itself; NavigationController serializes access.
"""

import logging
from typing import Any, Dict, FrozenSet, Optional, Sequence, Tuple

from pydantic import ValidationError

from config import AUTOSAVE_INTERVAL_MS, STATE_KEY
from jee_mock_test.errors import (
    AlreadyStarted,
    EmptyConfiguration,
    IndexOutOfRange,
    PersistenceFailure,
    SessionNotActive,
    UnknownQuestion,
)
from jee_mock_test.models.question_model import Question, Subject, Unanswered, to_answer
from jee_mock_test.models.session_state import SessionSnapshot, SessionState
from jee_mock_test.services.persistence import PersistenceStore

logger = logging.getLogger(__name__)


def dump_state(state: SessionState) -> str:
    """SessionState → JSON (review set written as a sorted list)."""
    return state.model_dump_json()


def load_state(data: str) -> SessionState:
    """JSON → SessionState (review list rebuilt as a set)."""
    return SessionState.model_validate_json(data)


class SessionStore:

    def __init__(
        self,
        persistence: PersistenceStore,
        key: str = STATE_KEY,
        autosave_interval_ms: int = AUTOSAVE_INTERVAL_MS,
    ):
        self._persistence = persistence
        self._key = key
        self._autosave_interval_ms = autosave_interval_ms
        self._since_save_ms = 0
        self._state = SessionState()
        self._index_by_id: Dict[int, int] = {}

    # ── read access ─────────────────────────────────────────────────────────

    @property
    def questions(self) -> Tuple[Question, ...]:
        return tuple(self._state.questions)

    @property
    def current_index(self) -> int:
        return self._state.current_index

    @property
    def current_question(self) -> Optional[Question]:
        return self._state.current_question

    @property
    def current_subject(self) -> Subject:
        return self._state.current_subject

    @property
    def time_remaining_ms(self) -> int:
        return self._state.time_remaining_ms

    @property
    def started(self) -> bool:
        return self._state.started

    @property
    def completed(self) -> bool:
        return self._state.completed

    @property
    def active(self) -> bool:
        return self._state.started and not self._state.completed

    @property
    def auto_submitted(self) -> bool:
        return self._state.auto_submitted

    def answer_for(self, question_id: int):
        return self._state.answers.get(question_id)

    def is_marked(self, question_id: int) -> bool:
        return question_id in self._state.marked_for_review

    def answered_ids(self) -> FrozenSet[int]:
        return frozenset(self._state.answers)

    def marked_ids(self) -> FrozenSet[int]:
        return frozenset(self._state.marked_for_review)

    def time_spent_ms(self, question_id: int) -> int:
        return self._state.time_spent_per_question_ms.get(question_id, 0)

    # ── helpers ─────────────────────────────────────────────────────────────

    def _reindex(self) -> None:
        self._index_by_id = {q.id: i for i, q in enumerate(self._state.questions)}

    def _require_active(self) -> None:
        if not self._state.started:
            raise SessionNotActive("test has not been started")
        if self._state.completed:
            raise SessionNotActive("test has already been submitted")

    def _question(self, question_id: int) -> Question:
        idx = self._index_by_id.get(question_id)
        if idx is None:
            raise UnknownQuestion(question_id)
        return self._state.questions[idx]

    def index_of(self, question_id: int) -> int:
        self._question(question_id)
        return self._index_by_id[question_id]

    # ── lifecycle ───────────────────────────────────────────────────────────

    def initialize(self, questions: Sequence[Question], duration_ms: int) -> None:
        """
        Seed a fresh attempt.

        Raises:
            AlreadyStarted:     the store holds a started attempt (call reset() first).
            EmptyConfiguration: questions is empty.
            ValueError:         non-positive duration or duplicate question ids.
        """
        if self._state.started:
            raise AlreadyStarted("a test is already in progress; reset before starting a new one")
        if not questions:
            raise EmptyConfiguration("cannot start a test without questions")
        if duration_ms <= 0:
            raise ValueError(f"duration must be positive, got {duration_ms}")
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise ValueError("question ids must be unique")

        self._state = SessionState(
            questions=list(questions),
            current_index=0,
            current_subject=questions[0].subject,
            time_remaining_ms=duration_ms,
            duration_ms=duration_ms,
            started=True,
        )
        self._reindex()
        self._since_save_ms = 0
        logger.info(f"session started: {len(questions)} questions, {duration_ms // 60000} min")
        self.save()

    def resume(self) -> bool:
        """
        Restore an in-progress attempt from the persistence store.

        Only a started, not yet completed attempt with at least one question
        is restored. Returns False (state untouched) otherwise.
        """
        if self._state.started:
            raise AlreadyStarted("cannot resume over a live session")
        try:
            data = self._persistence.load(self._key)
        except PersistenceFailure as e:
            logger.warning(f"resume: load failed — {e}")
            return False
        if not data:
            return False

        try:
            state = load_state(data)
        except (ValidationError, ValueError) as e:
            logger.warning(f"resume: saved state unreadable, starting fresh — {e}")
            return False
        if not state.is_resumable:
            logger.info("resume: saved state is not an in-progress test")
            return False

        state.current_index = min(state.current_index, len(state.questions) - 1)
        self._state = state
        self._reindex()
        self._since_save_ms = 0
        logger.info(
            f"session resumed: {len(state.answers)}/{len(state.questions)} answered, "
            f"{state.time_remaining_ms // 1000}s left"
        )
        return True

    def complete(self, auto: bool = False) -> None:
        self._require_active()
        self._state.completed = True
        self._state.auto_submitted = auto
        logger.info(f"session completed ({'auto' if auto else 'manual'} submit)")
        self.save()

    def reset(self) -> None:
        """Discard the attempt and its saved copy."""
        try:
            self._persistence.clear(self._key)
        except PersistenceFailure as e:
            logger.warning(f"reset: could not clear saved state — {e}")
        self._state = SessionState()
        self._index_by_id = {}
        self._since_save_ms = 0

    # ── mutations ───────────────────────────────────────────────────────────

    def set_answer(self, question_id: int, value: Any) -> None:
        """
        Insert or replace the response to a question.

        A blank string / empty collection / None removes the response.

        Raises:
            InvalidAnswerShape: value does not fit the question type (state unchanged).
        """
        self._require_active()
        q = self._question(question_id)
        answer = to_answer(q.type, value, q.options)
        if isinstance(answer, Unanswered):
            self._state.answers.pop(question_id, None)
        else:
            self._state.answers[question_id] = answer
        self.save()

    def clear_answer(self, question_id: int) -> None:
        """Remove the response and the review mark of a question."""
        self._require_active()
        self._question(question_id)
        self._state.answers.pop(question_id, None)
        self._state.marked_for_review.discard(question_id)
        self.save()

    def toggle_review(self, question_id: int) -> bool:
        """Flip the review mark; returns the new state."""
        self._require_active()
        self._question(question_id)
        marked = self._state.marked_for_review
        if question_id in marked:
            marked.discard(question_id)
        else:
            marked.add(question_id)
        self.save()
        return question_id in marked

    def mark_review(self, question_id: int) -> None:
        self._require_active()
        self._question(question_id)
        self._state.marked_for_review.add(question_id)
        self.save()

    def set_current_index(self, index: int) -> Question:
        self._require_active()
        if not 0 <= index < len(self._state.questions):
            raise IndexOutOfRange(f"question index {index} outside 0..{len(self._state.questions) - 1}")
        self._state.current_index = index
        q = self._state.questions[index]
        self._state.current_subject = q.subject
        self.save()
        return q

    def tick(self, delta_ms: int, question_id: Optional[int] = None) -> int:
        """
        Consume delta_ms of test time.

        Remaining time is floored at 0; the consumed time accrues to
        question_id (default: the current question). No-op unless active.
        Returns the time actually consumed.
        """
        if not self.active or delta_ms <= 0:
            return 0
        applied = min(delta_ms, self._state.time_remaining_ms)
        self._state.time_remaining_ms -= applied

        if question_id is None:
            current = self._state.current_question
            question_id = current.id if current is not None else None
        if question_id is not None and applied:
            spent = self._state.time_spent_per_question_ms
            spent[question_id] = spent.get(question_id, 0) + applied

        self._since_save_ms += applied
        if self._since_save_ms >= self._autosave_interval_ms:
            self.save()
        return applied

    # ── snapshot / persistence ──────────────────────────────────────────────

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot.from_state(self._state)

    def save(self) -> bool:
        """Best-effort write of the current state. Returns False on failure."""
        self._since_save_ms = 0
        try:
            self._persistence.save(self._key, dump_state(self._state))
        except Exception as e:
            logger.warning(f"PersistenceFailure: state not saved — {e}")
            return False
        return True
