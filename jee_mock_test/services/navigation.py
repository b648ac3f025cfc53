"""
services/navigation.py

Test-taking controller: the state machine over
    not-started → in-progress → completed
that drives the SessionStore, the countdown / per-question timers and,
on submission, the scoring engine.

Every public method runs under one re-entrant lock, so a ticker thread and
UI calls never interleave mid-update.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from config import TICK_INTERVAL_MS
from jee_mock_test.errors import IndexOutOfRange, SessionNotActive
from jee_mock_test.models.question_model import Question, Subject, normalize_subject
from jee_mock_test.models.results import TestResults
from jee_mock_test.services.scoring import ScoringPolicy, score_snapshot
from jee_mock_test.services.session_store import SessionStore
from jee_mock_test.services.timer import (
    Clock,
    CountdownTimer,
    QuestionStopwatch,
    SystemClock,
    Ticker,
)

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[TestResults, bool], None]


class SessionStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class QuestionStatus(str, Enum):
    ANSWERED = "answered"
    MARKED = "marked"
    MARKED_ANSWERED = "marked-answered"
    UNANSWERED = "unanswered"


class PaletteSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    answered: int
    marked: int
    marked_answered: int
    unanswered: int


class NavigationController:
    """
    Orchestrates one attempt.

    Args:
        store:       session state + persistence.
        clock:       time source used by poll() (SystemClock by default).
        policy:      scoring policy applied on submission.
        on_complete: called once with (results, auto_submitted) on completion.
    """

    def __init__(
        self,
        store: SessionStore,
        clock: Optional[Clock] = None,
        policy: Optional[ScoringPolicy] = None,
        on_complete: Optional[CompletionHandler] = None,
        tick_interval_ms: int = TICK_INTERVAL_MS,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._policy = policy
        self._on_complete = on_complete
        self._tick_interval_ms = tick_interval_ms
        self._lock = threading.RLock()

        self._countdown: Optional[CountdownTimer] = None
        self._stopwatch = QuestionStopwatch()
        self._ticker: Optional[Ticker] = None
        self._ticker_generation = 0
        self._last_poll_ms: Optional[int] = None
        self._results: Optional[TestResults] = None

    # ── state ───────────────────────────────────────────────────────────────

    @property
    def status(self) -> SessionStatus:
        if not self._store.started:
            return SessionStatus.NOT_STARTED
        if self._store.completed:
            return SessionStatus.COMPLETED
        return SessionStatus.IN_PROGRESS

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def current_question(self) -> Optional[Question]:
        return self._store.current_question

    @property
    def current_index(self) -> int:
        return self._store.current_index

    @property
    def current_subject(self) -> Subject:
        return self._store.current_subject

    @property
    def time_remaining_ms(self) -> int:
        return self._store.time_remaining_ms

    @property
    def results(self) -> Optional[TestResults]:
        return self._results

    @property
    def auto_submitted(self) -> bool:
        return self._store.auto_submitted

    @property
    def timing_question_id(self) -> Optional[int]:
        """Question currently accruing per-question time (None when paused)."""
        return self._stopwatch.question_id

    def _require_in_progress(self) -> None:
        if self.status is not SessionStatus.IN_PROGRESS:
            raise SessionNotActive(f"test is {self.status.value}")

    # ── lifecycle ───────────────────────────────────────────────────────────

    def _start_clocks(self) -> None:
        self._countdown = CountdownTimer(self._store.time_remaining_ms, on_expire=self._on_time_up)
        self._countdown.start()
        current = self._store.current_question
        if current is not None:
            self._stopwatch.start(current.id)
        self._last_poll_ms = self._clock.now_ms()

    def _stop_clocks(self) -> None:
        if self._countdown is not None:
            self._countdown.stop()
        self._stopwatch.stop()
        self._last_poll_ms = None
        if self._ticker is not None:
            # the ticker thread may be waiting on our lock: do not join it here
            self._ticker_generation += 1
            self._ticker.cancel(wait=False)
            self._ticker = None

    def start(self, questions: Sequence[Question], duration_ms: int) -> None:
        """not-started → in-progress. Raises AlreadyStarted on a live session."""
        with self._lock:
            self._store.initialize(questions, duration_ms)
            self._results = None
            self._start_clocks()

    def resume(self) -> bool:
        """
        Pick up a saved in-progress attempt; False when there is none.

        An attempt saved with no time left is auto-submitted on the spot.
        """
        with self._lock:
            if not self._store.resume():
                return False
            self._results = None
            self._start_clocks()
            if self._store.time_remaining_ms == 0:
                logger.info("resumed attempt has no time left")
                self._countdown.advance(0)
            return True

    def reset(self) -> None:
        """Any state → not-started; clears the saved attempt."""
        with self._lock:
            self._stop_clocks()
            self._countdown = None
            self._results = None
            self._store.reset()
            logger.info("session reset")

    def submit(self, auto: bool = False) -> TestResults:
        """
        in-progress → completed. Scores the final snapshot.

        auto=True marks a timer-driven submission; otherwise identical.
        """
        with self._lock:
            self._require_in_progress()
            self._stop_clocks()
            self._store.complete(auto=auto)
            self._results = score_snapshot(self._store.snapshot(), self._policy)
            if self._on_complete is not None:
                self._on_complete(self._results, auto)
            return self._results

    def _on_time_up(self) -> None:
        logger.info("time expired, auto-submitting")
        self.submit(auto=True)

    # ── timing ──────────────────────────────────────────────────────────────

    def tick(self, delta_ms: int) -> int:
        """
        Advance test time by delta_ms. No-op unless in progress.

        The consumed time accrues to the question the stopwatch is running
        for. Reaching zero auto-submits (exactly once).
        """
        with self._lock:
            if self.status is not SessionStatus.IN_PROGRESS or self._countdown is None:
                return 0
            qid = self._stopwatch.question_id
            applied = min(max(0, delta_ms), self._countdown.remaining_ms)
            if applied:
                self._store.tick(applied, question_id=qid)
            # may fire _on_time_up → submit(auto=True)
            self._countdown.advance(applied)
            return applied

    def poll(self) -> int:
        """
        Tick by the clock time elapsed since the previous poll, in slices of
        at most the tick interval. Returns the time consumed.
        """
        with self._lock:
            if self.status is not SessionStatus.IN_PROGRESS or self._last_poll_ms is None:
                return 0
            now = self._clock.now_ms()
            pending = max(0, now - self._last_poll_ms)
            self._last_poll_ms = now
            consumed = 0
            while pending > 0 and self.status is SessionStatus.IN_PROGRESS:
                step = min(pending, self._tick_interval_ms)
                consumed += self.tick(step)
                pending -= step
            return consumed

    def start_ticker(self) -> Ticker:
        """Run poll() on a background thread until completion or reset."""
        with self._lock:
            self._require_in_progress()
            if self._ticker is None:
                generation = self._ticker_generation
                self._ticker = Ticker(lambda: self._poll_from_ticker(generation), self._tick_interval_ms)
                self._ticker.start()
            return self._ticker

    def _poll_from_ticker(self, generation: int) -> int:
        with self._lock:
            if generation != self._ticker_generation:
                # cancelled ticker, late wake-up
                return 0
            return self.poll()

    # ── navigation ──────────────────────────────────────────────────────────

    def _move_to(self, index: int) -> Question:
        q = self._store.set_current_index(index)
        self._stopwatch.switch(q.id)
        return q

    def jump_to_index(self, index: int) -> Question:
        """Raises IndexOutOfRange for an index outside the question list."""
        with self._lock:
            self._require_in_progress()
            if not 0 <= index < len(self._store.questions):
                raise IndexOutOfRange(f"question index {index} outside 0..{len(self._store.questions) - 1}")
            return self._move_to(index)

    def next(self) -> Question:
        """Move forward one question; no-op at the last one."""
        with self._lock:
            self._require_in_progress()
            idx = min(self._store.current_index + 1, len(self._store.questions) - 1)
            if idx == self._store.current_index:
                return self._store.current_question
            return self._move_to(idx)

    def previous(self) -> Question:
        """Move back one question; no-op at the first one."""
        with self._lock:
            self._require_in_progress()
            idx = max(self._store.current_index - 1, 0)
            if idx == self._store.current_index:
                return self._store.current_question
            return self._move_to(idx)

    def jump_to_subject(self, subject: Subject) -> Optional[Question]:
        """First question of subject; None (no move) if the subject has none."""
        with self._lock:
            self._require_in_progress()
            subject = Subject(normalize_subject(subject))
            for idx, q in enumerate(self._store.questions):
                if q.subject == subject:
                    return self._move_to(idx)
            return None

    def jump_to_number(self, number: int) -> Optional[Question]:
        """First question with display number; None (no move) if absent."""
        with self._lock:
            self._require_in_progress()
            for idx, q in enumerate(self._store.questions):
                if q.number == number:
                    return self._move_to(idx)
            return None

    # ── answers / review ────────────────────────────────────────────────────

    def answer(self, value: Any, question_id: Optional[int] = None) -> None:
        """Set the response of question_id (default: current question)."""
        with self._lock:
            self._require_in_progress()
            qid = question_id if question_id is not None else self._store.current_question.id
            self._store.set_answer(qid, value)

    def clear_response(self, question_id: Optional[int] = None) -> None:
        with self._lock:
            self._require_in_progress()
            qid = question_id if question_id is not None else self._store.current_question.id
            self._store.clear_answer(qid)

    def toggle_review(self, question_id: Optional[int] = None) -> bool:
        with self._lock:
            self._require_in_progress()
            qid = question_id if question_id is not None else self._store.current_question.id
            return self._store.toggle_review(qid)

    def mark_for_review(self, question_id: Optional[int] = None) -> None:
        with self._lock:
            self._require_in_progress()
            qid = question_id if question_id is not None else self._store.current_question.id
            self._store.mark_review(qid)

    def save_and_next(self, value: Any = None) -> Question:
        """Optionally record value for the current question, then move on."""
        with self._lock:
            if value is not None:
                self.answer(value)
            return self.next()

    # ── palette ─────────────────────────────────────────────────────────────

    def question_status(self, question_id: int) -> QuestionStatus:
        with self._lock:
            self._store.index_of(question_id)
            answered = self._store.answer_for(question_id) is not None
            marked = self._store.is_marked(question_id)
            if answered and marked:
                return QuestionStatus.MARKED_ANSWERED
            if answered:
                return QuestionStatus.ANSWERED
            if marked:
                return QuestionStatus.MARKED
            return QuestionStatus.UNANSWERED

    def palette_summary(self) -> PaletteSummary:
        with self._lock:
            counts: Dict[QuestionStatus, int] = {s: 0 for s in QuestionStatus}
            for q in self._store.questions:
                counts[self.question_status(q.id)] += 1
            return PaletteSummary(
                total=len(self._store.questions),
                answered=counts[QuestionStatus.ANSWERED] + counts[QuestionStatus.MARKED_ANSWERED],
                marked=counts[QuestionStatus.MARKED] + counts[QuestionStatus.MARKED_ANSWERED],
                marked_answered=counts[QuestionStatus.MARKED_ANSWERED],
                unanswered=counts[QuestionStatus.UNANSWERED] + counts[QuestionStatus.MARKED],
            )
