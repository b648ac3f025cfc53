import threading

import pytest

from jee_mock_test.errors import AlreadyStarted, IndexOutOfRange, PersistenceFailure, SessionNotActive
from jee_mock_test.models.question_model import SingleAnswer, Subject
from jee_mock_test.models.results import Outcome
from jee_mock_test.models.session_state import SessionState
from jee_mock_test.models.test_config import default_configuration
from jee_mock_test.services.answer_key import parse_answer_key
from jee_mock_test.services.navigation import (
    NavigationController,
    QuestionStatus,
    SessionStatus,
)
from jee_mock_test.services.persistence import InMemoryStore
from jee_mock_test.services.question_builder import build_questions
from jee_mock_test.services.session_store import SessionStore, dump_state
from jee_mock_test.services.timer import ManualClock

from conftest import make_question


# ── lifecycle ────────────────────────────────────────────────────────────────

def test_status_transitions(controller, questions):
    assert controller.status is SessionStatus.NOT_STARTED
    controller.start(questions, 60_000)
    assert controller.status is SessionStatus.IN_PROGRESS
    with pytest.raises(AlreadyStarted):
        controller.start(questions, 60_000)
    controller.submit()
    assert controller.status is SessionStatus.COMPLETED
    controller.reset()
    assert controller.status is SessionStatus.NOT_STARTED
    assert controller.results is None


def test_operations_before_start_raise(controller):
    with pytest.raises(SessionNotActive):
        controller.next()
    with pytest.raises(SessionNotActive):
        controller.answer("A")
    with pytest.raises(SessionNotActive):
        controller.submit()
    assert controller.tick(1000) == 0


def test_manual_submit(controller, questions, completed):
    controller.start(questions, 60_000)
    controller.answer("B")
    results = controller.submit()
    assert completed == [(results, False)]
    assert controller.results is results
    assert results.overall.total_marks == 4
    assert not controller.auto_submitted
    with pytest.raises(SessionNotActive):
        controller.answer("C")
    with pytest.raises(SessionNotActive):
        controller.submit()


# ── navigation ───────────────────────────────────────────────────────────────

def test_next_and_previous_clamp(controller, questions):
    controller.start(questions, 60_000)
    assert controller.previous().id == 1
    assert controller.current_index == 0
    for _ in range(10):
        controller.next()
    assert controller.current_index == 4
    assert controller.current_question.id == 5


def test_jump_to_index(controller, questions):
    controller.start(questions, 60_000)
    assert controller.jump_to_index(2).id == 3
    assert controller.current_subject is Subject.CHEMISTRY
    with pytest.raises(IndexOutOfRange):
        controller.jump_to_index(5)
    with pytest.raises(IndexOutOfRange):
        controller.jump_to_index(-1)
    assert controller.current_index == 2


def test_jump_to_subject(controller, questions):
    controller.start(questions, 60_000)
    assert controller.jump_to_subject("maths").id == 5
    assert controller.current_subject is Subject.MATHEMATICS
    assert controller.jump_to_subject(Subject.PHYSICS).id == 1


def test_jump_to_subject_without_questions_is_a_noop(controller):
    controller.start([make_question(1), make_question(2)], 60_000)
    controller.next()
    assert controller.jump_to_subject(Subject.CHEMISTRY) is None
    assert controller.current_index == 1


def test_jump_to_number(controller):
    controller.start([make_question(1, number=7), make_question(2, number=9)], 60_000)
    assert controller.jump_to_number(9).id == 2
    assert controller.jump_to_number(8) is None
    assert controller.current_index == 1


# ── answers / palette ────────────────────────────────────────────────────────

def test_save_and_next(controller, questions):
    controller.start(questions, 60_000)
    assert controller.save_and_next("B").id == 2
    assert controller.save_and_next().id == 3
    assert controller.store.answered_ids() == frozenset({1})


def test_palette(controller, questions):
    controller.start(questions, 60_000)
    controller.answer("A", question_id=1)
    controller.toggle_review(question_id=2)
    controller.answer(25.5, question_id=3)
    controller.mark_for_review(question_id=3)

    assert controller.question_status(1) is QuestionStatus.ANSWERED
    assert controller.question_status(2) is QuestionStatus.MARKED
    assert controller.question_status(3) is QuestionStatus.MARKED_ANSWERED
    assert controller.question_status(4) is QuestionStatus.UNANSWERED

    summary = controller.palette_summary()
    assert (summary.total, summary.answered, summary.marked, summary.marked_answered, summary.unanswered) == (5, 2, 2, 1, 3)

    controller.clear_response(question_id=3)
    assert controller.question_status(3) is QuestionStatus.UNANSWERED


# ── timing ───────────────────────────────────────────────────────────────────

def test_time_accrues_to_viewed_question(controller, questions):
    controller.start(questions, 60_000)
    assert controller.timing_question_id == 1
    controller.tick(1000)
    controller.next()
    assert controller.timing_question_id == 2
    controller.tick(2500)
    controller.jump_to_index(0)
    controller.tick(500)
    assert controller.store.time_spent_ms(1) == 1500
    assert controller.store.time_spent_ms(2) == 2500
    assert controller.time_remaining_ms == 56_000


def test_time_up_auto_submits_exactly_once(controller, questions, completed):
    controller.start(questions, 3000)
    controller.answer("B")
    assert controller.tick(2000) == 2000
    assert completed == []
    assert controller.tick(5000) == 1000
    assert controller.time_remaining_ms == 0
    assert controller.status is SessionStatus.COMPLETED
    assert controller.auto_submitted
    assert len(completed) == 1
    results, auto = completed[0]
    assert auto is True
    assert results.overall.total_marks == 4
    assert results.overall.total_time_spent_minutes == 0

    assert controller.tick(1000) == 0
    assert controller.time_remaining_ms == 0
    assert controller.timing_question_id is None
    assert len(completed) == 1


def test_poll_uses_clock_in_bounded_slices(controller, questions, clock):
    controller.start(questions, 60_000)
    clock.advance(2500)
    assert controller.poll() == 2500
    assert controller.time_remaining_ms == 57_500
    assert controller.poll() == 0


def test_poll_past_the_end(controller, questions, clock, completed):
    controller.start(questions, 2000)
    clock.advance(10_000)
    assert controller.poll() == 2000
    assert controller.status is SessionStatus.COMPLETED
    assert [auto for _, auto in completed] == [True]


def test_resume_continues_saved_attempt(persistence, questions, clock):
    first = NavigationController(SessionStore(persistence), clock=clock)
    first.start(questions, 60_000)
    first.jump_to_index(3)
    first.answer("D")
    first.tick(4000)
    first.store.save()

    second = NavigationController(SessionStore(persistence), clock=clock)
    assert second.resume() is True
    assert second.status is SessionStatus.IN_PROGRESS
    assert second.current_question.id == 4
    assert second.timing_question_id == 4
    assert second.time_remaining_ms == 56_000
    assert second.submit().overall.correct == 1


def test_resume_without_saved_attempt(controller):
    assert controller.resume() is False
    assert controller.status is SessionStatus.NOT_STARTED


class RejectCompletedStore(InMemoryStore):
    """Accepts in-progress saves, fails the save that records completion."""

    def save(self, key, data):
        if '"completed":true' in data:
            raise PersistenceFailure("disk full")
        super().save(key, data)


def test_resume_with_no_time_left_auto_submits_once(persistence, questions, clock, completed):
    state = SessionState(
        questions=questions,
        answers={1: SingleAnswer(key="B")},
        time_remaining_ms=0,
        duration_ms=60_000,
        started=True,
    )
    persistence.save("mock_test_state", dump_state(state))

    controller = NavigationController(
        SessionStore(persistence),
        clock=clock,
        on_complete=lambda results, auto: completed.append((results, auto)),
    )
    assert controller.resume() is True
    for _ in range(5):
        clock.advance(1000)
        controller.poll()
        controller.tick(1000)

    assert controller.status is SessionStatus.COMPLETED
    assert controller.auto_submitted
    assert controller.time_remaining_ms == 0
    assert [auto for _, auto in completed] == [True]
    results, _ = completed[0]
    assert results.overall.total_marks == 4
    assert results.overall.total_time_spent_minutes == 1


def test_lost_completion_save_is_recovered_on_resume(questions, clock, caplog):
    persistence = RejectCompletedStore()
    first_done = []
    first = NavigationController(
        SessionStore(persistence, autosave_interval_ms=1000),
        clock=clock,
        on_complete=lambda results, auto: first_done.append(auto),
    )
    first.start(questions, 3000)
    first.answer("B")
    first.tick(3000)
    assert first_done == [True]
    assert "PersistenceFailure" in caplog.text

    second_done = []
    second = NavigationController(
        SessionStore(persistence),
        clock=clock,
        on_complete=lambda results, auto: second_done.append(auto),
    )
    assert second.resume() is True
    second.tick(1000)
    assert second.status is SessionStatus.COMPLETED
    assert second_done == [True]
    assert second.results.overall.correct == 1


def test_ticker_drives_auto_submit(questions):
    done = threading.Event()
    controller = NavigationController(
        SessionStore(InMemoryStore()),
        tick_interval_ms=5,
        on_complete=lambda results, auto: done.set(),
    )
    controller.start(questions, 50)
    ticker = controller.start_ticker()
    assert done.wait(5)
    ticker.cancel()
    assert controller.status is SessionStatus.COMPLETED
    assert controller.auto_submitted
    assert controller.time_remaining_ms == 0


def test_reset_stops_ticker(questions):
    controller = NavigationController(SessionStore(InMemoryStore()), clock=ManualClock(), tick_interval_ms=5)
    controller.start(questions, 60_000)
    ticker = controller.start_ticker()
    assert controller.start_ticker() is ticker
    controller.reset()
    ticker.cancel()
    assert not ticker.alive


# ── end to end ───────────────────────────────────────────────────────────────

def test_full_paper_flow(clock):
    key = parse_answer_key({1: "B", 21: "A, B", 26: "12.5", 31: "C"})
    qset = build_questions(default_configuration("Mock 1"), key)
    assert len(qset) == 90
    assert qset.affected_count == 86

    completed = []
    controller = NavigationController(
        SessionStore(InMemoryStore()),
        clock=clock,
        on_complete=lambda results, auto: completed.append(auto),
    )
    controller.start(qset.questions, 180 * 60_000)
    controller.answer("B")                              # Q1  +4
    controller.jump_to_number(21)
    controller.answer(["A"])                            # Q21 +1 partial
    controller.jump_to_number(26)
    controller.answer(12.505)                           # Q26 +4
    controller.jump_to_subject("chemistry")
    controller.answer("D")                              # Q31 -1
    controller.jump_to_number(61)
    controller.answer("A")                              # Q61 ungraded
    clock.advance(90_000)
    controller.poll()

    results = controller.submit()
    assert completed == [False]
    o = results.overall
    assert (o.correct, o.partial_correct, o.incorrect, o.ungraded) == (2, 1, 1, 86)
    assert o.total_marks == 8
    assert o.max_possible_marks == 16
    assert o.percentage == 50.0
    assert o.total_time_spent_minutes == 1
    assert results.for_subject(Subject.MATHEMATICS).total_marks == 0
    assert [r.outcome for r in results.question_wise][60] is Outcome.UNGRADED
