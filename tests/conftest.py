import pytest

from jee_mock_test.models.question_model import Question
from jee_mock_test.services.navigation import NavigationController
from jee_mock_test.services.persistence import InMemoryStore
from jee_mock_test.services.session_store import SessionStore
from jee_mock_test.services.timer import ManualClock

OPTIONS = {"A": "Option A", "B": "Option B", "C": "Option C", "D": "Option D"}


def make_question(qid, subject="physics", qtype="single-correct", key="B", marks=4, negative_mark=-1, number=None):
    return Question(
        id=qid,
        number=number or qid,
        subject=subject,
        type=qtype,
        text=f"Question {number or qid}",
        options=None if qtype == "numerical" else dict(OPTIONS),
        correct_answer=key,
        marks=marks,
        negative_mark=negative_mark,
    )


@pytest.fixture
def questions():
    """Small paper: 2 physics, 2 chemistry, 1 maths, mixed types."""
    return [
        make_question(1, "physics", "single-correct", "B"),
        make_question(2, "physics", "multi-correct", ["A", "B"], negative_mark=-2),
        make_question(3, "chemistry", "numerical", 25.5, negative_mark=0),
        make_question(4, "chemistry", "single-correct", "D"),
        make_question(5, "mathematics", "single-correct", "A"),
    ]


@pytest.fixture
def persistence():
    return InMemoryStore()


@pytest.fixture
def store(persistence):
    return SessionStore(persistence)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def completed():
    return []


@pytest.fixture
def controller(store, clock, completed):
    return NavigationController(
        store,
        clock=clock,
        on_complete=lambda results, auto: completed.append((results, auto)),
    )
