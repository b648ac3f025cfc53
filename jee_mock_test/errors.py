"""
errors.py

Mock-test engine exception hierarchy.

Configuration and navigation errors are raised to the caller.
MalformedAnswer / PersistenceFailure are recovered locally and only logged.
"""


class MockTestError(Exception):
    """Base class for every error raised by the engine."""


class EmptyConfiguration(MockTestError, ValueError):
    """The configuration would produce zero questions."""


class AlreadyStarted(MockTestError, RuntimeError):
    """initialize() called on a live session without a reset."""


class SessionNotActive(MockTestError, RuntimeError):
    """Mutation attempted on a session that is not in progress."""


class InvalidAnswerShape(MockTestError, ValueError):
    """Answer value does not match the question's type."""


class UnknownQuestion(MockTestError, KeyError):
    """Question id is not part of the current question set."""


class IndexOutOfRange(MockTestError, IndexError):
    """Navigation target outside [0, len(questions) - 1]."""


class MalformedAnswer(MockTestError, ValueError):
    """Stored answer cannot be scored for its question (non-fatal)."""


class PersistenceFailure(MockTestError, RuntimeError):
    """Durable store read/write failed (non-fatal)."""
