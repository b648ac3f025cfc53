"""
services/timer.py

Clocks and countdowns for a running mock test. No UI code.

  - Clock / SystemClock / ManualClock : time source (ms, monotonic)
  - CountdownTimer                    : overall test time, expires exactly once
  - QuestionStopwatch                 : which question is accruing time right now
  - Ticker                            : optional background thread calling a poll function
  - format_remaining / is_low_time    : display helpers
"""

import logging
import threading
import time
from typing import Callable, Optional, Protocol

from config import LOW_TIME_WARNING_MS, TICK_INTERVAL_MS

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Monotonic wall clock; unaffected by system time changes."""

    def now_ms(self) -> int:
        return int(time.monotonic() * 1000)


class ManualClock:
    """Clock advanced by hand (tests, replay)."""

    def __init__(self, start_ms: int = 0):
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def advance(self, delta_ms: int) -> None:
        if delta_ms < 0:
            raise ValueError("a clock cannot go backwards")
        self._now += delta_ms


class CountdownTimer:
    """
    Counts down from a duration to zero.

    advance() never takes remaining time below 0 and fires on_expire
    exactly once, on the first advance that finds it at 0. A stopped timer
    ignores advance() calls.
    """

    def __init__(self, duration_ms: int, on_expire: Optional[Callable[[], None]] = None):
        if duration_ms < 0:
            raise ValueError("duration must not be negative")
        self.remaining_ms = duration_ms
        self._on_expire = on_expire
        self._running = False
        self._fired = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def expired(self) -> bool:
        return self._fired

    def start(self) -> None:
        if not self._fired:
            self._running = True

    def stop(self) -> None:
        self._running = False

    def advance(self, delta_ms: int) -> int:
        """
        Consume up to delta_ms; returns the time actually consumed.

        A running timer already at 0 expires on its next advance, even advance(0).
        """
        if not self._running:
            return 0
        applied = min(max(0, delta_ms), self.remaining_ms)
        self.remaining_ms -= applied
        if self.remaining_ms == 0 and not self._fired:
            self._fired = True
            self._running = False
            logger.info("countdown reached zero")
            if self._on_expire is not None:
                self._on_expire()
        return applied


class QuestionStopwatch:
    """Tracks the single question currently accruing time (None = paused)."""

    def __init__(self):
        self.question_id: Optional[int] = None

    @property
    def running(self) -> bool:
        return self.question_id is not None

    def start(self, question_id: int) -> None:
        self.question_id = question_id

    def switch(self, question_id: int) -> Optional[int]:
        """Stop accrual for the previous question and start it for question_id."""
        previous = self.question_id
        self.question_id = question_id
        return previous

    def stop(self) -> Optional[int]:
        previous = self.question_id
        self.question_id = None
        return previous


class Ticker:
    """
    Background thread calling poll() every interval_ms until cancelled.

    cancel() joins the thread (unless called from it or wait=False), so no
    poll runs after cancel() returns.
    """

    def __init__(self, poll: Callable[[], object], interval_ms: int = TICK_INTERVAL_MS):
        if not 0 < interval_ms <= 1000:
            raise ValueError("tick interval must be within (0, 1000] ms")
        self._poll = poll
        self._interval = interval_ms / 1000
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.alive:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="mock-test-ticker", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._poll()
            except Exception:
                logger.exception("ticker poll failed")

    def cancel(self, wait: bool = True) -> None:
        self._stop.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None


def format_remaining(ms: int) -> str:
    """Milliseconds → HH:MM:SS (negative input shows 00:00:00)."""
    total_seconds = max(0, int(ms)) // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def is_low_time(ms: int, threshold_ms: int = LOW_TIME_WARNING_MS) -> bool:
    return ms < threshold_ms
