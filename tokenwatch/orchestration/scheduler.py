"""Cooperative single-threaded tick scheduler.

Ticks never overlap. The next tick is due one period after the previous
one completes, so a slow tick delays the schedule instead of stacking.
"""

import logging
import time
from typing import Callable, Optional

from ..integrations.exceptions import AuthorizationError
from .session import TickOutcome, WatchSession

logger = logging.getLogger(__name__)

POLL_STEP: float = 0.25  # seconds between schedule checks while idle


class TickScheduler:
    """Drives a WatchSession on a fixed period with pause/resume/run-now."""

    def __init__(
        self,
        session: WatchSession,
        period: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_tick: Optional[Callable[[TickOutcome], None]] = None,
    ) -> None:
        self.session = session
        self.period = float(period if period is not None else session.config.interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._on_tick = on_tick
        self._paused = False
        self._running = False
        self._in_flight = False
        self._run_now = False
        self._next_due = 0.0
        self.ticks_run = 0
        self.fatal_error: Optional[AuthorizationError] = None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def running(self) -> bool:
        return self._running

    @property
    def next_due(self) -> float:
        return self._next_due

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        """Unpause; the next tick is due one period from now."""
        if self._paused:
            self._paused = False
            self._next_due = self._clock() + self.period

    def request_run_now(self) -> None:
        """Run a tick at the next opportunity, after any in-flight tick."""
        self._run_now = True

    def stop(self) -> None:
        self._running = False

    def _tick(self) -> None:
        self._in_flight = True
        try:
            outcome = self.session.run_interval()
        except AuthorizationError as exc:
            logger.error("Authorization failed, stopping: %s", exc.message)
            self.fatal_error = exc
            self._running = False
            return
        finally:
            self._in_flight = False
            self.ticks_run += 1
            self._next_due = self._clock() + self.period
        if self._on_tick is not None:
            self._on_tick(outcome)

    def step(self) -> bool:
        """One loop turn. Returns True if a tick ran."""
        if self._in_flight:
            return False
        now = self._clock()
        if self._run_now:
            self._run_now = False
            self._tick()
            return True
        if not self._paused and now >= self._next_due:
            self._tick()
            return True
        return False

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Loop until stopped, a fatal error occurs, or max_ticks have run.

        The first tick runs immediately.
        """
        self._running = True
        self._next_due = self._clock()
        try:
            while self._running:
                if max_ticks is not None and self.ticks_run >= max_ticks:
                    break
                if not self.step():
                    if self._paused:
                        wait = POLL_STEP
                    else:
                        wait = max(0.0, min(POLL_STEP, self._next_due - self._clock()))
                    self._sleep(wait)
        finally:
            self._running = False
