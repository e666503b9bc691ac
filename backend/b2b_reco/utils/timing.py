"""Step timings for generation runs and calls to the scoring service."""
import logging
import time
from contextlib import contextmanager
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.perf_counter() * 1000


class StepTimer:
    """
    Records how long each named step of one run took.

        timer = StepTimer(f"user={user_id}")
        signals = load_user_signals(db, user_id)
        timer.lap("load_signals")
        ...
        logger.info("done in %.0fms", timer.total_ms)
    """

    def __init__(self, label: str, log_fn: Optional[Callable[[str], None]] = None):
        self.label = label
        self.steps: Dict[str, float] = {}
        self._log = log_fn or logger.debug
        self._started = self._last = now_ms()

    def lap(self, step: str) -> float:
        """Close the current step, log it, and return its duration in ms."""
        current = now_ms()
        elapsed = current - self._last
        self._last = current
        self.steps[step] = elapsed
        self._log(f"{self.label} {step}: {elapsed:.2f}ms")
        return elapsed

    @property
    def total_ms(self) -> float:
        return now_ms() - self._started


@contextmanager
def timed_call(label: str, log_fn: Optional[Callable[[str], None]] = None, slow_ms: Optional[float] = None):
    """Log the duration of the wrapped block, at WARNING once it reaches slow_ms."""
    start = now_ms()
    try:
        yield
    finally:
        elapsed = now_ms() - start
        if slow_ms is not None and elapsed >= slow_ms:
            logger.warning("%s slow: %.2fms (threshold %.0fms)", label, elapsed, slow_ms)
        else:
            (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")
