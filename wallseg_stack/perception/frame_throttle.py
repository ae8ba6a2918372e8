"""
Rate limiting of full pipeline executions.
"""

import time
from typing import Callable, Optional

from ..core.types import ThrottleState


class FrameThrottle:
    """
    Allows at most one pipeline execution per `min_interval` seconds.

    Callers pass their own timestamps (e.g. camera frame times) or let
    the throttle read `clock`. Only completed executions are recorded.
    """

    def __init__(
        self,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic
    ):
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self._state = ThrottleState(min_interval=min_interval)
        self.clock = clock

    def should_run(self, now: Optional[float] = None) -> bool:
        """True if enough time has passed since the last recorded execution."""
        if now is None:
            now = self.clock()
        last = self._state.last_run_timestamp
        return last is None or now - last >= self._state.min_interval

    def record_run(self, now: Optional[float] = None) -> None:
        """Mark an execution at `now`."""
        self._state.last_run_timestamp = self.clock() if now is None else now

    def reset(self) -> None:
        """Allow the next call to run immediately."""
        self._state.last_run_timestamp = None

    @property
    def state(self) -> ThrottleState:
        return self._state

    @property
    def min_interval(self) -> float:
        return self._state.min_interval
