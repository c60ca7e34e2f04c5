"""
Single-threaded timer queue for the form engine.

Streamlit reruns the script on every interaction, so there is no browser
event loop to post callbacks to. The scheduler plays that role: debounced
validation, autosave and deferred widget reads are queued here and run
when the page calls run_due() (every rerun) or, in tests, advance().
"""

import heapq
import itertools
import logging
import time
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle returned by call_soon / call_later."""

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...], name: str = ""):
        self.when = when
        self.callback = callback
        self.args = args
        self.name = name or getattr(callback, '__name__', 'callback')
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "pending"
        return f"TimerHandle({self.name!r}, when={self.when:.3f}, {state})"


class Scheduler:
    """
    Ordered queue of pending callbacks keyed by due time.

    Args:
        clock: Zero-argument callable returning the current time in seconds
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._offset = 0.0
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._clock() + self._offset

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any, name: str = "") -> TimerHandle:
        handle = TimerHandle(self.now() + max(delay, 0.0), callback, args, name)
        heapq.heappush(self._queue, (handle.when, next(self._sequence), handle))
        return handle

    def call_soon(self, callback: Callable[..., Any], *args: Any, name: str = "") -> TimerHandle:
        """Queue a callback for the next tick."""
        return self.call_later(0.0, callback, *args, name=name)

    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def run_due(self) -> int:
        """
        Run every callback whose due time has passed, in due order.

        Callbacks queued by a running callback with no delay run in the
        same pass.

        Returns:
            Number of callbacks run
        """
        ran = 0
        while self._queue and self._queue[0][0] <= self.now():
            _, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            try:
                handle.callback(*handle.args)
            except Exception as e:
                logger.error(f"Scheduled callback {handle.name} failed: {e}", exc_info=True)
                raise
            ran += 1
        return ran

    def advance(self, seconds: float) -> int:
        """Move the clock forward and run whatever became due."""
        self._offset += seconds
        return self.run_due()

    def clear(self) -> None:
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()
