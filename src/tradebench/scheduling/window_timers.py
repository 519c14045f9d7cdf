"""
Timer-driven window open/close announcements.

:class:`WindowScheduler` arms one timer per window edge for the rest of today, plus a rollover
timer at the next local midnight.  Every :meth:`WindowScheduler.reschedule` cancels all pending
timers before recomputing, and timers armed for an older generation are ignored if they still
manage to fire.

Overlapping windows are announced once: while an announced window is open, a window starting
inside it extends the announced span instead of producing a second "open", and only the first
edge that ends the merged span produces a "close".  A close edge with no announced span (a
window that ended together with the one already closed) is silent.
"""

from __future__ import annotations

import logging
import threading
from datetime import (
    datetime,
    timedelta,
)
from typing import (
    Any,
    Callable,
    List,
    Optional,
)

from tradebench.scheduling.window_gate import (
    ADHOC_WINDOW_ID,
    Window,
    WindowGate,
)

logger = logging.getLogger(__name__)

WindowCallback = Callable[[Window], None]
TimerFactory = Callable[..., Any]


class WindowScheduler:
    """Announce window open/close events through user callbacks."""

    def __init__(
        self,
        gate: WindowGate,
        on_open: Optional[WindowCallback] = None,
        on_close: Optional[WindowCallback] = None,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._gate = gate
        self._on_open = on_open
        self._on_close = on_close
        self._timer_factory = timer_factory
        self._timers: List[Any] = []
        self._generation = 0
        self._announced: Window | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def pending(self) -> int:
        """Number of armed timers."""
        with self._lock:
            return len(self._timers)

    def cancel_all(self) -> None:
        """Cancel every pending timer and invalidate the current generation."""
        with self._lock:
            for timer in self._timers:
                timer.cancel()
            cancelled = len(self._timers)
            self._timers = []
            self._generation += 1
        if cancelled:
            logger.debug("Cancelled %d window timers", cancelled)

    def reschedule(self, now: datetime | None = None) -> List[Window]:
        """
        Cancel all timers and arm new ones for the remaining windows of today.

        Returns the windows that were scheduled.
        """
        local = self._gate.localize(now)
        self.cancel_all()
        scheduled = []
        dropped: Window | None = None
        with self._lock:
            for window in self._gate.windows_today(local):
                if window.end <= local:
                    continue
                self._arm_window(window, local)
                scheduled.append(window)
            self._arm_rollover(local)
            dropped = self._trim_announced(scheduled, local)
        logger.info(
            "Scheduled %d window(s) for %s: %s",
            len(scheduled),
            local.date().isoformat(),
            ", ".join(w.id for w in scheduled) or "-",
        )
        if dropped is not None:
            logger.info("Window close: %s (no longer scheduled)", dropped.id)
            if self._on_close is not None:
                self._on_close(dropped)
        return scheduled

    def _trim_announced(self, scheduled: List[Window], local: datetime) -> Window | None:
        # the announced span must match what is still open after a schedule change
        announced = self._announced
        if announced is None:
            return None
        active = [w for w in scheduled if w.contains(local)]
        if not active:
            self._announced = None
            return announced
        self._announced = announced.model_copy(update={"end": max(w.end for w in active)})
        return None

    # ------------------------------------------------------------------ #
    # Timer plumbing
    # ------------------------------------------------------------------ #
    def _start_timer(self, delay: float, fn: Callable[..., None], *args: Any) -> None:
        timer = self._timer_factory(max(0.0, delay), fn, args=args)
        timer.daemon = True
        self._timers.append(timer)
        timer.start()

    def _arm_window(self, window: Window, local: datetime) -> None:
        generation = self._generation
        open_delay = (window.start - local).total_seconds()
        close_delay = (window.end - local).total_seconds()
        self._start_timer(open_delay, self._fire_open, window, generation)
        self._start_timer(close_delay, self._fire_close, window, generation)

    def _arm_rollover(self, local: datetime) -> None:
        tomorrow = datetime.combine(local.date() + timedelta(days=1), datetime.min.time())
        midnight = tomorrow.replace(tzinfo=local.tzinfo)
        delay = (midnight - local).total_seconds() + 1
        self._start_timer(delay, self._fire_rollover, self._generation)

    def _fire_rollover(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
        self.reschedule()

    def _fire_open(self, window: Window, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping stale open timer for %s", window.id)
                return
            announced = self._announced
            if announced is not None and window.start < announced.end:
                if window.end > announced.end:
                    self._announced = announced.model_copy(update={"end": window.end})
                logger.debug("Window %s overlaps %s; not re-announced", window.id, announced.id)
                return
            self._announced = window
        logger.info("Window open: %s (%s -> %s)", window.id, window.start, window.end)
        if self._on_open is not None:
            self._on_open(window)

    def _fire_close(self, window: Window, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping stale close timer for %s", window.id)
                return
            if window.id == ADHOC_WINDOW_ID:
                self._gate.close_adhoc(window)
            announced = self._announced
            if announced is None:
                # the merged span was already closed by a window ending at the same instant
                logger.debug("Window %s closed with no open span; not announced", window.id)
                return
            if window.end < announced.end:
                logger.debug("Window %s closed inside merged span; not announced", window.id)
                return
            self._announced = None
        logger.info("Window close: %s", window.id)
        if self._on_close is not None:
            self._on_close(window)
