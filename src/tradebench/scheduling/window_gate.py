"""
Trading-window gate.

Pure computation over a :class:`ScheduleConfig` snapshot plus the current time.  The gate answers
two questions for the rest of the system:

* :meth:`WindowGate.is_permitted` - may a mutating (trade) tool run right now?
* :meth:`WindowGate.status` - which window is active, and when does the next one start?

Trading is permitted inside any configured daily window, inside regular market hours
(09:30-16:00 local), or inside the single operator-triggered ad-hoc window.  Weekends are closed
unless an ad-hoc window is open.  All windows are half-open intervals ``[start, end)``.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import (
    date,
    datetime,
    time,
    timedelta,
    timezone,
)
from typing import (
    Callable,
    List,
    Optional,
)
from zoneinfo import (
    ZoneInfo,
    ZoneInfoNotFoundError,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

logger = logging.getLogger(__name__)

ADHOC_WINDOW_ID = "adhoc"
REGULAR_OPEN = time(9, 30)
REGULAR_CLOSE = time(16, 0)
LOOKAHEAD_DAYS = 7

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


def _parse_hhmm(value: str) -> time:
    match = _HHMM.match(value.strip())
    if match is None:
        raise ValueError(f"window start {value!r} is not in HH:mm format")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"window start {value!r} is out of range")
    return time(hour, minute)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
class ScheduleConfig(BaseModel):
    """Immutable schedule definition: timezone, daily ``HH:mm`` starts and window length."""

    model_config = ConfigDict(frozen=True)

    timezone: str = "America/New_York"
    windows: List[str] = Field(default_factory=list, description="Daily window starts (HH:mm)")
    duration_minutes: int = Field(4, description="Length of every scheduled window")

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @field_validator("windows")
    @classmethod
    def _check_windows(cls, value: List[str]) -> List[str]:
        return [_parse_hhmm(v).strftime("%H:%M") for v in value]

    @field_validator("duration_minutes")
    @classmethod
    def _check_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("duration_minutes must be positive")
        return value

    @classmethod
    def from_csv(cls, timezone: str, csv: str, duration_minutes: int) -> "ScheduleConfig":
        """Build a schedule from the comma-separated form used in env/config files."""
        starts = [part.strip() for part in csv.split(",") if part.strip()]
        return cls(timezone=timezone, windows=starts, duration_minutes=duration_minutes)

    @property
    def tzinfo(self) -> ZoneInfo:
        """The configured timezone as a :class:`ZoneInfo`."""
        return ZoneInfo(self.timezone)

    def start_times(self) -> List[time]:
        """Window starts as :class:`datetime.time` values, in configured order."""
        return [_parse_hhmm(v) for v in self.windows]


class Window(BaseModel):
    """A half-open trading interval ``[start, end)``."""

    id: str
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        """Return *True* if *moment* falls inside the window (start inclusive, end exclusive)."""
        return self.start <= moment < self.end


class WindowStatus(BaseModel):
    """Snapshot returned by :meth:`WindowGate.status`."""

    tz: str
    now: datetime
    active: bool
    current: Optional[Window] = None
    next: Optional[Window] = None
    regular_hours: bool = False


def is_weekend(moment: datetime | date) -> bool:
    """Saturday and Sunday are never trading days."""
    return moment.weekday() >= 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------
class WindowGate:
    """
    Decide whether mutating tools may run, and report current / next windows.

    Parameters
    ----------
    config:
        Schedule snapshot.  Swap it with :meth:`replace` for hot reloads.
    clock:
        Zero-argument callable returning an aware ``datetime``.  Used whenever a method is
        called without an explicit *now*.
    """

    def __init__(
        self, config: ScheduleConfig, clock: Callable[[], datetime] | None = None
    ) -> None:
        self._config = config
        self._clock = clock or _utc_now
        self._adhoc: Window | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #
    @property
    def config(self) -> ScheduleConfig:
        """Current schedule snapshot."""
        return self._config

    def replace(self, config: ScheduleConfig) -> None:
        """Swap in a new schedule.  An open ad-hoc window is kept."""
        with self._lock:
            self._config = config
        logger.info(
            "Schedule replaced: tz=%s windows=%s duration=%dm",
            config.timezone,
            ",".join(config.windows) or "-",
            config.duration_minutes,
        )

    # ------------------------------------------------------------------ #
    # Ad-hoc override
    # ------------------------------------------------------------------ #
    @property
    def adhoc(self) -> Window | None:
        """The ad-hoc window as last opened (may already be expired)."""
        with self._lock:
            return self._adhoc

    def open_adhoc(self, duration_minutes: int, now: datetime | None = None) -> Window:
        """
        Open the ad-hoc window at the current minute boundary for *duration_minutes*.

        Any existing ad-hoc window is replaced.
        """
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        local = self.localize(now)
        start = local.replace(second=0, microsecond=0)
        window = Window(
            id=ADHOC_WINDOW_ID, start=start, end=self._add_minutes(start, duration_minutes)
        )
        with self._lock:
            previous = self._adhoc
            self._adhoc = window
        if previous is not None:
            logger.info("Ad-hoc window replaced (previous ended %s)", previous.end.isoformat())
        logger.info("Ad-hoc window open %s -> %s", window.start.isoformat(), window.end.isoformat())
        return window

    def close_adhoc(self, window: Window | None = None) -> bool:
        """
        Clear the ad-hoc window.

        If *window* is given, only clear when it is still the current ad-hoc window, so a stale
        close cannot wipe a newer override.  Returns *True* when something was cleared.
        """
        with self._lock:
            if self._adhoc is None:
                return False
            if window is not None and self._adhoc != window:
                return False
            self._adhoc = None
        logger.info("Ad-hoc window closed")
        return True

    def _live_adhoc(self, local: datetime) -> Window | None:
        adhoc = self.adhoc
        if adhoc is None or adhoc.end <= local:
            return None
        return adhoc

    # ------------------------------------------------------------------ #
    # Window construction
    # ------------------------------------------------------------------ #
    def localize(self, now: datetime | None = None) -> datetime:
        """Return *now* (default: the clock) in the schedule timezone; naive values are local."""
        tz = self._config.tzinfo
        if now is None:
            now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=tz)
        return now.astimezone(tz)

    @staticmethod
    def _add_minutes(start: datetime, minutes: int) -> datetime:
        # elapsed-time arithmetic, correct across DST transitions
        end = start.astimezone(timezone.utc) + timedelta(minutes=minutes)
        return end.astimezone(start.tzinfo)

    def windows_for_day(self, day: date) -> List[Window]:
        """Scheduled windows for *day*, sorted by start.  Weekends have none."""
        if is_weekend(day):
            return []
        config = self._config
        tz = config.tzinfo
        windows = []
        for idx, start_time in enumerate(config.start_times(), start=1):
            start = datetime.combine(day, start_time, tzinfo=tz)
            windows.append(
                Window(
                    id=f"w{idx}",
                    start=start,
                    end=self._add_minutes(start, config.duration_minutes),
                )
            )
        return sorted(windows, key=lambda w: w.start)

    def windows_today(self, now: datetime | None = None) -> List[Window]:
        """Today's scheduled windows plus the live ad-hoc window, sorted by start."""
        local = self.localize(now)
        windows = self.windows_for_day(local.date())
        adhoc = self._live_adhoc(local)
        if adhoc is not None:
            windows.append(adhoc)
        return sorted(windows, key=lambda w: w.start)

    def _scheduled_around(self, local: datetime) -> List[Window]:
        # windows starting late yesterday can spill past midnight
        yesterday = local.date() - timedelta(days=1)
        return self.windows_for_day(yesterday) + self.windows_for_day(local.date())

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def in_regular_hours(self, now: datetime | None = None) -> bool:
        """Return *True* inside 09:30-16:00 local on a weekday."""
        local = self.localize(now)
        if is_weekend(local):
            return False
        tz = self._config.tzinfo
        open_at = datetime.combine(local.date(), REGULAR_OPEN, tzinfo=tz)
        close_at = datetime.combine(local.date(), REGULAR_CLOSE, tzinfo=tz)
        return open_at <= local < close_at

    def in_scheduled_window(self, now: datetime | None = None) -> bool:
        """Return *True* inside any configured daily window (weekdays only)."""
        local = self.localize(now)
        if is_weekend(local):
            return False
        return any(w.contains(local) for w in self._scheduled_around(local))

    def is_permitted(self, now: datetime | None = None) -> bool:
        """May a mutating tool run at *now*?"""
        local = self.localize(now)
        adhoc = self._live_adhoc(local)
        if adhoc is not None and adhoc.contains(local):
            return True
        return self.in_scheduled_window(local) or self.in_regular_hours(local)

    def status(self, now: datetime | None = None) -> WindowStatus:
        """
        Report the active window (if any) and the next window start.

        Precedence when windows overlap: the ad-hoc window wins, then the earliest-starting
        scheduled window.  Regular hours never produce a window; they are flagged through
        ``regular_hours`` only.
        """
        local = self.localize(now)
        adhoc = self._live_adhoc(local)

        current: Window | None = None
        if adhoc is not None and adhoc.contains(local):
            current = adhoc
        elif not is_weekend(local):
            for window in sorted(self._scheduled_around(local), key=lambda w: w.start):
                if window.contains(local):
                    current = window
                    break

        upcoming = [w for w in self.windows_for_day(local.date()) if w.start > local]
        if adhoc is not None and adhoc.start > local:
            upcoming.append(adhoc)
        next_window = min(upcoming, key=lambda w: w.start) if upcoming else None

        day = local.date()
        for _ in range(LOOKAHEAD_DAYS):
            if next_window is not None:
                break
            day += timedelta(days=1)
            candidates = self.windows_for_day(day)
            if candidates:
                next_window = candidates[0]

        return WindowStatus(
            tz=self._config.timezone,
            now=local,
            active=current is not None,
            current=current,
            next=next_window,
            regular_hours=self.in_regular_hours(local),
        )
