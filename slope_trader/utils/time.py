"""
Time, clock, and market-session helpers.

**Conceptual**: The strategy never calls datetime.now() directly. It asks a
Clock, so the same decision code can run against wall-clock time (live) or a
simulated clock (backtest). This module also owns the market conventions that
both modes share: the exchange time zone, the regular session boundaries, and
minute alignment of timestamps.

**Session model** (documented limitation):
  - Regular hours are fixed clock times (09:30 to 16:00 America/New_York).
  - Saturdays and Sundays are never open.
  - Exchange holidays are NOT modeled. Early closes can be supplied explicitly
    per date; nothing is inferred from a calendar.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo


# Historical files and backtest start times are expressed in exchange-local time
MARKET_TIMEZONE = ZoneInfo("America/New_York")

# On-disk timestamp layout for historical bars: "2020-01-02 09:30:00"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# datetime.weekday() values for Saturday and Sunday
WEEKEND_DAYS = frozenset({5, 6})


class Clock(Protocol):
    """
    Abstract time source protocol.

    **Usage**: Consumers accept a Clock and call clock.now() whenever they need
    the current time. Live trading passes a RealClock; backtests pass the
    SimulatedClock; unit tests pass a FrozenClock.
    """

    def now(self) -> datetime:
        """Return the current time according to this clock (timezone-aware)."""
        ...


class RealClock:
    """Clock that returns the actual current time in the market time zone."""

    def now(self) -> datetime:
        return datetime.now(MARKET_TIMEZONE)


class FrozenClock:
    """
    Clock that always returns a fixed timestamp (for deterministic tests).

    **Usage**:
        clock = FrozenClock(datetime(2020, 1, 2, 10, 0, tzinfo=MARKET_TIMEZONE))
        clock.now()  # always 2020-01-02 10:00 New York
    """

    def __init__(self, fixed_now: datetime):
        self._fixed_now = fixed_now

    def now(self) -> datetime:
        return self._fixed_now


def parse_market_timestamp(text: str) -> datetime:
    """
    Parse a "YYYY-MM-DD HH:MM:SS" string as exchange-local time.

    Args:
        text: Timestamp string without zone information.

    Returns:
        Timezone-aware datetime in MARKET_TIMEZONE.

    Raises:
        ValueError: If the text does not match TIMESTAMP_FORMAT.
    """
    naive = datetime.strptime(text.strip(), TIMESTAMP_FORMAT)
    return naive.replace(tzinfo=MARKET_TIMEZONE)


def minute_start(dt: datetime) -> datetime:
    """Truncate seconds and microseconds so dt matches bar granularity."""
    return dt.replace(second=0, microsecond=0)


def minute_key(dt: datetime) -> int:
    """
    Epoch-seconds key of the minute containing dt.

    **Why epoch keys?** Two aware datetimes can describe the same instant with
    different tzinfo objects; the epoch value is unambiguous, so lookups never
    miss because of a time zone representation detail.
    """
    return int(minute_start(dt).timestamp())


def is_weekend(dt: datetime) -> bool:
    return dt.weekday() in WEEKEND_DAYS


@dataclass(frozen=True)
class SessionHours:
    """
    Regular trading-session boundaries in exchange-local clock time.

    Attributes:
        open_time: Session open (inclusive). Default 09:30.
        close_time: Session close (inclusive). Default 16:00.
        early_closes: Optional mapping of calendar date -> early close time
                      (e.g., {date(2020, 11, 27): time(13, 0)}). Empty by
                      default; holidays and half-days are not inferred.
        timezone: Zone the clock times are interpreted in.
    """
    open_time: time = time(9, 30)
    close_time: time = time(16, 0)
    early_closes: dict[date, time] = field(default_factory=dict)
    timezone: ZoneInfo = MARKET_TIMEZONE

    def __post_init__(self):
        if self.close_time <= self.open_time:
            raise ValueError(
                f"Session close {self.close_time} must be after open {self.open_time}."
            )
        for day, early_close in self.early_closes.items():
            if early_close < self.open_time:
                raise ValueError(
                    f"Early close {early_close} on {day} is before the session open "
                    f"{self.open_time}."
                )

    def boundaries_for(self, day: date) -> tuple[datetime, datetime]:
        """
        Return (open, close) datetimes for a calendar day.

        The boundaries are computed for weekends too; callers decide whether
        the day trades at all.
        """
        close_time = self.early_closes.get(day, self.close_time)
        session_open = datetime.combine(day, self.open_time, tzinfo=self.timezone)
        session_close = datetime.combine(day, close_time, tzinfo=self.timezone)
        return session_open, session_close


def steps_in(duration: timedelta, step: timedelta) -> int:
    """Number of whole steps needed to cover duration (at least one)."""
    if step <= timedelta(0):
        raise ValueError(f"step must be positive, got {step}")
    count, remainder = divmod(duration, step)
    if remainder:
        count += 1
    return max(1, count)
