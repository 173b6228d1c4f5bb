"""
Simulated market clock for backtesting.

**Conceptual**: In live trading the brokerage tells us whether the market is
open. In a backtest there is no brokerage, so this clock plays that role: it
steps a logical "now" forward by a fixed interval and classifies every tick as
open or closed against the day's session boundaries.

**State machine** (one transition per advance()):
  - PreOpen: weekday, before today's open.
  - Open: weekday, open <= now <= close (both inclusive).
  - Closed (same day): weekday, after today's close.
  - Closed (weekend): Saturday or Sunday, regardless of clock time.

Session boundaries are recomputed exactly once per calendar day, on the first
tick that lands on a new date.
"""

from datetime import datetime, timedelta

from slope_trader.utils.time import SessionHours, is_weekend, steps_in


class SimulatedClock:
    """
    Fixed-step simulated clock.

    **Usage**:
        clock = SimulatedClock(start, timedelta(minutes=1))
        clock.advance()        # first advance lands exactly on `start`
        if clock.is_open: ...

    The clock is constructed one step behind `start` so that the driver loop can
    always "advance, then act" and still process the start tick itself. So a
    clock built at Friday 23:59 reaches 23:59 on its first advance, and only
    the two advances after that land on Saturday (00:00, 00:01).

    Attributes:
        current_time: Logical "now" (timezone-aware).
        session_open_time: Today's open boundary.
        session_close_time: Today's close boundary.
        step_duration: Amount added on each advance().
        is_open: Whether current_time is inside today's regular session.
    """

    def __init__(
        self,
        start: datetime,
        step_duration: timedelta,
        session_hours: SessionHours | None = None,
    ):
        if start.tzinfo is None:
            raise ValueError("SimulatedClock requires a timezone-aware start time.")
        if step_duration <= timedelta(0):
            raise ValueError(f"step_duration must be positive, got {step_duration}")

        self.session_hours = session_hours or SessionHours()
        self.step_duration = step_duration
        self.current_time = start - step_duration
        self.session_open_time, self.session_close_time = self.session_hours.boundaries_for(
            start.date()
        )
        self.is_open = False

    def now(self) -> datetime:
        return self.current_time

    def advance(self) -> datetime:
        """
        Move one step forward and reclassify the tick.

        Returns:
            The new current_time.
        """
        self.current_time = self.current_time + self.step_duration

        # Roll the session over on the first tick of a new calendar day
        if self.current_time.date() != self.session_open_time.date():
            self.session_open_time, self.session_close_time = self.session_hours.boundaries_for(
                self.current_time.date()
            )

        if is_weekend(self.current_time):
            self.is_open = False
        else:
            self.is_open = self.session_open_time <= self.current_time <= self.session_close_time

        return self.current_time

    def fast_forward(self, duration: timedelta) -> datetime:
        """
        Advance repeatedly until at least `duration` has elapsed.

        Going through advance() keeps the session rollover and open/closed
        classification consistent, unlike assigning current_time directly.
        """
        for _ in range(steps_in(duration, self.step_duration)):
            self.advance()
        return self.current_time

    def time_until_close(self) -> timedelta:
        """Signed time remaining until today's close (negative once past it)."""
        return self.session_close_time - self.current_time
