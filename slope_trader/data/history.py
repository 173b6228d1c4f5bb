"""
In-memory historical price series for backtesting.

**Conceptual**: The backtest needs to answer "what did the market look like at
minute T?" for every open minute it simulates. Raw files have holes (minutes
with no trades, missing rows) and occasionally duplicates. HistoricalSeries
walks a simulated session clock in lock-step with the raw records and
produces a mapping with exactly one PriceSample per open minute, so a lookup
inside the loaded range never misses.

**Construction walk** (one clock tick per iteration):
  - Closed tick: skip.
  - Next record is in the past (stale or duplicate): drop it, look at the next.
  - Next record matches the tick: record it, it becomes the "last valid" sample.
  - Next record is in the future: carry the last valid sample forward for
    this minute and keep the record for a later tick.

A hard iteration cap guards against a malformed file (e.g. a timestamp years
in the future) keeping the walk going indefinitely.

**Documented limitation**: Days the exchange was closed for a holiday are
"open" for the fixed-hours clock, so they are filled by carrying the last
sample forward (a flat day).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Sequence

from slope_trader.backtesting.clock import SimulatedClock
from slope_trader.data.io import read_bar_records
from slope_trader.data.schemas import (
    BarRecord,
    DataFormatError,
    MalformedSeriesError,
    NoDataError,
    PriceSample,
    parse_bar_record,
)
from slope_trader.utils.time import SessionHours, minute_key, minute_start

logger = logging.getLogger(__name__)

# One calendar year of one-minute ticks; comfortably above one trading year of
# one-minute bars (252 days x 390 minutes) since closed ticks count too.
DEFAULT_MAX_ITERATIONS = 366 * 24 * 60

DEFAULT_BAR_INTERVAL = timedelta(minutes=1)


@dataclass
class HistoricalSeries:
    """
    Read-only mapping of minute-aligned epoch timestamps to PriceSamples.

    Attributes:
        samples: epoch-seconds (minute start) -> PriceSample.
        series_start_time: Timestamp of the first record consumed.
        series_end_time: Timestamp of the last record consumed.
        symbol_start_price: Close of the first record consumed (buy-and-hold
                            entry price for the benchmark).
        symbol_end_price: Close of the last record consumed (buy-and-hold exit).
    """
    samples: dict[int, PriceSample] = field(repr=False)
    series_start_time: datetime
    series_end_time: datetime
    symbol_start_price: Decimal
    symbol_end_price: Decimal

    @classmethod
    def load(
        cls,
        records: Sequence[Sequence[str]],
        start_time: datetime,
        bar_interval: timedelta = DEFAULT_BAR_INTERVAL,
        session_hours: SessionHours | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> "HistoricalSeries":
        """
        Build a gap-free series from time-ordered raw records.

        Args:
            records: Raw string records (timestamp, open, high, low, close, ...).
            start_time: Where the construction clock starts (timezone-aware).
                        Records before this time are treated as stale.
            bar_interval: Granularity of the source file (default one minute).
            session_hours: Session boundaries; defaults to regular US hours.
            max_iterations: Hard cap on clock ticks.

        Returns:
            HistoricalSeries covering the consumed records.

        Raises:
            DataFormatError: If any record is malformed, or no record falls
                             inside a session at or after start_time.
            MalformedSeriesError: If the walk exceeds max_iterations.
        """
        logger.info("starting to read historical data (%d records)", len(records))

        # Validate every record up front: malformed numeric fields fail the whole load
        parsed: list[BarRecord] = [
            parse_bar_record(record, index=i) for i, record in enumerate(records)
        ]

        clock = SimulatedClock(start_time, bar_interval, session_hours)
        samples: dict[int, PriceSample] = {}

        first: BarRecord | None = None
        last: BarRecord | None = None
        i = 0
        iterations = 0
        while i < len(parsed):
            iterations += 1
            if iterations > max_iterations:
                raise MalformedSeriesError(
                    f"Series walk exceeded {max_iterations} clock ticks at "
                    f"{clock.now()} with {len(parsed) - i} records unconsumed. "
                    f"Check the file for out-of-order or far-future timestamps."
                )

            now = clock.advance()
            if not clock.is_open:
                continue

            while i < len(parsed):
                record = parsed[i]
                if record.timestamp < now:
                    # Stale or duplicate row
                    i += 1
                    continue
                if record.timestamp > now:
                    if last is not None:
                        samples[minute_key(now)] = last.sample
                    break

                samples[minute_key(record.timestamp)] = record.sample
                if first is None:
                    first = record
                last = record
                i += 1
                break

        if first is None or last is None:
            raise DataFormatError(
                f"No historical records fall inside a trading session at or after "
                f"{start_time}."
            )

        logger.info("series end time: %s", last.timestamp)
        logger.info("finished reading historical data, had %d minutes", len(samples))

        return cls(
            samples=samples,
            series_start_time=first.timestamp,
            series_end_time=last.timestamp,
            symbol_start_price=first.sample.close_price,
            symbol_end_price=last.sample.close_price,
        )

    def __len__(self) -> int:
        return len(self.samples)

    def lookup(self, timestamp: datetime) -> PriceSample:
        """
        Return the sample for the minute containing timestamp.

        Raises:
            NoDataError: If the minute is outside [series_start_time,
                         series_end_time] or was never an open minute.
        """
        aligned = minute_start(timestamp)
        if aligned < minute_start(self.series_start_time) or aligned > self.series_end_time:
            raise NoDataError(
                f"No historical data at {aligned}: series covers "
                f"{self.series_start_time} to {self.series_end_time}."
            )
        sample = self.samples.get(minute_key(aligned))
        if sample is None:
            raise NoDataError(f"No historical data at {aligned} (market closed?).")
        return sample

    def recent_samples(self, timestamp: datetime, count: int) -> list[PriceSample]:
        """
        Return up to `count` one-minute samples ending at (and including) timestamp.

        Samples are oldest first. Minutes with no data are omitted, so a result
        shorter than `count` means the window is incomplete (e.g. the first
        minutes after the open); callers treat that as insufficient history.
        """
        end_key = minute_key(timestamp)
        window = []
        for offset in range(count - 1, -1, -1):
            sample = self.samples.get(end_key - offset * 60)
            if sample is not None:
                window.append(sample)
        return window


def load_historical_series(
    path: Path | str,
    start_time: datetime,
    bar_interval: timedelta = DEFAULT_BAR_INTERVAL,
    session_hours: SessionHours | None = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> HistoricalSeries:
    """Read a CSV file and build a HistoricalSeries from it."""
    records = read_bar_records(path)
    return HistoricalSeries.load(
        records,
        start_time=start_time,
        bar_interval=bar_interval,
        session_hours=session_hours,
        max_iterations=max_iterations,
    )
