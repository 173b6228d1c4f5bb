"""
Price-sample schema, record validation, and the data error taxonomy.

**Conceptual**: This module is the data contract for historical minute bars.
Every record entering the system is validated here, and every price becomes an
exact decimal.Decimal so profit/loss never drifts through binary floating point.

**Raw record layout** (CSV, no header, exchange-local timestamps):
    timestamp, open, high, low, close[, volume, ...]
    2020-01-02 09:30:00,323.54,323.89,323.41,323.87

Only high/low/close are retained. Extra trailing columns are ignored.

**Error taxonomy**:
  - DataFormatError: a record cannot be parsed (fatal, abort the run).
  - MalformedSeriesError: the series walk ran away (fatal, abort the run).
  - NoDataError: a lookup fell outside the loaded data (fatal for the run,
    usually a mismatch between the start time and the data file).
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Sequence

from slope_trader.utils.time import parse_market_timestamp


class DataFormatError(ValueError):
    """
    Raised when a historical record cannot be parsed.

    The message names the record index and the offending field so the bad line
    can be found in the source file.
    """
    pass


class MalformedSeriesError(DataFormatError):
    """Raised when building a series exceeds its iteration cap."""
    pass


class NoDataError(LookupError):
    """Raised when a price lookup falls outside the loaded session range."""
    pass


# Field positions in a raw record
TIMESTAMP_FIELD = 0
OPEN_FIELD = 1
HIGH_FIELD = 2
LOW_FIELD = 3
CLOSE_FIELD = 4
MIN_RECORD_FIELDS = 5


@dataclass(frozen=True)
class PriceSample:
    """
    One minute of price data.

    Attributes:
        high_price: Highest trade price in the minute (used for buy fills).
        low_price: Lowest trade price in the minute (used for sell fills and
                   end-of-day liquidation).
        close_price: Last trade price in the minute (used for signals and for
                     deciding which OCO leg triggers).
    """
    high_price: Decimal
    low_price: Decimal
    close_price: Decimal


@dataclass(frozen=True)
class BarRecord:
    """A validated raw record: its timestamp plus the retained prices."""
    timestamp: datetime
    sample: PriceSample


def parse_decimal(text: str, field_name: str, context: str) -> Decimal:
    """
    Parse a fixed-precision decimal string.

    Raises:
        DataFormatError: If the text is not a finite decimal number.
    """
    try:
        value = Decimal(str(text).strip())
    except InvalidOperation:
        raise DataFormatError(
            f"{context}: cannot parse {field_name} {text!r} as a decimal."
        ) from None
    if not value.is_finite():
        raise DataFormatError(f"{context}: {field_name} {text!r} is not a finite number.")
    return value


def parse_bar_record(record: Sequence[str], index: int | None = None) -> BarRecord:
    """
    Validate one raw record and convert it to a BarRecord.

    **Functionally**:
      - Requires at least 5 fields (timestamp + OHLC).
      - Parses the timestamp in the market time zone.
      - Parses open/high/low/close as Decimal (open is validated, then dropped).
      - Rejects samples where low > high.

    Args:
        record: Sequence of strings (one CSV row).
        index: Row index for error messages.

    Returns:
        BarRecord with timezone-aware timestamp and PriceSample.

    Raises:
        DataFormatError: On any malformed field.
    """
    context = f"record {index}" if index is not None else "record"
    if len(record) < MIN_RECORD_FIELDS:
        raise DataFormatError(
            f"{context}: expected at least {MIN_RECORD_FIELDS} fields "
            f"(timestamp, open, high, low, close), got {len(record)}: {list(record)!r}"
        )

    raw_timestamp = record[TIMESTAMP_FIELD]
    try:
        timestamp = parse_market_timestamp(str(raw_timestamp))
    except ValueError:
        raise DataFormatError(
            f"{context}: cannot parse timestamp {raw_timestamp!r} "
            f"(expected 'YYYY-MM-DD HH:MM:SS')."
        ) from None

    parse_decimal(record[OPEN_FIELD], "open", context)
    high = parse_decimal(record[HIGH_FIELD], "high", context)
    low = parse_decimal(record[LOW_FIELD], "low", context)
    close = parse_decimal(record[CLOSE_FIELD], "close", context)

    if low > high:
        raise DataFormatError(f"{context}: low {low} is above high {high}.")

    return BarRecord(
        timestamp=timestamp,
        sample=PriceSample(high_price=high, low_price=low, close_price=close),
    )
