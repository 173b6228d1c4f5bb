"""
CSV I/O for historical minute-bar files.

**Conceptual**: Historical data arrives as a headerless CSV, one minute bar per
line, oldest first:

    2020-01-02 09:30:00,323.54,323.89,323.41,323.87
    2020-01-02 09:31:00,323.87,324.10,323.80,324.02

This module is the gateway for that file. It reads every field as TEXT (never
as float) so prices can be parsed into exact decimals downstream, and it
fails fast on structural problems before the series walk starts.

**Why read as strings?** pandas would otherwise infer float64 for price
columns, and "323.87" would become 323.8700000000000045... before we ever see
it. Keeping dtype=str preserves the fixed-precision text exactly.
"""

from pathlib import Path
from typing import Iterable, Sequence

import pandas as pd

from slope_trader.data.schemas import MIN_RECORD_FIELDS, DataFormatError


def read_bar_records(path: Path | str) -> list[tuple[str, ...]]:
    """
    Read a historical minute-bar CSV as raw string records.

    **Functionally**:
      - Reads the file with pandas (no header, every column as str).
      - Blank trailing fields are kept as empty strings so validation can
        report them, rather than pandas silently turning them into NaN.
      - Returns records in file order; ordering is validated by the series
        builder, which skips stale rows.

    Args:
        path: Path to the CSV file.

    Returns:
        List of tuples of strings, one per line. Empty list for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist.
        DataFormatError: If pandas cannot tokenize the file or rows have fewer
                         than five columns.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Historical bar file not found: {path}. "
            f"Ensure the file exists and the path is correct."
        )

    try:
        df = pd.read_csv(path, header=None, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as e:
        raise DataFormatError(f"{path}: failed to read CSV. Error: {e}") from e

    if df.shape[1] < MIN_RECORD_FIELDS:
        raise DataFormatError(
            f"{path}: expected at least {MIN_RECORD_FIELDS} columns "
            f"(timestamp, open, high, low, close), found {df.shape[1]}."
        )

    return [tuple(row) for row in df.itertuples(index=False, name=None)]


def write_bar_records(records: Iterable[Sequence[str]], path: Path | str) -> None:
    """
    Write raw records to a headerless CSV (the same layout read_bar_records reads).

    Used to prepare fixture files and to save fetched history.

    Raises:
        OSError: If the file cannot be written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame([list(record) for record in records])
    try:
        df.to_csv(path, header=False, index=False)
    except Exception as e:
        raise OSError(f"Failed to write CSV to {path}. Error: {e}") from e
