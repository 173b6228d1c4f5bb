#!/usr/bin/env python3
"""
Backtest the slope scalping strategy against a minute-bar CSV file.

**Usage**:
    From project root:
    ```bash
    python actions/run_backtest.py --file data/spy_2020.csv --start "2020-01-02 09:30:00"

    # Settings from .env (SLOPE_TRADER_BACKTEST_FILE, SLOPE_TRADER_BACKTEST_START_TIME)
    python actions/run_backtest.py --print-day-details --seed 7
    ```

**Input**: Headerless CSV rows `timestamp,open,high,low,close[,...]` with
timestamps "YYYY-MM-DD HH:MM:SS" in New York time.

**Output**: End-of-run report on stdout (plus per-day reports with
--print-day-details). Logs go to logs/trader-backtest.log.

**Exit codes**:
  - 0: Success
  - 1: Configuration error (missing file setting, malformed value)
  - 2: Fatal run error (missing/malformed data, data gap, invalid order); no
       report is printed
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Ensure project root is on path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from slope_trader.backtesting.engine import BacktestParams, run_backtest
from slope_trader.backtesting.reporting import format_summary
from slope_trader.config.settings import BacktestSettings, Settings, get_settings
from slope_trader.data.history import load_historical_series
from slope_trader.data.schemas import DataFormatError, NoDataError
from slope_trader.execution.orders import InvalidOrderConfigError
from slope_trader.strategies.slope_scalper import SlopeScalperParams
from slope_trader.utils.logging_setup import BACKTEST_LOG_FILENAME, setup_logging
from slope_trader.utils.time import parse_market_timestamp

logger = logging.getLogger("slope_trader.actions.run_backtest")


def parse_args(argv=None):
    """
    Parse command line arguments. Every option overrides the matching
    SLOPE_TRADER_BACKTEST_* environment setting.
    """
    parser = argparse.ArgumentParser(
        description="Backtest the slope scalping strategy on historical minute bars",
        epilog="""
Examples:
  python actions/run_backtest.py --file data/spy.csv --start "2020-01-02 09:30:00"
  python actions/run_backtest.py --seed 42 --print-day-details
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--file", dest="data_file", help="Minute-bar CSV file")
    parser.add_argument("--start", help='Start time "YYYY-MM-DD HH:MM:SS" (New York time)')
    parser.add_argument("--seed", type=int, default=None, help="Seed for the fill probability gate")
    parser.add_argument(
        "--print-day-details",
        action="store_true",
        help="Print a report at each day's close-out",
    )
    parser.add_argument("--log-level", default="INFO", help="Root log level (default: INFO)")
    parser.add_argument("--logs-dir", default="logs", help="Log directory (default: logs/)")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Also echo log records to stdout",
    )
    return parser.parse_args(argv)


def resolve_backtest_settings(settings: Settings, args) -> BacktestSettings:
    """
    Merge CLI overrides into the environment's backtest settings.

    Raises:
        ValueError: If the data file or start time is configured nowhere.
    """
    overrides = {}
    if args.data_file:
        overrides["data_file"] = Path(args.data_file)
    if args.start:
        overrides["start_timestamp"] = args.start
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.print_day_details:
        overrides["print_day_details"] = True

    if settings.backtest is not None:
        return replace(settings.backtest, **overrides)
    return BacktestSettings(
        data_file=overrides.pop("data_file", Path("")),
        start_timestamp=overrides.pop("start_timestamp", ""),
        **overrides,
    )


def main(argv=None):
    """
    Load settings, build the series, run the backtest and print the report.
    """
    args = parse_args(argv)
    setup_logging(
        log_level=args.log_level,
        logs_dir=Path(args.logs_dir),
        console_output=args.verbose,
        filename=BACKTEST_LOG_FILENAME,
    )

    try:
        settings = get_settings()
        backtest = resolve_backtest_settings(settings, args)
        start_time = parse_market_timestamp(backtest.start_timestamp)
    except (ValueError, DataFormatError) as e:
        logger.error("configuration error: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        series = load_historical_series(
            backtest.data_file,
            start_time=start_time,
            bar_interval=backtest.file_bar_interval,
            max_iterations=backtest.max_load_iterations,
        )
        result = run_backtest(
            series,
            strategy_params=SlopeScalperParams.from_settings(settings.strategy),
            params=BacktestParams.from_settings(settings.strategy, backtest),
            start_time=start_time,
        )
    except FileNotFoundError as e:
        logger.error("data file not found: %s", e)
        print(f"Error: data file not found: {e}", file=sys.stderr)
        sys.exit(2)
    except (DataFormatError, NoDataError, InvalidOrderConfigError) as e:
        logger.exception("backtest aborted")
        print(f"Error: backtest aborted: {e}", file=sys.stderr)
        sys.exit(2)

    print(format_summary(result))
    sys.exit(0)


if __name__ == "__main__":
    main()
