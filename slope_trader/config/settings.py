"""
Configuration settings for the trading system.

**Conceptual**: This module provides strongly-typed configuration objects that
load from environment variables (via .env files). All settings are validated
at construction, so a bad value fails at startup with a clear message instead
of halfway through a backtest.

**Subsystems**:
  - StrategySettings: what the strategy trades and how (symbol, quantity,
    slope threshold, bracket ratios, timing).
  - BacktestSettings: the simulation inputs (data file, start time, starting
    cash, fill probability, seed).
  - AlpacaSettings: live brokerage credentials (only needed for live trading).

**Environment variables** use the SLOPE_TRADER_ prefix for strategy and
backtest values and ALPACA_ for the brokerage. Durations accept pandas
timedelta strings ("60s", "5min", "1h") or a bare number of seconds.

This module uses python-dotenv to load .env files and dataclasses for type safety.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import pandas as pd
from dotenv import load_dotenv

# Load .env from project root (no-op when the file is absent)
ENV_PATH = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=ENV_PATH)

ENV_PREFIX = "SLOPE_TRADER_"


# ============================================================================
# Environment parsing helpers
# ============================================================================

def _env(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: str) -> int:
    raw = _env(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    raw = _env(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from None


def _env_decimal(name: str, default: str) -> Decimal:
    raw = _env(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got: {raw!r}") from None


def _env_bool(name: str, default: str) -> bool:
    return _env(name, default).lower() in ("true", "1", "yes")


def parse_duration(raw: str, name: str = "duration") -> timedelta:
    """
    Parse "60s", "5min", "1h" or a bare number of seconds into a timedelta.

    Raises:
        ValueError: If the text is not a duration.
    """
    text = str(raw).strip()
    try:
        if text.replace(".", "", 1).isdigit():
            return timedelta(seconds=float(text))
        return pd.to_timedelta(text).to_pytimedelta()
    except (ValueError, TypeError):
        raise ValueError(f"{name} must be a duration like '60s' or '1h', got: {raw!r}") from None


def _env_duration(name: str, default: str) -> timedelta:
    return parse_duration(_env(name, default), name)


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from None


# ============================================================================
# Settings objects
# ============================================================================

@dataclass(frozen=True)
class StrategySettings:
    """
    Parameters of the slope-signal scalping strategy.

    Attributes:
        stock_symbol: Ticker to trade (e.g., "SPY").
        purchase_quantity: Shares bought per buy order.
        max_concurrent_purchases: Cap on positions bought but not yet sold.
        num_historical_bars_to_use: One-minute closes in the slope window.
        min_slope_required_to_buy: Minimum regression slope (price per bar).
        all_sequential_increases_required: Also require strictly rising closes.
        time_between_actions: Simulated (or live) step between decisions.
        time_before_market_close_to_liquidate: Window before close in which
            everything is sold and no new buys happen.
        stale_buy_order_timeout: Age after which a pending buy is canceled.
        take_profit_ratio: Take-profit distance above the buy fill (0.002 = +0.2%).
        stop_loss_ratio: Stop trigger distance below the buy fill (0.0012 = -0.12%).
        stop_limit_ratio: Stop leg limit distance below the buy fill (0.0017 = -0.17%).
    """
    stock_symbol: str = "SPY"
    purchase_quantity: Decimal = Decimal(10)
    max_concurrent_purchases: int = 20
    num_historical_bars_to_use: int = 3
    min_slope_required_to_buy: float = 1.3
    all_sequential_increases_required: bool = False
    time_between_actions: timedelta = timedelta(seconds=60)
    time_before_market_close_to_liquidate: timedelta = timedelta(hours=1)
    stale_buy_order_timeout: timedelta = timedelta(minutes=5)
    take_profit_ratio: Decimal = Decimal("0.002")
    stop_loss_ratio: Decimal = Decimal("0.0012")
    stop_limit_ratio: Decimal = Decimal("0.0017")

    def __post_init__(self):
        """Validate settings after initialization."""
        if not self.stock_symbol:
            raise ValueError("stock_symbol is required.")
        if self.purchase_quantity <= 0:
            raise ValueError(f"purchase_quantity must be positive, got {self.purchase_quantity}")
        if self.max_concurrent_purchases < 0:
            raise ValueError(
                f"max_concurrent_purchases cannot be negative, got {self.max_concurrent_purchases}"
            )
        if self.num_historical_bars_to_use < 2:
            raise ValueError(
                "num_historical_bars_to_use must be at least 2 to fit a slope, "
                f"got {self.num_historical_bars_to_use}"
            )
        if self.time_between_actions <= timedelta(0):
            raise ValueError(f"time_between_actions must be positive, got {self.time_between_actions}")
        if self.stop_limit_ratio < self.stop_loss_ratio:
            raise ValueError(
                f"stop_limit_ratio ({self.stop_limit_ratio}) must be at least "
                f"stop_loss_ratio ({self.stop_loss_ratio})."
            )

    @classmethod
    def from_env(cls) -> "StrategySettings":
        """
        Load strategy settings from SLOPE_TRADER_* environment variables.

        Unset variables fall back to the dataclass defaults.
        """
        p = ENV_PREFIX
        return cls(
            stock_symbol=_env(p + "STOCK_SYMBOL", "SPY").upper(),
            purchase_quantity=_env_decimal(p + "PURCHASE_QUANTITY", "10"),
            max_concurrent_purchases=_env_int(p + "MAX_CONCURRENT_PURCHASES", "20"),
            num_historical_bars_to_use=_env_int(p + "NUM_HISTORICAL_BARS_TO_USE", "3"),
            min_slope_required_to_buy=_env_float(p + "MIN_SLOPE_REQUIRED_TO_BUY", "1.3"),
            all_sequential_increases_required=_env_bool(
                p + "ALL_SEQUENTIAL_INCREASES_REQUIRED", "false"
            ),
            time_between_actions=_env_duration(p + "TIME_BETWEEN_ACTIONS", "60s"),
            time_before_market_close_to_liquidate=_env_duration(
                p + "TIME_BEFORE_MARKET_CLOSE_TO_LIQUIDATE", "1h"
            ),
            stale_buy_order_timeout=_env_duration(p + "STALE_BUY_ORDER_TIMEOUT", "5min"),
            take_profit_ratio=_env_decimal(p + "TAKE_PROFIT_RATIO", "0.002"),
            stop_loss_ratio=_env_decimal(p + "STOP_LOSS_RATIO", "0.0012"),
            stop_limit_ratio=_env_decimal(p + "STOP_LIMIT_RATIO", "0.0017"),
        )


@dataclass(frozen=True)
class BacktestSettings:
    """
    Inputs of a backtest run.

    Attributes:
        data_file: Headerless minute-bar CSV (timestamp, open, high, low, close).
        start_timestamp: "YYYY-MM-DD HH:MM:SS" in exchange-local (New York) time.
        starting_cash: Cash when the run starts.
        file_bar_interval: Granularity of the data file.
        fill_probability: Chance an eligible order fills on a tick.
        seed: Seed for the fill gate (None = fresh entropy each run).
        print_day_details: Print a report at each day's close-out.
        max_load_iterations: Iteration cap for building the series.
    """
    data_file: Path
    start_timestamp: str
    starting_cash: Decimal = Decimal(100000)
    file_bar_interval: timedelta = timedelta(seconds=60)
    fill_probability: float = 0.75
    seed: Optional[int] = None
    print_day_details: bool = False
    max_load_iterations: int = 366 * 24 * 60

    def __post_init__(self):
        if str(self.data_file) in ("", "."):
            raise ValueError(
                "SLOPE_TRADER_BACKTEST_FILE is required but not set. "
                "Please set it in your .env file or environment variables."
            )
        if not self.start_timestamp:
            raise ValueError(
                "SLOPE_TRADER_BACKTEST_START_TIME is required but not set "
                "(format: YYYY-MM-DD HH:MM:SS, New York time)."
            )
        if self.starting_cash <= 0:
            raise ValueError(f"starting_cash must be positive, got {self.starting_cash}")
        if not 0.0 <= self.fill_probability <= 1.0:
            raise ValueError(f"fill_probability must be in [0, 1], got {self.fill_probability}")
        if self.max_load_iterations <= 0:
            raise ValueError(f"max_load_iterations must be positive, got {self.max_load_iterations}")

    @classmethod
    def from_env(cls) -> "BacktestSettings":
        """
        Load backtest settings from environment variables.

        **Environment variables**:
          - SLOPE_TRADER_BACKTEST_FILE (required)
          - SLOPE_TRADER_BACKTEST_START_TIME (required)
          - SLOPE_TRADER_BACKTEST_STARTING_CASH (default 100000)
          - SLOPE_TRADER_BACKTEST_FILE_BAR_INTERVAL (default 60s)
          - SLOPE_TRADER_BACKTEST_FILL_PROBABILITY (default 0.75)
          - SLOPE_TRADER_BACKTEST_SEED (optional)
          - SLOPE_TRADER_BACKTEST_PRINT_DAY_DETAILS (default false)

        Raises:
            ValueError: If a required variable is missing or a value is malformed.
        """
        p = ENV_PREFIX + "BACKTEST_"
        return cls(
            data_file=Path(_env(p + "FILE", "")),
            start_timestamp=_env(p + "START_TIME", ""),
            starting_cash=_env_decimal(p + "STARTING_CASH", "100000"),
            file_bar_interval=_env_duration(p + "FILE_BAR_INTERVAL", "60s"),
            fill_probability=_env_float(p + "FILL_PROBABILITY", "0.75"),
            seed=_env_optional_int(p + "SEED"),
            print_day_details=_env_bool(p + "PRINT_DAY_DETAILS", "false"),
            max_load_iterations=_env_int(p + "MAX_LOAD_ITERATIONS", str(366 * 24 * 60)),
        )


@dataclass(frozen=True)
class AlpacaSettings:
    """
    Configuration for the Alpaca brokerage REST API (live trading only).

    **Security note**: Keys are secrets. Load them from the environment
    (ALPACA_API_KEY_ID / ALPACA_API_SECRET_KEY), never hardcode or log them.

    Attributes:
        api_key_id: Alpaca key ID.
        api_secret_key: Alpaca secret.
        base_url: Trading API base URL (paper trading by default).
        data_url: Market data API base URL.
        timeout_seconds: HTTP request timeout.
    """
    api_key_id: str
    api_secret_key: str = field(repr=False)
    base_url: str = "https://paper-api.alpaca.markets"
    data_url: str = "https://data.alpaca.markets"
    timeout_seconds: int = 30

    def __post_init__(self):
        if not self.api_key_id:
            raise ValueError(
                "ALPACA_API_KEY_ID is required but not set. "
                "Please set it in your .env file or environment variables."
            )
        if not self.api_secret_key:
            raise ValueError(
                "ALPACA_API_SECRET_KEY is required but not set. "
                "Please set it in your .env file or environment variables."
            )

    @classmethod
    def from_env(cls) -> "AlpacaSettings":
        return cls(
            api_key_id=_env("ALPACA_API_KEY_ID", ""),
            api_secret_key=_env("ALPACA_API_SECRET_KEY", ""),
            base_url=_env("ALPACA_BASE_URL", "https://paper-api.alpaca.markets"),
            data_url=_env("ALPACA_DATA_URL", "https://data.alpaca.markets"),
            timeout_seconds=_env_int("ALPACA_TIMEOUT_SECONDS", "30"),
        )


@dataclass(frozen=True)
class Settings:
    """
    Global settings for the trading system.

    **Usage pattern**:
      ```python
      from slope_trader.config.settings import get_settings

      settings = get_settings(require_backtest=True)
      settings.strategy.stock_symbol
      settings.backtest.data_file
      ```

    Attributes:
        strategy: Always present (every field has a default).
        backtest: None unless backtest variables are configured.
        alpaca: None unless brokerage credentials are configured.
    """
    strategy: StrategySettings
    backtest: Optional[BacktestSettings] = None
    alpaca: Optional[AlpacaSettings] = None

    @classmethod
    def from_env(cls, require_backtest: bool = False, require_alpaca: bool = False) -> "Settings":
        """
        Load global settings from environment variables.

        Backtest and brokerage settings are optional unless required.

        Raises:
            ValueError: If a required subsystem cannot be loaded, or any
                strategy value is malformed.
        """
        strategy_settings = StrategySettings.from_env()

        backtest_settings = None
        try:
            backtest_settings = BacktestSettings.from_env()
        except ValueError as e:
            if require_backtest:
                raise ValueError(f"Backtest settings are required but could not be loaded: {e}") from e

        alpaca_settings = None
        try:
            alpaca_settings = AlpacaSettings.from_env()
        except ValueError as e:
            if require_alpaca:
                raise ValueError(f"Alpaca settings are required but could not be loaded: {e}") from e

        return cls(
            strategy=strategy_settings,
            backtest=backtest_settings,
            alpaca=alpaca_settings,
        )


_default_settings: Optional[Settings] = None


def get_settings(require_backtest: bool = False, require_alpaca: bool = False) -> Settings:
    """
    Get the global settings singleton (loaded lazily on first call).

    Tests should build Settings objects directly, or call reset_settings()
    after changing the environment.

    Raises:
        ValueError: If a required subsystem is missing from the cached settings.
    """
    global _default_settings

    if _default_settings is None:
        _default_settings = Settings.from_env(
            require_backtest=require_backtest,
            require_alpaca=require_alpaca,
        )

    if require_backtest and _default_settings.backtest is None:
        raise ValueError(
            "Backtest settings are required but not configured. "
            "Set SLOPE_TRADER_BACKTEST_FILE and SLOPE_TRADER_BACKTEST_START_TIME."
        )
    if require_alpaca and _default_settings.alpaca is None:
        raise ValueError(
            "Alpaca settings are required but not configured. "
            "Set ALPACA_API_KEY_ID and ALPACA_API_SECRET_KEY."
        )

    return _default_settings


def reset_settings():
    """Clear the cached settings singleton (for tests)."""
    global _default_settings
    _default_settings = None
