"""Central logging configuration with file rotation."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

BACKTEST_LOG_FILENAME = "trader-backtest.log"
LIVE_LOG_FILENAME = "trader.log"


def teardown_logging(logger: Optional[logging.Logger] = None) -> None:
    """Flush, detach and close all handlers of the given (default: root) logger."""
    target = logger or logging.getLogger()
    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.flush()
        handler.close()


def setup_logging(
    log_level: str = "INFO",
    logs_dir: Optional[Path] = None,
    console_output: bool = True,
    filename: str = BACKTEST_LOG_FILENAME,
) -> logging.Logger:
    """
    Configure the root logger: a rotating file at DEBUG plus optional console.

    Calling it again replaces the previous handlers.

    Args:
        log_level: Root level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        logs_dir: Directory for log files (default: ./logs).
        console_output: Also log INFO and above to stdout.
        filename: Log file name (trader-backtest.log or trader.log).

    Returns:
        The configured root logger.
    """
    if logs_dir is None:
        logs_dir = Path.cwd() / "logs"
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    teardown_logging(logger)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = logs_dir / filename
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=3,
        encoding="utf-8",
        delay=True,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    logger.info("logging initialized at %s level, file %s", log_level, log_file)
    return logger
