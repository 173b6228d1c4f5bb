"""
slope_trader – Main entry point.

Runs a backtest with settings from the environment (.env) and any
command-line overrides; see actions/run_backtest.py for the options.
"""

from actions.run_backtest import main


if __name__ == "__main__":
    main()
