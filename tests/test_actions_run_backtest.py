"""
Tests for the run_backtest command line entry point.

Logging setup is stubbed out so the CLI does not replace pytest's handlers,
and settings are injected so a local .env cannot change the outcome.
"""

import csv

import pytest

from actions import run_backtest as cli
from slope_trader.config.settings import Settings, StrategySettings

ROWS = [
    ["2024-01-03 09:30:00", "100", "100.5", "99.5", "100"],
    ["2024-01-03 09:31:00", "101", "101.5", "100.5", "101"],
    ["2024-01-03 09:32:00", "102", "102.5", "102", "102.5"],
    ["2024-01-03 09:33:00", "102.5", "102.5", "102", "102.4"],
    ["2024-01-03 09:34:00", "102.5", "103.5", "102.8", "103"],
]


@pytest.fixture(autouse=True)
def isolated_cli(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    settings = Settings(strategy=StrategySettings(min_slope_required_to_buy=1.0))
    monkeypatch.setattr(cli, "get_settings", lambda: settings)


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "spy.csv"
    with open(path, "w", newline="") as f:
        csv.writer(f).writerows(ROWS)
    return path


def run_cli(argv):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return excinfo.value.code


def test_successful_run_prints_summary(data_file, capsys):
    code = run_cli(["--file", str(data_file), "--start", "2024-01-03 09:30:00", "--seed", "3"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Starting Cash: 100000.00" in out
    assert "Trading Days: 1" in out


def test_print_day_details_flag(data_file, capsys):
    code = run_cli(
        ["--file", str(data_file), "--start", "2024-01-03 09:30:00", "--print-day-details"]
    )

    assert code == 0
    assert "Orders created:" in capsys.readouterr().out


def test_missing_data_file_setting_is_a_configuration_error(capsys):
    code = run_cli(["--start", "2024-01-03 09:30:00"])

    captured = capsys.readouterr()
    assert code == 1
    assert "SLOPE_TRADER_BACKTEST_FILE" in captured.err
    assert captured.out == ""


def test_malformed_start_time_is_a_configuration_error(data_file, capsys):
    assert run_cli(["--file", str(data_file), "--start", "Jan 3rd"]) == 1


def test_missing_file_is_fatal_without_report(tmp_path, capsys):
    code = run_cli(["--file", str(tmp_path / "nope.csv"), "--start", "2024-01-03 09:30:00"])

    captured = capsys.readouterr()
    assert code == 2
    assert captured.out == ""
    assert "not found" in captured.err


def test_malformed_data_is_fatal_without_report(tmp_path, capsys):
    path = tmp_path / "bad.csv"
    path.write_text("2024-01-03 09:30:00,100,abc,99,100\n")

    code = run_cli(["--file", str(path), "--start", "2024-01-03 09:30:00"])

    captured = capsys.readouterr()
    assert code == 2
    assert captured.out == ""
    assert "backtest aborted" in captured.err


def test_cli_overrides_environment_settings(data_file, tmp_path):
    from slope_trader.config.settings import BacktestSettings

    settings = Settings(
        strategy=StrategySettings(),
        backtest=BacktestSettings(data_file=tmp_path / "env.csv", start_timestamp="2020-01-02 09:30:00"),
    )
    args = cli.parse_args(["--file", str(data_file), "--seed", "9"])

    resolved = cli.resolve_backtest_settings(settings, args)

    assert resolved.data_file == data_file
    assert resolved.start_timestamp == "2020-01-02 09:30:00"
    assert resolved.seed == 9
