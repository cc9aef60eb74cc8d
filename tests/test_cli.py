import json

import pandas as pd
import pytest
from typer.testing import CliRunner

from gridsim import cli
from gridsim.utils.datetime_utils import DateTimeUtils

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_file_logging(monkeypatch):
    monkeypatch.setattr(cli, "init_logging", lambda *a, **k: None)


@pytest.fixture
def workspace(tmp_path):
    data = tmp_path / "bars"
    data.mkdir()
    days = pd.bdate_range("2024-12-30", DateTimeUtils.today())
    rows = []
    for d in days:
        rows.append({"timestamp": f"{d.date()}T14:30:00Z", "close": 100.0})
        rows.append({"timestamp": f"{d.date()}T14:31:00Z", "close": 101.0})
    pd.DataFrame(rows).to_csv(data / "TEST.csv", index=False)

    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "cache:\n"
        "  request_delay_ms: 0\n"
        "  fetch_attempts: 1\n"
        "  fetch_retry_delay: 0\n",
        encoding="utf-8",
    )
    return tmp_path


def _args(ws, *extra):
    return [
        *extra,
        "--store-dir", str(ws / "store"),
        "--config", str(ws / "config.yml"),
    ]


def test_version():
    res = runner.invoke(cli.app, ["version"])
    assert res.exit_code == 0
    assert "v0.1.0" in res.output


def test_backtest_writes_reports(workspace):
    res = runner.invoke(
        cli.app,
        _args(
            workspace,
            "backtest", "test", "2025-01-06", "2025-01-10",
            "--capital", "1000",
            "--data-dir", str(workspace / "bars"),
            "--report-dir", str(workspace / "reports"),
        ),
    )
    assert res.exit_code == 0, res.output

    out = workspace / "reports" / "TEST_2025-01-06_2025-01-10"
    metrics = json.loads((out / "metrics.json").read_text(encoding="utf-8"))
    assert metrics["processed_bars"] == 10
    assert (out / "trades.csv").exists()
    assert (out / "equity_curve.png").exists()


def test_backtest_invalid_range_exit_code(workspace):
    res = runner.invoke(
        cli.app,
        _args(
            workspace,
            "backtest", "TEST", "2025-01-10", "2025-01-06",
            "--data-dir", str(workspace / "bars"),
            "--report-dir", str(workspace / "reports"),
        ),
    )
    assert res.exit_code == 2


def test_ranges_and_clear(workspace):
    runner.invoke(
        cli.app,
        _args(
            workspace,
            "backtest", "TEST", "2025-01-06", "2025-01-10",
            "--data-dir", str(workspace / "bars"),
            "--report-dir", str(workspace / "reports"),
        ),
    )

    res = runner.invoke(cli.app, _args(workspace, "ranges", "TEST"))
    assert res.exit_code == 0
    assert "2025-01-06" in res.output
    assert "cached days: 5" in res.output

    res = runner.invoke(cli.app, _args(workspace, "clear", "TEST"))
    assert res.exit_code == 0
    assert "Cleared 5" in res.output

    res = runner.invoke(cli.app, _args(workspace, "ranges", "TEST"))
    assert "cached days: 0" in res.output


def test_ranges_unknown_symbol(workspace):
    res = runner.invoke(cli.app, _args(workspace, "ranges", "NOPE"))
    assert res.exit_code == 0
    assert "No cached range" in res.output
