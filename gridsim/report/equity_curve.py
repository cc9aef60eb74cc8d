# gridsim/report/equity_curve.py
import json
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

from gridsim import logs  # noqa: E402
from gridsim.report.base import Report  # noqa: E402
from gridsim.engine.result import BacktestResult  # noqa: E402
from gridsim.utils.filesystem import FileSystem  # noqa: E402


class EquityCurveReport(Report):
    """price / equity / cash 采样曲线 + 成交点"""

    def __init__(self, output_path):
        self._path = Path(output_path)

    def render(self, result: BacktestResult) -> None:
        chart = result.chart_data or {}
        samples = chart.get("samples") or []
        if not samples:
            logs.info("[Report] no chart samples, skip equity curve")
            return

        df = pd.DataFrame(samples)
        df["time"] = pd.to_datetime(df["ts_us"], unit="us", utc=True)

        FileSystem.ensure_dir(self._path.parent)
        fig, (ax_price, ax_eq) = plt.subplots(2, 1, figsize=(12, 7), sharex=True)

        ax_price.plot(df["time"], df["price"], color="tab:gray", linewidth=0.8, label="price")
        executed = [e for e in chart.get("executions") or [] if e.get("executed")]
        for side, color in (("buy", "tab:green"), ("sell", "tab:red")):
            pts = [e for e in executed if e["type"] == side]
            if pts:
                ax_price.scatter(
                    pd.to_datetime([e["execution_ts"] for e in pts], unit="us", utc=True),
                    [e["trigger_price"] for e in pts],
                    s=10,
                    color=color,
                    label=side,
                )
        ax_price.set_ylabel("Price")
        ax_price.legend(loc="upper left")

        ax_eq.plot(df["time"], df["equity"], label="equity")
        ax_eq.plot(df["time"], df["cash"], label="cash", alpha=0.7)
        ax_eq.set_ylabel("USD")
        ax_eq.set_xlabel("Time (UTC)")
        ax_eq.legend(loc="upper left")

        fig.suptitle(f"Equity Curve: {result.symbol} {result.start_date} → {result.end_date}")
        fig.tight_layout()
        fig.savefig(self._path)
        plt.close(fig)


class MetricsReport(Report):
    def __init__(self, output_path):
        self._path = Path(output_path)

    def render(self, result: BacktestResult) -> None:
        payload = {
            "symbol": result.symbol,
            "start_date": result.start_date,
            "end_date": result.end_date,
            "start_capital": result.start_capital,
            "invested_capital": result.invested_capital,
            "final_equity": result.final_equity,
            "total_return": result.total_return,
            "total_return_pct": result.total_return_pct,
            "peak_equity": result.capital.peak_equity if result.capital else None,
            "processed_bars": result.processed_bars,
            "execution_time": result.execution_time,
            "metrics": result.metrics.to_dict() if result.metrics else None,
        }
        FileSystem.safe_write(self._path, json.dumps(payload, indent=2).encode("utf-8"))


class TradesReport(Report):
    def __init__(self, output_path):
        self._path = Path(output_path)

    def render(self, result: BacktestResult) -> None:
        if not result.trades:
            return

        df = pd.DataFrame(result.to_dict()["trades"])
        df["time"] = pd.to_datetime(df["ts_us"], unit="us", utc=True)
        FileSystem.ensure_dir(self._path.parent)
        df.to_csv(self._path, index=False)
