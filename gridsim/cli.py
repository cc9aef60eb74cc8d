#!filepath: gridsim/cli.py
import signal
from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.table import Table

from gridsim import AppConfig, __version__, logs
from gridsim.config.backtest_config import ContributionConfig, SessionConfig
from gridsim.core.cancellation import CancellationToken
from gridsim.engine.engine import run_backtest
from gridsim.report.base import ReportPipeline
from gridsim.report.equity_curve import EquityCurveReport, MetricsReport, TradesReport
from gridsim.storage.providers import CsvBarProvider, FileSplitProvider
from gridsim.storage.store import ParquetBarStore
from gridsim.utils.errors import BacktestCancelled, UserInputError
from gridsim.utils.logger import init_logging

app = typer.Typer(help="gridsim: grid-trading minute-bar backtest CLI")


def _load_config(config: Optional[Path]) -> AppConfig:
    cfg = AppConfig.load(str(config) if config else None)
    init_logging(cfg.log.dir, cfg.log.rotation, cfg.log.retention, cfg.log.level)
    return cfg


@app.command()
def version():
    print(f"v{__version__}")


@logs.catch("backtest failed", expected=(UserInputError, BacktestCancelled))
def _run(session, cfg, data_dir, splits, store_dir, report_dir, cancel):
    split_provider = FileSplitProvider(splits) if splits else None
    known_splits = (split_provider.fetch_splits(session.symbol) or []) if split_provider else []

    result = run_backtest(
        session,
        store=ParquetBarStore(store_dir or cfg.cache.store_dir),
        provider=CsvBarProvider(data_dir, splits=known_splits),
        split_provider=split_provider,
        app=cfg,
        cancel=cancel,
    )

    out = Path(report_dir) / f"{session.symbol}_{session.start_date}_{session.end_date}"
    ReportPipeline(
        [
            EquityCurveReport(out / "equity_curve.png"),
            MetricsReport(out / "metrics.json"),
            TradesReport(out / "trades.csv"),
        ]
    ).render_all(result)
    return result, out


@app.command()
def backtest(
    symbol: str,
    start: str,
    end: str,
    capital: float = typer.Option(10_000.0, help="start capital"),
    data_dir: Path = typer.Option(Path("data/bars"), help="<SYMBOL>.csv / .parquet minute bars"),
    splits: Optional[Path] = typer.Option(None, help="YAML/JSON split table"),
    store_dir: Optional[Path] = typer.Option(None, help="cache dir (default from config)"),
    report_dir: Path = typer.Option(Path("reports")),
    start_time: Optional[str] = typer.Option(None, help="intraday start on the first day, ISO UTC"),
    contribution: float = typer.Option(0.0, help="amount added every --contribution-days"),
    contribution_days: int = typer.Option(0),
    config: Optional[Path] = typer.Option(None, help="config yml"),
):
    """
    回放 [START, END] 的分钟线，输出 equity curve / metrics / trades
    """
    cfg = _load_config(config)

    try:
        session = SessionConfig(
            symbol=symbol,
            start_date=start,
            end_date=end,
            start_capital=capital,
            strategy=cfg.strategy,
            pdt=cfg.pdt,
            start_time=start_time,
            contribution=(
                ContributionConfig(frequency_days=contribution_days, amount=contribution)
                if contribution > 0 and contribution_days > 0
                else None
            ),
        )
    except ValueError as e:
        print(f"[red]Invalid input: {e}[/red]")
        raise typer.Exit(code=2)

    cancel = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.cancel("Interrupted by user"))

    print(f"[green]Backtesting {session.symbol} {session.start_date} -> {session.end_date}[/green]")
    try:
        result, out = _run(session, cfg, data_dir, splits, store_dir, report_dir, cancel)
    except UserInputError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    except BacktestCancelled as e:
        print(f"[yellow]{e.reason}[/yellow]")
        raise typer.Exit(code=130)
    finally:
        signal.signal(signal.SIGINT, previous)

    table = Table(title=f"{result.symbol} backtest")
    table.add_column("metric")
    table.add_column("value", justify="right")
    table.add_row("final equity", f"{result.final_equity:,.2f}")
    table.add_row("invested", f"{result.invested_capital:,.2f}")
    table.add_row("return", f"{result.total_return_pct:.2f}%")
    table.add_row("trades", str(len(result.trades)))
    table.add_row("bars", str(result.processed_bars))
    table.add_row("time", result.execution_time)
    if result.metrics:
        table.add_row("max drawdown", f"{result.metrics.max_drawdown_pct:.2f}%")
        table.add_row("buy & hold", f"{result.metrics.buy_hold_return_pct:.2f}%")
    print(table)
    print(f"[blue]Reports → {out}[/blue]")


@app.command()
def ranges(
    symbol: str,
    store_dir: Optional[Path] = typer.Option(None),
    config: Optional[Path] = typer.Option(None),
):
    """
    查看缓存 coverage
    """
    cfg = _load_config(config)
    store = ParquetBarStore(store_dir or cfg.cache.store_dir)
    rng = store.get_range(symbol.upper())
    if rng is None:
        print(f"[yellow]No cached range for {symbol.upper()}[/yellow]")
        return

    print(rng.to_dict())
    print(f"cached days: {len(store.list_days(rng.symbol))}")


@app.command()
def clear(
    symbol: str,
    store_dir: Optional[Path] = typer.Option(None),
    config: Optional[Path] = typer.Option(None),
):
    """
    删除缓存 blob 并重置 coverage
    """
    cfg = _load_config(config)
    store = ParquetBarStore(store_dir or cfg.cache.store_dir)
    rng = store.get_range(symbol.upper())
    n = store.delete_day_blobs(symbol.upper())
    if rng is not None:
        rng.have_from = None
        rng.have_to = None
        store.put_range(rng)
    print(f"[green]Cleared {n} cached days for {symbol.upper()}[/green]")


if __name__ == "__main__":
    app()

# python -m gridsim.cli backtest AAPL 2024-01-02 2024-06-28 --data-dir data/bars
