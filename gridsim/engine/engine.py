from __future__ import annotations

import time
from typing import Callable, Iterator, Optional, Tuple

from gridsim import logs
from gridsim.config.app_config import AppConfig
from gridsim.config.backtest_config import EngineConfig, SessionConfig
from gridsim.core.cancellation import CancellationToken
from gridsim.core.state import SimulationState
from gridsim.core.types import Bar
from gridsim.observability.progress import ProgressCallback, ProgressReporter, ProgressStage
from gridsim.orders.order_engine import OrderEngine
from gridsim.pdt.pdt_engine import PdtEngine
from gridsim.storage.providers import BarProvider, SplitProvider
from gridsim.storage.range_manager import RangeManager
from gridsim.storage.store import BarStore
from gridsim.utils.datetime_utils import DateTimeUtils

from .bar_estimation import estimate_total_bars, reestimate_total_bars
from .chunk_processor import ChunkProcessor
from .contributions import ContributionSchedule
from .metrics_tracker import MetricsTracker
from .order_tracker import OrderTracker
from .price_collector import PriceCollector
from .result import BacktestResult


def iter_chunks(start_date: str, end_date: str, months: int) -> Iterator[Tuple[str, str]]:
    """[start, add_months(start, n) - 1] 依次切分，最后一段截到 end_date"""
    chunk_start = start_date
    while chunk_start <= end_date:
        chunk_end = min(DateTimeUtils.previous_day(DateTimeUtils.add_months(chunk_start, months)), end_date)
        yield chunk_start, chunk_end
        chunk_start = DateTimeUtils.next_day(chunk_end)


class BacktestEngine:
    """
    BacktestEngine（唯一写 BacktestResult 的地方）

    流程：
      initialize → 新建 SimulationState → ensure_coverage（拆股 / 首日 / 补缺口）
      → 按 chunk 回放 → 汇总结果

    每次 run() 都新建 state / engines / trackers，不跨 run 共享。
    """

    def __init__(
        self,
        session: SessionConfig,
        ranges: RangeManager,
        config: Optional[EngineConfig] = None,
        progress: Optional[ProgressReporter] = None,
        cancel: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.session = session
        self.ranges = ranges
        self.config = config or EngineConfig()
        self.progress = progress or ranges.progress
        self.cancel = cancel or ranges.cancel
        self.clock = clock

    def run(self) -> BacktestResult:
        s = self.session
        started = self.clock()

        self.progress.report(
            ProgressStage.INITIALIZE_BACKTEST,
            f"Initializing backtest {s.symbol} {s.start_date}..{s.end_date}",
        )

        state = SimulationState(s).ensure_initialized()
        pdt = PdtEngine(state, s.pdt)
        orders = OrderEngine(state, s.strategy, pdt)

        metrics = MetricsTracker(s.start_capital, s.start_date, s.strategy.cash_floor) if s.collect_metrics else None
        collector = PriceCollector(s.start_date, s.end_date) if s.collect_chart else None
        tracker = OrderTracker() if s.collect_chart else None
        for listener in (metrics, collector, tracker):
            if listener is not None:
                orders.subscribe(listener.on_event)

        self.ranges.ensure_coverage(s.symbol, s.start_date, s.end_date, ledger=state)

        processor = ChunkProcessor(
            session=s,
            state=state,
            orders=orders,
            load_blobs=self.ranges.load_day_blobs,
            contributions=ContributionSchedule(s.contribution, s.start_date),
            metrics=metrics,
            collector=collector,
        )

        total = estimate_total_bars(s.start_date, s.end_date)
        processed = 0
        last_bar: Optional[Bar] = None

        for i, (chunk_start, chunk_end) in enumerate(iter_chunks(s.start_date, s.end_date, self.config.chunk_months)):
            self.cancel.raise_if_cancelled()

            outcome = processor.process_chunk(chunk_start, chunk_end, first_chunk=(i == 0))
            processed += outcome.processed_bars
            if outcome.last_bar is not None:
                last_bar = outcome.last_bar

            total = reestimate_total_bars(total, processed, chunk_end, s.end_date)
            remaining = DateTimeUtils.days_between(chunk_end, s.end_date)
            self.progress.report(
                ProgressStage.WORKING_ON_CHUNK,
                f"{remaining} days remaining",
                current=processed,
                total=total,
                chunk_start=chunk_start,
                chunk_end=chunk_end,
            )
            logs.debug(f"[Engine] chunk {chunk_start}..{chunk_end} bars={outcome.processed_bars}")

            if outcome.should_break:
                break

        result = self._finalize(state, metrics, collector, tracker, processed, last_bar, started)

        self.progress.report(
            ProgressStage.COMPLETED,
            f"Backtest completed: {processed} bars, return {result.total_return_pct:.2f}%",
            processed_bars=processed,
        )
        logs.info(
            f"[Engine] {s.symbol} done bars={processed} equity={result.final_equity:.2f} "
            f"return={result.total_return_pct:.2f}% time={result.execution_time}"
        )
        return result

    # ------------------------------------------------------------------
    def _finalize(
        self,
        state: SimulationState,
        metrics: Optional[MetricsTracker],
        collector: Optional[PriceCollector],
        tracker: Optional[OrderTracker],
        processed: int,
        last_bar: Optional[Bar],
        started: float,
    ) -> BacktestResult:
        s = self.session

        final_equity = state.mark_to_market(last_bar.price) if last_bar is not None else state.equity
        invested = state.invested_capital
        total_return = final_equity - invested
        total_return_pct = total_return / invested * 100 if invested > 0 else 0.0

        summary = None
        if metrics is not None:
            end_ts = last_bar.ts_us if last_bar is not None else s.end_boundary_us
            summary = metrics.finalize(end_ts, final_equity, last_bar.price if last_bar else None)

        chart = None
        if collector is not None and tracker is not None:
            if last_bar is not None:
                collector.finalize(last_bar.ts_us, last_bar.price, final_equity, state.cash)
            chart = {"samples": collector.to_list(), "executions": tracker.to_list()}

        return BacktestResult(
            symbol=s.symbol,
            start_date=s.start_date,
            end_date=s.end_date,
            start_capital=s.start_capital,
            invested_capital=invested,
            final_equity=final_equity,
            final_cash=state.cash,
            total_return=total_return,
            total_return_pct=total_return_pct,
            processed_bars=processed,
            execution_time=DateTimeUtils.format_duration(self.clock() - started),
            trades=tuple(state.trade_history),
            open_positions=len(state.open_trades),
            metrics=summary,
            chart_data=chart,
            capital=state.capital(),
        )


def run_backtest(
    session: SessionConfig,
    store: BarStore,
    provider: BarProvider,
    split_provider: Optional[SplitProvider] = None,
    app: Optional[AppConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancellationToken] = None,
    **range_kwargs,
) -> BacktestResult:
    """装配 RangeManager + BacktestEngine，共享 progress / cancel"""
    app = app or AppConfig()
    cancel = cancel or CancellationToken()
    progress = ProgressReporter(
        callback=on_progress,
        min_jump_pct=app.engine.progress_min_jump_pct,
        min_step_pct=app.engine.progress_min_step_pct,
        stale_seconds=app.engine.progress_stale_seconds,
    )
    ranges = RangeManager(
        store,
        provider,
        split_provider,
        config=app.cache,
        progress=progress,
        cancel=cancel,
        **range_kwargs,
    )
    return BacktestEngine(session, ranges, app.engine, progress, cancel).run()
