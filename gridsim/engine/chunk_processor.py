from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional

from gridsim.config.backtest_config import SessionConfig
from gridsim.core.state import SimulationState
from gridsim.core.types import Bar, DayBlob
from gridsim.orders.order_engine import OrderEngine

from .contributions import ContributionSchedule
from .metrics_tracker import MetricsTracker
from .price_collector import PriceCollector

BlobLoader = Callable[[str, str, str], List[DayBlob]]


@dataclass(frozen=True)
class ChunkOutcome:
    processed_bars: int
    should_break: bool
    last_bar: Optional[Bar]


class ChunkProcessor:
    """
    单个日期 chunk 的逐 bar 回放

    每个 bar：
      1) 到期的追加资金（同时买入 buy-and-hold 影子组合）
      2) 第一根 bar 初始化 buy-and-hold
      3) OrderEngine.step
      4) 用 bar 后的 equity / cash 更新 metrics / 采样
    """

    def __init__(
        self,
        session: SessionConfig,
        state: SimulationState,
        orders: OrderEngine,
        load_blobs: BlobLoader,
        contributions: ContributionSchedule,
        metrics: Optional[MetricsTracker] = None,
        collector: Optional[PriceCollector] = None,
    ):
        self.session = session
        self.state = state
        self.orders = orders
        self.load_blobs = load_blobs
        self.contributions = contributions
        self.metrics = metrics
        self.collector = collector

        self.desired_start_us = session.desired_start_us
        self.end_boundary_us = session.end_boundary_us
        self._first_bar_seen = False

    def process_bar(self, bar: Bar) -> None:
        ts_us, price = bar

        for amount in self.contributions.due(ts_us):
            self.state.add_capital(amount)
            if self.metrics is not None:
                self.metrics.on_contribution(amount, price)

        if not self._first_bar_seen:
            self._first_bar_seen = True
            if self.metrics is not None:
                self.metrics.init_buy_hold(price)

        self.orders.step(price, ts_us)

        equity = self.state.mark_to_market(price)
        cash = self.state.cash
        if self.metrics is not None and math.isfinite(equity) and equity >= 0:
            self.metrics.record(ts_us, equity, cash)
        if self.collector is not None:
            self.collector.observe(ts_us, price, equity, cash)

    def process_chunk(self, chunk_start: str, chunk_end: str, first_chunk: bool) -> ChunkOutcome:
        processed = 0
        last_bar: Optional[Bar] = None

        for blob in self.load_blobs(self.session.symbol, chunk_start, chunk_end):
            for bar in blob.bars():
                if first_chunk and bar.ts_us < self.desired_start_us:
                    continue
                if bar.ts_us >= self.end_boundary_us:
                    return ChunkOutcome(processed, True, last_bar)

                self.process_bar(bar)
                processed += 1
                last_bar = bar

        return ChunkOutcome(processed, False, last_bar)
