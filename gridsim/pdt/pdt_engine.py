from __future__ import annotations

from typing import Callable, Optional

from gridsim import logs
from gridsim.config.backtest_config import PdtConfig
from gridsim.core.state import SimulationState
from gridsim.core.types import PdtDay, Side
from gridsim.utils.datetime_utils import DateTimeUtils

from .round_trips import count_day_round_trips

EquitySource = Callable[[], Optional[float]]


class PdtEngine:
    """
    Pattern-Day-Trader 规则

    - 买单永远允许
    - 卖单在以下条件同时成立时被拒：
        equity < threshold
        最近 window_days 个工作日 round trip >= max_round_trips
        该卖单会构成当日 round trip
    - equity 不可得（None）按低于阈值处理
    """

    def __init__(
        self,
        state: SimulationState,
        config: PdtConfig,
        equity_source: Optional[EquitySource] = None,
    ):
        self.state = state
        self.config = config
        self.equity_source: EquitySource = equity_source or (lambda: state.equity)

    # ------------------------------------------------------------------
    def window_start(self, ts_us: int) -> str:
        return DateTimeUtils.business_window_start(DateTimeUtils.day_of(ts_us), self.config.window_days)

    def window_round_trips(self, ts_us: int) -> int:
        start = self.window_start(ts_us)
        today = DateTimeUtils.day_of(ts_us)
        return sum(d.round_trips for d in self.state.pdt_days if start <= d.date <= today)

    def is_at_risk(self, ts_us: int) -> bool:
        equity = self.equity_source()
        below_threshold = equity is None or equity < self.config.equity_threshold
        return below_threshold and self.window_round_trips(ts_us) >= self.config.max_round_trips

    def would_be_day_trade(self, trade_id: Optional[str], ts_us: int) -> bool:
        today = DateTimeUtils.day_of(ts_us)
        if trade_id is None:
            return True

        open_trade = self.state.open_trades.get(trade_id)
        if open_trade is not None:
            return DateTimeUtils.day_of(open_trade.ts_us) == today

        record = self.state.find_trade_record(trade_id)
        if record is not None:
            return DateTimeUtils.day_of(record.ts_us) == today

        # 找不到来源的仓位按当日处理
        return True

    def is_trading_allowed(self, ts_us: int, side: Side, trade_id: Optional[str] = None) -> bool:
        if not self.config.enabled or side is Side.BUY:
            return True
        if not self.is_at_risk(ts_us):
            return True
        if self.would_be_day_trade(trade_id, ts_us):
            logs.debug(f"[PDT] sell blocked trade={trade_id} day={DateTimeUtils.day_of(ts_us)}")
            return False
        return True

    # ------------------------------------------------------------------
    def on_fill(self, ts_us: int) -> PdtDay:
        """成交后重算当日 round trip，更新并裁剪窗口"""
        day = DateTimeUtils.day_of(ts_us)
        count = count_day_round_trips(self.state.trade_history, day)

        entry = None
        for d in self.state.pdt_days:
            if d.date == day:
                d.round_trips = count
                entry = d
                break
        if entry is None:
            entry = PdtDay(date=day, round_trips=count)
            self.state.pdt_days.append(entry)

        start = self.window_start(ts_us)
        days = sorted((d for d in self.state.pdt_days if d.date >= start), key=lambda d: d.date)
        self.state.pdt_days = days[-self.config.window_days:]
        return entry
