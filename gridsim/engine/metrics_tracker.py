from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

import numpy as np

from gridsim.core.events import Event, FillEvent
from gridsim.core.pricing import round_down
from gridsim.utils.datetime_utils import DateTimeUtils


@dataclass
class DrawdownPeriod:
    start_ts: int
    peak_equity: float
    trough_equity: float
    end_ts: Optional[int] = None
    recovered: bool = False

    @property
    def depth_pct(self) -> float:
        if self.peak_equity <= 0:
            return 0.0
        return (self.peak_equity - self.trough_equity) / self.peak_equity * 100


@dataclass
class MetricsRawData:
    peak_equity: float
    drawdown_periods: List[DrawdownPeriod] = field(default_factory=list)
    monthly_equity: Dict[str, float] = field(default_factory=dict)
    trade_count: int = 0
    invested_ratio_sum: float = 0.0
    ticks: int = 0
    max_drawdown_pct: float = 0.0
    max_drawdown_abs: float = 0.0
    buy_hold_shares: float = 0.0
    buy_hold_cash: float = 0.0
    contributions: float = 0.0


@dataclass(frozen=True)
class MetricsSummary:
    """
    MetricsSummary（FINAL）

    回测结束时由 MetricsTracker.finalize() 派生的只读指标
    """

    total_return_pct: float
    max_drawdown_pct: float
    max_drawdown_abs: float
    best_month_pct: float
    worst_month_pct: float
    monthly_returns: Dict[str, float]
    trade_count: int
    avg_invested_ratio: float
    buy_hold_final_equity: float
    buy_hold_return_pct: float
    drawdown_periods: List[dict]

    def to_dict(self) -> dict:
        return asdict(self)


class MetricsTracker:
    """
    逐 bar 观测 equity / cash：

      - 峰值 / 回撤区间（最大回撤 % 和 $ 分别统计）
      - 月末 equity 快照（同月后值覆盖）
      - 平均资金使用率
      - buy-and-hold 影子组合（保留 cash_floor 不投入）
    """

    def __init__(self, start_capital: float, start_date: str, cash_floor: float = 0.0):
        self.start_capital = float(start_capital)
        self.cash_floor = float(cash_floor)
        self.raw = MetricsRawData(peak_equity=self.start_capital, buy_hold_cash=self.start_capital)
        self.raw.monthly_equity[start_date[:7]] = self.start_capital
        self._buy_hold_started = False
        self._open: Optional[DrawdownPeriod] = None

    # ------------------------------------------------------------------
    # events
    # ------------------------------------------------------------------
    def on_event(self, event: Event) -> None:
        if isinstance(event, FillEvent):
            self.raw.trade_count += 1

    # ------------------------------------------------------------------
    # buy & hold
    # ------------------------------------------------------------------
    @property
    def buy_hold_started(self) -> bool:
        return self._buy_hold_started

    def _buy_hold_invest(self, price: float) -> None:
        investable = self.raw.buy_hold_cash - self.cash_floor
        if investable <= 0 or price <= 0:
            return
        shares = round_down(investable / price)
        cost = round_down(shares * price)
        self.raw.buy_hold_shares += shares
        self.raw.buy_hold_cash -= cost

    def init_buy_hold(self, price: float) -> None:
        if self._buy_hold_started:
            return
        self._buy_hold_started = True
        self._buy_hold_invest(price)

    def on_contribution(self, amount: float, price: float) -> None:
        self.raw.contributions += amount
        self.raw.buy_hold_cash += amount
        if self._buy_hold_started:
            self._buy_hold_invest(price)

    def buy_hold_equity(self, price: float) -> float:
        return self.raw.buy_hold_cash + self.raw.buy_hold_shares * price

    # ------------------------------------------------------------------
    # per bar
    # ------------------------------------------------------------------
    def record(self, ts_us: int, equity: float, cash: float) -> None:
        raw = self.raw
        raw.ticks += 1
        if equity > 0:
            raw.invested_ratio_sum += (equity - cash) / equity

        raw.monthly_equity[DateTimeUtils.month_key(ts_us)] = equity

        if equity >= raw.peak_equity:
            raw.peak_equity = equity
            if self._open is not None:
                self._open.end_ts = ts_us
                self._open.recovered = True
                self._open = None
            return

        if self._open is None:
            self._open = DrawdownPeriod(start_ts=ts_us, peak_equity=raw.peak_equity, trough_equity=equity)
            raw.drawdown_periods.append(self._open)
        elif equity < self._open.trough_equity:
            self._open.trough_equity = equity

        dd_abs = raw.peak_equity - equity
        dd_pct = dd_abs / raw.peak_equity * 100 if raw.peak_equity > 0 else 0.0
        raw.max_drawdown_abs = max(raw.max_drawdown_abs, dd_abs)
        raw.max_drawdown_pct = max(raw.max_drawdown_pct, dd_pct)

    # ------------------------------------------------------------------
    def monthly_returns(self) -> Dict[str, float]:
        months = sorted(self.raw.monthly_equity)
        values = np.array([self.raw.monthly_equity[m] for m in months], dtype=float)
        if len(values) < 2:
            return {}
        prev = values[:-1]
        with np.errstate(divide="ignore", invalid="ignore"):
            pct = np.where(prev != 0, np.diff(values) / prev * 100, 0.0)
        return {m: float(p) for m, p in zip(months[1:], pct)}

    def finalize(self, end_ts: int, final_equity: float, last_price: Optional[float]) -> MetricsSummary:
        raw = self.raw
        if self._open is not None:
            self._open.end_ts = end_ts
            self._open = None

        invested = self.start_capital + raw.contributions
        total_return_pct = (final_equity - invested) / invested * 100 if invested > 0 else 0.0

        monthly = self.monthly_returns()
        if monthly:
            best = max(monthly.values())
            worst = min(monthly.values())
        else:
            best = worst = total_return_pct

        bh_equity = self.buy_hold_equity(last_price) if last_price is not None else raw.buy_hold_cash
        bh_return = (bh_equity - invested) / invested * 100 if invested > 0 else 0.0

        return MetricsSummary(
            total_return_pct=total_return_pct,
            max_drawdown_pct=raw.max_drawdown_pct,
            max_drawdown_abs=raw.max_drawdown_abs,
            best_month_pct=best,
            worst_month_pct=worst,
            monthly_returns=monthly,
            trade_count=raw.trade_count,
            avg_invested_ratio=raw.invested_ratio_sum / raw.ticks if raw.ticks else 0.0,
            buy_hold_final_equity=bh_equity,
            buy_hold_return_pct=bh_return,
            drawdown_periods=[asdict(p) for p in raw.drawdown_periods],
        )
