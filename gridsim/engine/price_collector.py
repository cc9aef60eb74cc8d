from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List, Optional, Set

from gridsim.core.events import Event, FillEvent
from gridsim.core.time import US_PER_DAY, US_PER_HOUR, US_PER_MINUTE
from gridsim.utils.datetime_utils import DateTimeUtils


@dataclass(frozen=True)
class ChartPoint:
    ts_us: int
    price: float
    equity: float
    cash: float


def sample_interval_us(start_date: str, end_date: str) -> int:
    """按回测月数（天数 / 30）选择采样间隔"""
    months = DateTimeUtils.days_between(start_date, end_date, inclusive=True) / 30
    if months < 1:
        return 5 * US_PER_MINUTE
    if months < 6:
        return US_PER_HOUR
    if months < 12:
        return 4 * US_PER_HOUR
    return US_PER_DAY


class PriceCollector:
    """
    图表采样

    - 每个采样槽取第一笔落在交易时段内的 bar
    - 两次采样之间缺失的槽：只有在交易时段内、且当天有成交活动时
      才用最近一次的 price / equity / cash 补点
    - 成交强制按精确时间戳采样；最后一根 bar 总会被采样
    """

    def __init__(self, start_date: str, end_date: str):
        self.interval_us = sample_interval_us(start_date, end_date)
        self.samples: List[ChartPoint] = []
        self._last_slot: Optional[int] = None
        self._last: Optional[ChartPoint] = None
        self._active_days: Set[str] = set()

    def _append(self, point: ChartPoint) -> None:
        if self.samples and self.samples[-1].ts_us == point.ts_us:
            self.samples[-1] = point
        else:
            self.samples.append(point)
        self._last = point

    def _backfill(self, slot: int) -> None:
        if self._last_slot is None or self._last is None:
            return
        t = self._last_slot + self.interval_us
        while t < slot:
            if DateTimeUtils.is_trading_tick(t) and DateTimeUtils.day_of(t) in self._active_days:
                self._append(ChartPoint(t, self._last.price, self._last.equity, self._last.cash))
            t += self.interval_us

    def observe(self, ts_us: int, price: float, equity: float, cash: float, force: bool = False) -> None:
        point = ChartPoint(ts_us, price, equity, cash)
        trading = DateTimeUtils.is_trading_tick(ts_us)

        if not force and not trading:
            return

        if trading:
            self._active_days.add(DateTimeUtils.day_of(ts_us))
            slot = ts_us - ts_us % self.interval_us
            if self._last_slot is None or slot > self._last_slot:
                self._backfill(slot)
                self._last_slot = slot
                self._append(point)
                return

        if force or (self.samples and self.samples[-1].ts_us == ts_us):
            self._append(point)
        else:
            self._last = point

    def on_event(self, event: Event) -> None:
        if isinstance(event, FillEvent):
            f = event.fill
            self.observe(f.ts_us, f.price, event.equity_after, event.cash_after, force=True)

    def finalize(self, ts_us: int, price: float, equity: float, cash: float) -> None:
        self.observe(ts_us, price, equity, cash, force=True)

    def to_list(self) -> List[dict]:
        return [asdict(p) for p in self.samples]
