from __future__ import annotations

from typing import Dict, List, Sequence

from gridsim.core.types import Side, TradeRecord
from gridsim.utils.datetime_utils import DateTimeUtils

_EPS = 1e-9


class _Position:
    __slots__ = ("trade_id", "shares", "day")

    def __init__(self, trade_id: str, shares: float, day: str):
        self.trade_id = trade_id
        self.shares = shares
        self.day = day


def _consume_fifo(positions: Dict[str, _Position], shares: float, day: str) -> int:
    """
    未标记 closes_trade_id 的卖单：先消耗前一日持仓，再消耗当日持仓。
    返回被完全平掉的当日持仓数。
    """
    closed_today = 0
    prior = [p for p in positions.values() if p.day < day]
    today = [p for p in positions.values() if p.day >= day]

    for pos in prior + today:
        if shares <= _EPS:
            break
        used = min(pos.shares, shares)
        pos.shares -= used
        shares -= used
        if pos.shares <= _EPS:
            del positions[pos.trade_id]
            if pos.day == day:
                closed_today += 1

    return closed_today


def _apply(positions: Dict[str, _Position], trade: TradeRecord, day: str) -> int:
    trade_day = DateTimeUtils.day_of(trade.ts_us)

    if trade.side is Side.BUY:
        positions[trade.id] = _Position(trade.id, trade.shares, trade_day)
        return 0

    if trade.closes_trade_id and trade.closes_trade_id in positions:
        pos = positions[trade.closes_trade_id]
        pos.shares -= trade.shares
        if pos.shares <= _EPS:
            del positions[pos.trade_id]
            return 1 if pos.day == day else 0
        return 0

    return _consume_fifo(positions, trade.shares, day)


def count_day_round_trips(trades: Sequence[TradeRecord], day: str) -> int:
    """
    某一天的 day-trade round trip 数

    1) 用 day 之前的成交按 FIFO 重建当日开盘时的持仓
    2) 按时间顺序回放当日成交：卖单完全平掉一笔当日开仓 → +1
    """
    earlier: List[TradeRecord] = []
    today: List[TradeRecord] = []
    for t in trades:
        d = DateTimeUtils.day_of(t.ts_us)
        if d < day:
            earlier.append(t)
        elif d == day:
            today.append(t)

    positions: Dict[str, _Position] = {}
    for t in sorted(earlier, key=lambda x: x.ts_us):
        _apply(positions, t, day)

    count = 0
    for t in sorted(today, key=lambda x: x.ts_us):
        count += _apply(positions, t, day)
    return count
