from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from gridsim.config.backtest_config import SessionConfig
from gridsim.utils.datetime_utils import DateTimeUtils

from .pricing import round_down
from .types import Direction, OpenTrade, OrderAction, PdtDay, SellAction, TradeRecord

# gridsim/core/state.py

SEED_ORDER_ID = "first-order"


@dataclass(frozen=True)
class CapitalState:
    cash: float
    equity: float
    peak_equity: float
    external_capital: float


class SimulationState:
    """
    单次回测的全部可变状态（每次 run 新建，不跨 run 共享）

    - cash / external_capital / peak_equity
    - open_trades: 按开仓顺序
    - trade_history: 按成交顺序（只追加）
    - buy_actions / sell_actions: 当前挂单工作集
    - pdt_days: 最近 N 个交易日的 round trip 计数

    equity 永远由 cash + Σ shares × last_price 推导，不单独存储。
    """

    def __init__(self, session: SessionConfig):
        self.session = session

        self.cash: float = 0.0
        self.external_capital: float = 0.0
        self.peak_equity: float = 0.0
        self.last_price: Optional[float] = None

        self.open_trades: Dict[str, OpenTrade] = {}
        self.trade_history: List[TradeRecord] = []
        self.buy_actions: List[OrderAction] = []
        self.sell_actions: List[SellAction] = []
        self.pdt_days: List[PdtDay] = []

        self._seq = 0
        self._initialized = False

    # ------------------------------------------------------------------
    def ensure_initialized(self) -> "SimulationState":
        """幂等：首次调用时注入初始资金和种子买单"""
        if self._initialized:
            return self

        self.cash = float(self.session.start_capital)
        self.peak_equity = self.cash
        self.buy_actions.append(
            OrderAction(
                id=SEED_ORDER_ID,
                trigger_price=-1.0,
                direction=Direction.HIGHER,
                created_ts_us=0,
            )
        )
        self._initialized = True
        return self

    @property
    def initialized(self) -> bool:
        return self._initialized

    def next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq}"

    # ------------------------------------------------------------------
    # capital
    # ------------------------------------------------------------------
    @property
    def position_shares(self) -> float:
        return sum(t.shares for t in self.open_trades.values())

    @property
    def equity(self) -> float:
        if self.last_price is None:
            return self.cash
        return self.cash + self.position_shares * self.last_price

    def mark_to_market(self, price: float) -> float:
        self.last_price = price
        equity = self.equity
        if equity > self.peak_equity:
            self.peak_equity = equity
        return equity

    def add_capital(self, amount: float) -> None:
        self.cash += amount
        self.external_capital += amount

    @property
    def invested_capital(self) -> float:
        return float(self.session.start_capital) + self.external_capital

    def capital(self) -> CapitalState:
        return CapitalState(
            cash=self.cash,
            equity=self.equity,
            peak_equity=self.peak_equity,
            external_capital=self.external_capital,
        )

    # ------------------------------------------------------------------
    # order lookup
    # ------------------------------------------------------------------
    def find_buy_action(self, order_id: str) -> Optional[OrderAction]:
        for o in self.buy_actions:
            if o.id == order_id:
                return o
        return None

    def find_sell_action(self, order_id: str) -> Optional[SellAction]:
        for o in self.sell_actions:
            if o.id == order_id:
                return o
        return None

    def find_trade_record(self, trade_id: str) -> Optional[TradeRecord]:
        for t in self.trade_history:
            if t.id == trade_id:
                return t
        return None

    # ------------------------------------------------------------------
    # split
    # ------------------------------------------------------------------
    def rescale_for_split(self, factor: float, before_day: str) -> int:
        """
        拆股后重写 ledger：
          price → round_down(price / factor)
          shares → shares × factor
        只作用于 before_day 之前生成的记录，返回改写条数。
        """
        if factor <= 0:
            raise ValueError(f"invalid split factor: {factor}")

        def _before(ts_us: int) -> bool:
            return DateTimeUtils.day_of(ts_us) < before_day

        changed = 0

        for t in self.open_trades.values():
            if _before(t.ts_us):
                t.entry_price = round_down(t.entry_price / factor)
                t.shares = t.shares * factor
                changed += 1

        history = []
        for r in self.trade_history:
            if _before(r.ts_us):
                r = replace(r, price=round_down(r.price / factor), shares=r.shares * factor)
                changed += 1
            history.append(r)
        self.trade_history = history

        for o in self.buy_actions:
            # 种子单 trigger=-1 保持不变
            if o.trigger_price > 0 and _before(o.created_ts_us):
                o.trigger_price = round_down(o.trigger_price / factor)
                changed += 1

        for s in self.sell_actions:
            if _before(s.created_ts_us):
                s.trigger_price = round_down(s.trigger_price / factor)
                s.shares = s.shares * factor
                changed += 1

        if self.last_price is not None:
            self.last_price = self.last_price / factor

        return changed
