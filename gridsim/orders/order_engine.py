from __future__ import annotations

from typing import Iterable, List, Optional

from gridsim import logs
from gridsim.config.backtest_config import StrategyConfig
from gridsim.core.events import Event, FillEvent, Listener, OrderCancelled, OrderPlaced
from gridsim.core.pricing import above, below, round_down
from gridsim.core.state import SimulationState
from gridsim.core.types import (
    Direction,
    FillResult,
    OpenTrade,
    OrderAction,
    SellAction,
    Side,
    TradeRecord,
)
from gridsim.pdt.pdt_engine import PdtEngine

from .executor import FillExecutor, SimulatedFillExecutor
from .gap_filter import filter_buy_actions


class OrderEngine:
    """
    网格交易订单状态机

    每个 bar：
      1) mark-to-market
      2) 快照所有被触发的买单 / 卖单（卖单先过 PDT）
      3) 先执行买单，再执行卖单

    买单成交 → 下方补一个买单 + 上方挂一个卖单
    卖单成交 → 下方补一个买单 + 上方追一个买单（grid-follow）

    不做 I/O；成交经由 FillExecutor，外部通过 subscribe() 观察事件。
    """

    def __init__(
        self,
        state: SimulationState,
        strategy: StrategyConfig,
        pdt: Optional[PdtEngine] = None,
        executor: Optional[FillExecutor] = None,
    ):
        self.state = state
        self.strategy = strategy
        self.pdt = pdt
        self.executor = executor or SimulatedFillExecutor()
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # events
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: Event) -> None:
        for listener in self._listeners:
            listener(event)

    # ------------------------------------------------------------------
    # bar step
    # ------------------------------------------------------------------
    def triggered_buys(self, price: float) -> List[OrderAction]:
        return [o for o in self.state.buy_actions if o.is_triggered(price)]

    def triggered_sells(self, price: float, ts_us: int) -> List[SellAction]:
        return [
            s for s in self.state.sell_actions
            if s.is_triggered(price) and self._sell_allowed(s, ts_us)
        ]

    def step(self, price: float, ts_us: int) -> List[FillResult]:
        self.state.mark_to_market(price)

        buys = self.triggered_buys(price)
        sells = self.triggered_sells(price, ts_us)

        fills: List[FillResult] = []
        for order in buys:
            # 可能已被本 bar 前面成交触发的 gap filter 合并掉
            if self.state.find_buy_action(order.id) is None:
                continue
            fill = self.try_buy(price, ts_us, order)
            if fill is not None:
                fills.append(fill)

        for order in sells:
            if self.state.find_sell_action(order.id) is None:
                continue
            fill = self.try_sell(price, ts_us, order)
            if fill is not None:
                fills.append(fill)

        return fills

    # ------------------------------------------------------------------
    # buy
    # ------------------------------------------------------------------
    def try_buy(self, price: float, ts_us: int, order: Optional[OrderAction] = None) -> Optional[FillResult]:
        if order is None:
            triggered = self.triggered_buys(price)
            if not triggered:
                return None
            order = triggered[0]

        if price <= 0:
            return None

        cash = self.state.cash
        use_cash = round_down(cash * self.strategy.capital_pct / 100)
        if cash - use_cash < self.strategy.cash_floor:
            logs.debug(f"[Order] buy rejected by cash floor cash={cash:.2f} use={use_cash:.2f}")
            return None

        shares = round_down(use_cash / price)
        if shares <= 0:
            return None

        exec_price = self.executor.execute(Side.BUY, order, price, shares, ts_us)
        if exec_price is None:
            return None

        return self.on_buy_filled(order, exec_price, shares, ts_us)

    def on_buy_filled(self, order: Optional[OrderAction], price: float, shares: float, ts_us: int) -> FillResult:
        state = self.state
        trade_id = state.next_id("trade")

        state.cash -= shares * price
        state.trade_history.append(TradeRecord(trade_id, Side.BUY, shares, price, ts_us))
        state.open_trades[trade_id] = OpenTrade(trade_id, price, shares, ts_us)

        if order is not None:
            state.buy_actions = [o for o in state.buy_actions if o.id != order.id]

        next_buy = OrderAction(
            id=state.next_id("buy"),
            trigger_price=below(price, self.strategy.buy_below_pct),
            direction=Direction.BELOW,
            created_ts_us=ts_us,
        )
        sell = SellAction(
            id=state.next_id("sell"),
            trigger_price=above(price, self.strategy.sell_above_pct),
            direction=Direction.HIGHER,
            created_ts_us=ts_us,
            shares=shares,
            trade_id=trade_id,
        )
        state.buy_actions.append(next_buy)
        state.sell_actions.append(sell)

        fill = FillResult(Side.BUY, order.id if order else trade_id, trade_id, price, shares, ts_us)
        self._after_fill(fill, placed=[(next_buy, "buy"), (sell, "sell")], keep_ids={next_buy.id})
        return fill

    # ------------------------------------------------------------------
    # sell
    # ------------------------------------------------------------------
    def _sell_allowed(self, order: SellAction, ts_us: int) -> bool:
        if self.pdt is None:
            return True
        return self.pdt.is_trading_allowed(ts_us, Side.SELL, order.trade_id)

    def try_sell(self, price: float, ts_us: int, order: Optional[SellAction] = None) -> Optional[FillResult]:
        if order is None:
            triggered = self.triggered_sells(price, ts_us)
            if not triggered:
                return None
            order = triggered[0]

        # 执行时再检查一次（本 bar 前面的成交可能改变了 PDT 状态）
        if not self._sell_allowed(order, ts_us):
            return None

        exec_price = self.executor.execute(Side.SELL, order, price, order.shares, ts_us)
        if exec_price is None:
            return None

        return self.on_sell_filled(order, exec_price, order.shares, ts_us)

    def on_sell_filled(self, order: SellAction, price: float, shares: float, ts_us: int) -> FillResult:
        state = self.state
        trade_id = state.next_id("trade")

        state.cash += price * shares
        state.trade_history.append(
            TradeRecord(trade_id, Side.SELL, shares, price, ts_us, closes_trade_id=order.trade_id)
        )
        if state.open_trades.pop(order.trade_id, None) is None:
            logs.warning(f"[Order] sell {order.id} closes unknown trade {order.trade_id}")
        state.sell_actions = [s for s in state.sell_actions if s.id != order.id]

        buy_below = OrderAction(
            id=state.next_id("buy"),
            trigger_price=below(price, self.strategy.buy_below_pct),
            direction=Direction.BELOW,
            created_ts_us=ts_us,
        )
        buy_higher = OrderAction(
            id=state.next_id("buy"),
            trigger_price=above(price, self.strategy.buy_after_sell_pct),
            direction=Direction.HIGHER,
            created_ts_us=ts_us,
        )
        state.buy_actions.extend([buy_below, buy_higher])

        fill = FillResult(Side.SELL, order.id, trade_id, price, shares, ts_us)
        self._after_fill(
            fill,
            placed=[(buy_below, "buy"), (buy_higher, "buy")],
            keep_ids={buy_below.id, buy_higher.id},
        )
        return fill

    # ------------------------------------------------------------------
    def _after_fill(self, fill: FillResult, placed: Iterable, keep_ids: set) -> None:
        if self.pdt is not None:
            self.pdt.on_fill(fill.ts_us)

        removed = self.apply_gap_filter(keep_ids)

        self._emit(FillEvent(fill, cash_after=self.state.cash, equity_after=self.state.equity))
        for order, side in placed:
            if all(order.id != r.id for r in removed):
                self._emit(OrderPlaced(order, side, fill.ts_us))
        for order in removed:
            self._emit(OrderCancelled(order, fill.ts_us, "gap_filter"))

    def apply_gap_filter(self, keep_ids: set = frozenset()) -> List[OrderAction]:
        if not self.strategy.gap_filter_active:
            return []
        kept, removed = filter_buy_actions(self.state.buy_actions, self.strategy.order_gap_pct, keep_ids)
        if removed:
            self.state.buy_actions = kept
            logs.debug(f"[Order] gap filter merged {len(removed)} buy orders")
        return removed
