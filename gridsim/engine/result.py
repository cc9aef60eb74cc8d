# gridsim/engine/result.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from gridsim.core.state import CapitalState
from gridsim.core.types import TradeRecord

from .metrics_tracker import MetricsSummary


@dataclass(frozen=True)
class BacktestResult:
    """
    BacktestResult (FINAL / FROZEN)

    一次回测的不可变结果，用于：
      - 报告（equity curve / metrics / trades）
      - 回归测试
    """

    # -----------------------
    # Session identity
    # -----------------------
    symbol: str
    start_date: str
    end_date: str
    start_capital: float

    # -----------------------
    # Capital
    # -----------------------
    invested_capital: float        # start + 追加资金
    final_equity: float
    final_cash: float
    total_return: float
    total_return_pct: float

    # -----------------------
    # Run stats
    # -----------------------
    processed_bars: int
    execution_time: str            # HH:MM:SS

    # -----------------------
    # Facts
    # -----------------------
    trades: Tuple[TradeRecord, ...] = ()
    open_positions: int = 0
    metrics: Optional[MetricsSummary] = None
    chart_data: Optional[Dict[str, List[dict]]] = None
    capital: Optional[CapitalState] = None       # 结束时的资金快照

    def to_dict(self) -> dict:
        out = asdict(self)
        out["trades"] = [
            {**asdict(t), "side": t.side.value} for t in self.trades
        ]
        return out
