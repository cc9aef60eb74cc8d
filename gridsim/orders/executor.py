from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from gridsim.core.types import OrderAction, Side


class FillExecutor(ABC):
    """
    成交执行接口

    返回实际成交价；None 表示未成交（券商拒单等），订单保持原状。
    """

    @abstractmethod
    def execute(self, side: Side, order: Optional[OrderAction], price: float, shares: float, ts_us: int) -> Optional[float]:
        raise NotImplementedError


class SimulatedFillExecutor(FillExecutor):
    """回测：以当前 bar 收盘价立即全部成交"""

    def execute(self, side: Side, order: Optional[OrderAction], price: float, shares: float, ts_us: int) -> Optional[float]:
        return price
