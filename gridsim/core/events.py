from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .types import FillResult, OrderAction


# -------------------------
# Base
# -------------------------
class Event:
    pass


# -------------------------
# Order lifecycle
# -------------------------
@dataclass(frozen=True)
class OrderPlaced(Event):
    order: OrderAction
    side: str             # buy / sell
    ts_us: int


@dataclass(frozen=True)
class OrderCancelled(Event):
    order: OrderAction
    ts_us: int
    reason: str           # gap_filter / ...


# -------------------------
# Fill
# -------------------------
@dataclass(frozen=True)
class FillEvent(Event):
    fill: FillResult
    cash_after: float
    equity_after: float


Listener = Callable[[Event], None]
