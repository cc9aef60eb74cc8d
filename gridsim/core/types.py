from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

# gridsim/core/types.py


class Direction(str, Enum):
    BELOW = "below"      # price <= trigger
    HIGHER = "higher"    # price >= trigger


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class Bar(NamedTuple):
    ts_us: int
    price: float


# -------------------------
# Orders / positions
# -------------------------
@dataclass
class OrderAction:
    id: str
    trigger_price: float
    direction: Direction
    created_ts_us: int

    def is_triggered(self, price: float) -> bool:
        if self.direction is Direction.BELOW:
            return price <= self.trigger_price
        return price >= self.trigger_price


@dataclass
class SellAction(OrderAction):
    shares: float
    trade_id: str


@dataclass
class OpenTrade:
    id: str
    entry_price: float
    shares: float
    ts_us: int


@dataclass(frozen=True)
class TradeRecord:
    id: str
    side: Side
    shares: float
    price: float
    ts_us: int
    closes_trade_id: Optional[str] = None


@dataclass(frozen=True)
class FillResult:
    side: Side
    order_id: str
    trade_id: str
    price: float
    shares: float
    ts_us: int


@dataclass
class PdtDay:
    date: str
    round_trips: int


# -------------------------
# Data / cache
# -------------------------
@dataclass(frozen=True)
class Split:
    effective_date: str
    factor: float

    def key(self) -> Tuple[str, float]:
        return self.effective_date, float(self.factor)


@dataclass(frozen=True)
class DayBlob:
    """
    一个 symbol 一个交易日的分钟收盘价

    compact: ((seconds_since_utc_midnight, close), ...) 按 offset 升序
    start_ts / end_ts: epoch seconds
    """

    symbol: str
    day: str
    compact: Tuple[Tuple[int, float], ...]
    start_ts: int
    end_ts: int

    @property
    def records(self) -> int:
        return len(self.compact)

    def bars(self) -> List[Bar]:
        """offset → ts_us 展开"""
        day_start = self.start_ts - self.start_ts % 86_400
        return [Bar((day_start + int(offset)) * 1_000_000, float(price)) for offset, price in self.compact]


@dataclass
class SymbolRange:
    symbol: str
    have_from: Optional[str] = None
    have_to: Optional[str] = None
    first_available_day: Optional[str] = None
    splits: List[Split] = field(default_factory=list)
    last_split_check: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SymbolRange":
        data = dict(raw)
        data["splits"] = [Split(s["effective_date"], float(s["factor"])) for s in data.get("splits") or []]
        return cls(**data)


@dataclass(frozen=True)
class MissingRange:
    start: str
    end: str


class MissingRanges(NamedTuple):
    left: Optional[MissingRange]
    right: Optional[MissingRange]
