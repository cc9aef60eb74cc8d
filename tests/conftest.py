# tests/conftest.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pytest
from loguru import logger

from gridsim.config.backtest_config import SessionConfig, StrategyConfig
from gridsim.config.data_config import CacheConfig
from gridsim.core.types import DayBlob, Split
from gridsim.storage.providers import BarProvider, SplitProvider
from gridsim.storage.store import InMemoryBarStore
from gridsim.utils.datetime_utils import DateTimeUtils

TODAY = "2025-06-30"


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


# ============================================================
# helpers
# ============================================================
def make_blob(symbol: str, day: str, prices: Sequence[float], start_minute: int = 0) -> DayBlob:
    """从 14:30 + start_minute 开始、每分钟一个收盘价"""
    open_sec = 14 * 3600 + 30 * 60
    compact = tuple((open_sec + (start_minute + i) * 60, float(p)) for i, p in enumerate(prices))
    day_start = DateTimeUtils.day_start_us(day) // 1_000_000
    return DayBlob(
        symbol=symbol,
        day=day,
        compact=compact,
        start_ts=day_start + compact[0][0],
        end_ts=day_start + compact[-1][0],
    )


def bar_ts(day: str, hour: int, minute: int) -> int:
    return DateTimeUtils.at_utc_us(day, hour, minute)


def weekdays(start: str, end: str) -> List[str]:
    out = []
    d = start
    while d <= end:
        if DateTimeUtils.is_weekday(d):
            out.append(d)
        d = DateTimeUtils.next_day(d)
    return out


class FakeBarProvider(BarProvider):
    """
    day → 价格序列；未登记的日期视为休市（None）
    errors 中的日期抛异常
    """

    def __init__(
        self,
        days: Optional[Dict[str, Sequence[float]]] = None,
        errors: Iterable[str] = (),
        first_day: Optional[str] = None,
    ):
        self.days: Dict[str, Sequence[float]] = dict(days or {})
        self.errors: Set[str] = set(errors)
        self.first_day = first_day
        self.calls: List[Tuple[str, str]] = []

    def fetch_day_bars(self, symbol: str, day: str) -> Optional[DayBlob]:
        self.calls.append((symbol, day))
        if day in self.errors:
            raise ConnectionError(f"boom {day}")
        if day in self.days:
            return make_blob(symbol, day, self.days[day])
        if self.first_day is not None and day >= self.first_day and DateTimeUtils.is_weekday(day):
            return make_blob(symbol, day, [100.0])
        return None

    @property
    def fetched_days(self) -> List[str]:
        return [d for _, d in self.calls]


class FakeSplitProvider(SplitProvider):
    def __init__(self, splits: Optional[List[Split]] = None):
        self.splits = splits
        self.calls = 0

    def fetch_splits(self, symbol: str) -> Optional[List[Split]]:
        self.calls += 1
        return None if self.splits is None else list(self.splits)


# ============================================================
# fixtures
# ============================================================
@pytest.fixture
def today() -> str:
    return TODAY


@pytest.fixture
def store() -> InMemoryBarStore:
    return InMemoryBarStore()


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(
        batch_size=3,
        request_delay_ms=0,
        settlement_buffer_days=10,
        oldest_day="2016-01-01",
        fetch_attempts=1,
        fetch_retry_delay=0,
    )


@pytest.fixture
def make_session():
    def _make(
        start: str = "2025-01-06",
        end: str = "2025-01-10",
        capital: float = 1000.0,
        symbol: str = "TEST",
        **kwargs,
    ) -> SessionConfig:
        strategy = kwargs.pop("strategy", None) or StrategyConfig()
        return SessionConfig(
            symbol=symbol,
            start_date=start,
            end_date=end,
            start_capital=capital,
            strategy=strategy,
            **kwargs,
        )

    return _make
