from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Sequence

from gridsim import logs
from gridsim.core.types import Split, SymbolRange
from gridsim.utils.datetime_utils import DateTimeUtils
from gridsim.utils.errors import BacktestError

from .providers import SplitProvider
from .store import BarStore


class SplitLedger(Protocol):
    def rescale_for_split(self, factor: float, before_day: str) -> int:
        ...


def _keys(splits: Sequence[Split]) -> set:
    return {s.key() for s in splits}


class SplitManager:
    """
    拆股对账

    每个 symbol 每天最多检查一次（last_split_check）：
      - 拉取失败 → 只记录检查日期
      - 拆股集合不变 → 只记录检查日期
      - 有变化 → 清空缓存 blob / 重置 coverage / 改写 ledger / 重新搜索 first available day

    缓存中的 blob 都是按"当时已知拆股"复权的，拆股变化后整体失效。
    """

    def __init__(
        self,
        store: BarStore,
        provider: SplitProvider,
        find_first_day: Callable[[str], Optional[str]],
        today_fn: Callable[[], str] = DateTimeUtils.today,
    ):
        self.store = store
        self.provider = provider
        self.find_first_day = find_first_day
        self.today_fn = today_fn

    def check_and_refresh_splits(
        self,
        symbol: str,
        rng: Optional[SymbolRange] = None,
        ledger: Optional[SplitLedger] = None,
    ) -> SymbolRange:
        rng = rng or self.store.get_range(symbol)
        if rng is None:
            raise BacktestError(f"symbol range missing for {symbol}")

        today = self.today_fn()
        if rng.last_split_check == today:
            return rng

        fetched = self.provider.fetch_splits(symbol)
        if fetched is None:
            logs.warning(f"[SplitManager] split fetch failed for {symbol}, keeping cached data")
            rng.last_split_check = today
            return self.store.put_range(rng)

        current: List[Split] = sorted(
            (s for s in fetched if s.effective_date <= today),
            key=lambda s: s.effective_date,
        )

        if _keys(current) == _keys(rng.splits):
            rng.last_split_check = today
            return self.store.put_range(rng)

        new_keys = _keys(current) - _keys(rng.splits)
        new_splits = [s for s in current if s.key() in new_keys]

        deleted = self.store.delete_day_blobs(symbol)
        logs.info(
            f"[SplitManager] {symbol} splits changed: new={[(s.effective_date, s.factor) for s in new_splits]} "
            f"dropped {deleted} cached days"
        )

        if ledger is not None:
            for s in new_splits:
                n = ledger.rescale_for_split(s.factor, s.effective_date)
                logs.info(f"[SplitManager] rescaled {n} ledger records for split {s.effective_date} x{s.factor}")

        rng.have_from = None
        rng.have_to = None
        rng.splits = current
        rng.last_split_check = today
        rng.first_available_day = self.find_first_day(symbol)
        return self.store.put_range(rng)
