from __future__ import annotations

import time
from typing import Callable, List, Optional

from gridsim import logs
from gridsim.config.data_config import CacheConfig
from gridsim.core.cancellation import CancellationToken
from gridsim.core.types import DayBlob, MissingRange, MissingRanges, SymbolRange
from gridsim.observability.progress import ProgressReporter, ProgressStage
from gridsim.utils.datetime_utils import DateTimeUtils
from gridsim.utils.errors import BacktestCancelled, BacktestError, ValidationError
from gridsim.utils.retry import Retry

from .providers import BarProvider, SplitProvider
from .split_manager import SplitLedger, SplitManager
from .store import BarStore

_NOT_FETCHED = object()


def compute_missing_ranges(
    req_from: str,
    req_to: str,
    have_from: Optional[str] = None,
    have_to: Optional[str] = None,
) -> MissingRanges:
    """
    请求区间相对已缓存区间的缺口

    - 左缺口：[req_from, have_from - 1]
    - 右缺口：[have_to + 1, req_to]
    - 完全没有缓存：整段请求作为右缺口
    """
    if have_from is None and have_to is None:
        return MissingRanges(None, MissingRange(req_from, req_to))

    left = None
    right = None
    if have_from is not None and req_from < have_from:
        left = MissingRange(req_from, DateTimeUtils.previous_day(have_from))
    if have_to is not None and req_to > have_to:
        right = MissingRange(DateTimeUtils.next_day(have_to), req_to)
    return MissingRanges(left, right)


class RangeManager:
    """
    分钟线增量缓存

    coverage = [have_from, have_to]：区间内每一天都已有确定答案
    （blob 已落盘，或 provider 确认休市）。coverage 只增不减，
    拆股变化是唯一的重置入口（SplitManager）。
    """

    def __init__(
        self,
        store: BarStore,
        provider: BarProvider,
        split_provider: Optional[SplitProvider] = None,
        config: Optional[CacheConfig] = None,
        progress: Optional[ProgressReporter] = None,
        cancel: Optional[CancellationToken] = None,
        sleep: Callable[[float], None] = time.sleep,
        today_fn: Callable[[], str] = DateTimeUtils.today,
    ):
        self.store = store
        self.provider = provider
        self.config = config or CacheConfig()
        self.progress = progress or ProgressReporter(enabled=False)
        self.cancel = cancel or CancellationToken()
        self.sleep = sleep
        self.today_fn = today_fn

        self.splits: Optional[SplitManager] = None
        if split_provider is not None:
            self.splits = SplitManager(store, split_provider, self.find_first_available_day, today_fn)

    # ------------------------------------------------------------------
    # symbol range row
    # ------------------------------------------------------------------
    def ensure_initialized(self, symbol: str) -> SymbolRange:
        rng = self.store.get_range(symbol)
        if rng is not None:
            return rng

        rng = self.store.put_range(SymbolRange(symbol=symbol))
        if rng is None:
            raise BacktestError(f"could not create symbol range for {symbol}")
        logs.info(f"[RangeManager] created symbol range for {symbol}")
        return rng

    def latest_allowed_day(self) -> str:
        return DateTimeUtils.today_minus(self.config.settlement_buffer_days, self.today_fn())

    # ------------------------------------------------------------------
    # fetch
    # ------------------------------------------------------------------
    def _fetch(self, symbol: str, day: str):
        """blob / None（休市）；失败返回 _NOT_FETCHED"""
        try:
            return Retry.run(
                self.provider.fetch_day_bars,
                symbol,
                day,
                max_attempts=self.config.fetch_attempts,
                delay=self.config.fetch_retry_delay,
                jitter=False,
            )
        except Exception as e:
            logs.warning(f"[RangeManager] fetch failed {symbol} {day}: {e}")
            return _NOT_FETCHED

    # ------------------------------------------------------------------
    # first available day
    # ------------------------------------------------------------------
    def find_first_available_day(self, symbol: str) -> Optional[str]:
        """
        在 [oldest_day, today - buffer] 上二分：
          每次探测 mid ± probe_radius 共 9 天，取最早有数据的一天
          命中 → 往更早找；未命中 → 往更晚找
        """
        cfg = self.config
        oldest = cfg.oldest_day
        latest = self.latest_allowed_day()

        left, right = oldest, latest
        found: Optional[str] = None

        for i in range(cfg.max_search_iterations):
            self.cancel.raise_if_cancelled()
            if left > right:
                break

            span = DateTimeUtils.days_between(left, right)
            mid = DateTimeUtils.add_days(left, span // 2)
            probes = sorted(
                d
                for d in (DateTimeUtils.add_days(mid, k) for k in range(-cfg.probe_radius_days, cfg.probe_radius_days + 1))
                if oldest <= d <= latest
            )

            hit = None
            for day in probes:
                blob = self._fetch(symbol, day)
                if isinstance(blob, DayBlob):
                    hit = day
                    break

            self.progress.report(
                ProgressStage.SEARCHING_FIRST_AVAILABLE_DAY,
                f"Searching first available day for {symbol}",
                current=i + 1,
                total=cfg.max_search_iterations,
            )

            if hit is not None:
                found = hit
                right = DateTimeUtils.previous_day(hit)
                if right < oldest:
                    break
            else:
                # 整个探测窗口都没有数据
                left = DateTimeUtils.add_days(mid, cfg.probe_radius_days + 1)

        logs.info(f"[RangeManager] first available day for {symbol}: {found}")
        return found

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------
    def validate_request(self, start: str, end: str) -> None:
        """不依赖 provider 的检查，任何 I/O 之前执行"""
        if end < start:
            raise ValidationError(f"end date {end} is before start date {start}")
        latest = self.latest_allowed_day()
        if end > latest:
            raise ValidationError(
                f"end date {end} is too recent, must be on or before {latest} "
                f"({self.config.settlement_buffer_days} days before today)"
            )

    def validate_date_range(self, start: str, end: str, first_available_day: Optional[str]) -> None:
        self.validate_request(start, end)
        if first_available_day is None:
            raise ValidationError("no market data available for this symbol")
        if start < first_available_day:
            raise ValidationError(f"start date {start} is before first available day {first_available_day}")

    # ------------------------------------------------------------------
    # gap fill
    # ------------------------------------------------------------------
    def _flush(
        self,
        rng: SymbolRange,
        bucket: List[DayBlob],
        new_from: Optional[str],
        new_to: Optional[str],
    ) -> SymbolRange:
        if bucket:
            bucket.sort(key=lambda b: b.day)
            self.store.upsert_day_blobs(bucket)
            logs.debug(f"[RangeManager] flushed {len(bucket)} blobs {bucket[0].day}..{bucket[-1].day}")
            bucket.clear()

        changed = False
        if new_from is not None and (rng.have_from is None or new_from < rng.have_from):
            rng.have_from = new_from
            changed = True
        if new_to is not None and (rng.have_to is None or new_to > rng.have_to):
            rng.have_to = new_to
            changed = True

        if changed:
            rng = self.store.put_range(rng)
        return rng

    def _walk(
        self,
        symbol: str,
        days: List[str],
        stage: ProgressStage,
        rng: SymbolRange,
        backward: bool,
    ) -> SymbolRange:
        bucket: List[DayBlob] = []
        frontier: Optional[str] = None
        contiguous = True

        def flush(r: SymbolRange) -> SymbolRange:
            if backward:
                return self._flush(r, bucket, frontier, None)
            # 之前没有任何 coverage：从第一个拉取日开始
            start = days[0] if frontier is not None and r.have_from is None else None
            return self._flush(r, bucket, start, frontier)

        try:
            for i, day in enumerate(days):
                self.cancel.raise_if_cancelled()
                if i > 0 and self.config.request_delay_ms > 0:
                    self.sleep(self.config.request_delay_seconds)

                result = self._fetch(symbol, day)
                if result is _NOT_FETCHED:
                    contiguous = False
                else:
                    if result is not None:
                        bucket.append(result)
                    if contiguous:
                        frontier = day

                if len(bucket) >= self.config.batch_size:
                    rng = flush(rng)

                remaining = len(days) - i - 1
                self.progress.report(stage, f"{remaining} days remaining", current=i + 1, total=len(days))
        except BacktestCancelled:
            flush(rng)
            raise

        return flush(rng)

    def fill_missing_ranges(
        self,
        symbol: str,
        left: Optional[MissingRange],
        right: Optional[MissingRange],
        current: SymbolRange,
    ) -> SymbolRange:
        rng = current

        if left is not None:
            n = DateTimeUtils.days_between(left.start, left.end, inclusive=True)
            days = [DateTimeUtils.add_days(left.end, -k) for k in range(n)]
            logs.info(f"[RangeManager] {symbol} fetching before range {left.start}..{left.end} ({n} days)")
            rng = self._walk(symbol, days, ProgressStage.DOWNLOADING_BEFORE_RANGE, rng, backward=True)

        if right is not None:
            n = DateTimeUtils.days_between(right.start, right.end, inclusive=True)
            days = [DateTimeUtils.add_days(right.start, k) for k in range(n)]
            logs.info(f"[RangeManager] {symbol} fetching after range {right.start}..{right.end} ({n} days)")
            rng = self._walk(symbol, days, ProgressStage.DOWNLOADING_AFTER_RANGE, rng, backward=False)

        return rng

    # ------------------------------------------------------------------
    # entry
    # ------------------------------------------------------------------
    def ensure_coverage(
        self,
        symbol: str,
        req_from: str,
        req_to: str,
        ledger: Optional[SplitLedger] = None,
    ) -> SymbolRange:
        self.validate_request(req_from, req_to)
        rng = self.ensure_initialized(symbol)

        if self.splits is not None:
            rng = self.splits.check_and_refresh_splits(symbol, rng, ledger)

        if rng.first_available_day is None:
            rng.first_available_day = self.find_first_available_day(symbol)
            rng = self.store.put_range(rng)

        self.validate_date_range(req_from, req_to, rng.first_available_day)

        missing = compute_missing_ranges(req_from, req_to, rng.have_from, rng.have_to)
        if missing.left is None and missing.right is None:
            logs.info(f"[RangeManager] {symbol} {req_from}..{req_to} fully cached")
            return rng

        return self.fill_missing_ranges(symbol, missing.left, missing.right, rng)

    def load_day_blobs(self, symbol: str, start: str, end: str) -> List[DayBlob]:
        return self.store.load_day_blobs(symbol, start, end)
