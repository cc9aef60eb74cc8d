from gridsim.core.events import FillEvent
from gridsim.core.time import US_PER_DAY, US_PER_HOUR, US_PER_MINUTE
from gridsim.core.types import FillResult, Side
from gridsim.engine.price_collector import PriceCollector, sample_interval_us

from conftest import bar_ts

THU, FRI, MON = "2025-01-09", "2025-01-10", "2025-01-13"


def _collector():
    # 约 3 个月 → 1 小时间隔
    return PriceCollector("2025-01-06", "2025-03-31")


def test_sample_interval_by_run_length():
    assert sample_interval_us("2025-01-01", "2025-01-20") == 5 * US_PER_MINUTE
    assert sample_interval_us("2025-01-01", "2025-03-31") == US_PER_HOUR
    assert sample_interval_us("2025-01-01", "2025-07-31") == 4 * US_PER_HOUR
    assert sample_interval_us("2025-01-01", "2026-01-31") == US_PER_DAY


def test_first_tick_per_slot():
    c = _collector()
    c.observe(bar_ts(THU, 14, 30), 100.0, 1000.0, 1000.0)
    c.observe(bar_ts(THU, 14, 31), 101.0, 1000.0, 1000.0)
    c.observe(bar_ts(THU, 15, 5), 102.0, 1000.0, 1000.0)
    assert [s.price for s in c.samples] == [100.0, 102.0]


def test_outside_trading_hours_and_weekend_ignored():
    c = _collector()
    c.observe(bar_ts(THU, 14, 0), 100.0, 1000.0, 1000.0)
    c.observe(bar_ts("2025-01-11", 15, 0), 100.0, 1000.0, 1000.0)
    assert c.samples == []


def test_backfill_within_active_day():
    c = _collector()
    c.observe(bar_ts(THU, 14, 30), 100.0, 1000.0, 900.0)
    c.observe(bar_ts(THU, 17, 10), 104.0, 1010.0, 900.0)
    assert [s.ts_us for s in c.samples] == [
        bar_ts(THU, 14, 30), bar_ts(THU, 15, 0), bar_ts(THU, 16, 0), bar_ts(THU, 17, 10),
    ]
    assert c.samples[1].price == 100.0
    assert c.samples[2].cash == 900.0


def test_no_backfill_for_inactive_days():
    c = _collector()
    c.observe(bar_ts(THU, 20, 30), 100.0, 1000.0, 1000.0)
    c.observe(bar_ts(MON, 14, 30), 101.0, 1000.0, 1000.0)
    assert [s.ts_us for s in c.samples] == [bar_ts(THU, 20, 30), bar_ts(MON, 14, 30)]


def test_fill_forces_exact_sample_without_duplicates():
    c = _collector()
    c.observe(bar_ts(THU, 14, 30), 100.0, 1000.0, 1000.0)

    ts = bar_ts(THU, 14, 45)
    fill = FillResult(Side.BUY, "o", "t", 99.0, 6.0, ts)
    c.on_event(FillEvent(fill, cash_after=406.0, equity_after=1000.0))
    c.observe(ts, 99.0, 1000.0, 406.0)

    assert [s.ts_us for s in c.samples] == [bar_ts(THU, 14, 30), ts]
    assert c.samples[-1].cash == 406.0


def test_finalize_samples_last_bar():
    c = _collector()
    c.observe(bar_ts(FRI, 14, 30), 100.0, 1000.0, 1000.0)
    c.observe(bar_ts(FRI, 14, 40), 101.0, 1001.0, 1000.0)
    c.finalize(bar_ts(FRI, 14, 40), 101.0, 1001.0, 1000.0)
    assert c.samples[-1].ts_us == bar_ts(FRI, 14, 40)
    assert len(c.samples) == 2
