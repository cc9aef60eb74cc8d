import pytest

from gridsim.core.state import SimulationState
from gridsim.core.types import Direction, OpenTrade, OrderAction, SellAction, Side, Split, SymbolRange, TradeRecord
from gridsim.storage.range_manager import RangeManager

from conftest import TODAY, FakeBarProvider, FakeSplitProvider, bar_ts, make_blob


def _seed_store(store, splits=()):
    store.put_range(SymbolRange(
        "TEST",
        have_from="2025-01-02",
        have_to="2025-01-09",
        first_available_day="2025-01-02",
        splits=list(splits),
    ))
    store.upsert_day_blobs([make_blob("TEST", "2025-01-08", [99.0]), make_blob("TEST", "2025-01-09", [100.0])])


def _manager(store, split_provider, cache_config):
    return RangeManager(
        store,
        FakeBarProvider(first_day="2016-01-04"),
        split_provider,
        config=cache_config,
        today_fn=lambda: TODAY,
    )


def _ledger(make_session):
    state = SimulationState(make_session(start="2025-01-06", end="2025-01-17")).ensure_initialized()
    ts = bar_ts("2025-01-09", 15, 0)
    state.trade_history.append(TradeRecord("trade-1", Side.BUY, 6.0, 100.0, ts))
    state.open_trades["trade-1"] = OpenTrade("trade-1", 100.0, 6.0, ts)
    state.buy_actions.append(OrderAction("buy-2", 98.0, Direction.BELOW, ts))
    state.sell_actions.append(SellAction("sell-3", 118.0, Direction.HIGHER, ts, shares=6.0, trade_id="trade-1"))
    return state


def test_split_scenario_rescales_ledger_and_resets_coverage(store, cache_config, make_session):
    _seed_store(store)
    state = _ledger(make_session)
    rm = _manager(store, FakeSplitProvider([Split("2025-01-10", 2.0)]), cache_config)

    rng = rm.splits.check_and_refresh_splits("TEST", ledger=state)

    record = state.trade_history[0]
    assert record.price == 50.0
    assert record.shares == 12.0
    assert state.open_trades["trade-1"].entry_price == 50.0
    assert state.buy_actions[-1].trigger_price == 49.0
    assert state.sell_actions[0].trigger_price == 59.0
    assert state.sell_actions[0].shares == 12.0
    # 种子单不受影响
    assert state.buy_actions[0].trigger_price == -1.0

    assert rng.have_from is None and rng.have_to is None
    assert rng.splits == [Split("2025-01-10", 2.0)]
    assert rng.last_split_check == TODAY
    assert rng.first_available_day == "2016-01-04"
    assert store.list_days("TEST") == []
    assert store.get_range("TEST").have_from is None


def test_records_after_split_date_untouched(store, cache_config, make_session):
    _seed_store(store)
    state = _ledger(make_session)
    rm = _manager(store, FakeSplitProvider([Split("2025-01-09", 2.0)]), cache_config)
    rm.splits.check_and_refresh_splits("TEST", ledger=state)
    # 记录发生在拆股当天，不属于"之前"
    assert state.trade_history[0].price == 100.0


def test_checked_at_most_once_per_day(store, cache_config):
    _seed_store(store)
    provider = FakeSplitProvider([])
    rm = _manager(store, provider, cache_config)
    rm.splits.check_and_refresh_splits("TEST")
    rm.splits.check_and_refresh_splits("TEST")
    assert provider.calls == 1


def test_fetch_failure_only_records_check(store, cache_config):
    _seed_store(store)
    rm = _manager(store, FakeSplitProvider(None), cache_config)
    rng = rm.splits.check_and_refresh_splits("TEST")
    assert rng.last_split_check == TODAY
    assert (rng.have_from, rng.have_to) == ("2025-01-02", "2025-01-09")
    assert store.list_days("TEST") == ["2025-01-08", "2025-01-09"]


def test_future_splits_ignored_and_order_insensitive(store, cache_config):
    cached = [Split("2020-08-31", 4.0), Split("2014-06-09", 7.0)]
    _seed_store(store, cached)
    fetched = list(reversed(cached)) + [Split("2025-12-01", 2.0)]
    rm = _manager(store, FakeSplitProvider(fetched), cache_config)

    rng = rm.splits.check_and_refresh_splits("TEST")
    assert (rng.have_from, rng.have_to) == ("2025-01-02", "2025-01-09")
    assert store.list_days("TEST") == ["2025-01-08", "2025-01-09"]


def test_split_then_counter_split_restores_prices(make_session):
    state = _ledger(make_session)
    before = [(t.price, t.shares) for t in state.trade_history]

    state.rescale_for_split(2.0, "2025-01-10")
    state.rescale_for_split(0.5, "2025-01-10")

    after = [(t.price, t.shares) for t in state.trade_history]
    for (p0, s0), (p1, s1) in zip(before, after):
        assert p1 == pytest.approx(p0, abs=1e-3)
        assert s1 == pytest.approx(s0)


def test_ensure_coverage_runs_split_check_first(store, cache_config):
    _seed_store(store)
    split_provider = FakeSplitProvider([Split("2025-01-10", 2.0)])
    rm = RangeManager(
        store,
        FakeBarProvider({"2025-01-08": [49.5], "2025-01-09": [50.0]}, first_day="2016-01-04"),
        split_provider,
        config=cache_config,
        today_fn=lambda: TODAY,
    )
    rng = rm.ensure_coverage("TEST", "2025-01-08", "2025-01-09")
    assert split_provider.calls == 1
    assert (rng.have_from, rng.have_to) == ("2025-01-08", "2025-01-09")
    assert store.load_day_blobs("TEST", "2025-01-09", "2025-01-09")[0].compact[0][1] == 50.0
