import pytest

from gridsim.config.backtest_config import ContributionConfig
from gridsim.core.state import SimulationState
from gridsim.engine.chunk_processor import ChunkProcessor
from gridsim.engine.contributions import ContributionSchedule
from gridsim.engine.metrics_tracker import MetricsTracker
from gridsim.engine.price_collector import PriceCollector
from gridsim.orders.order_engine import OrderEngine
from gridsim.pdt.pdt_engine import PdtEngine

from conftest import bar_ts, make_blob


def _processor(store, session):
    state = SimulationState(session).ensure_initialized()
    orders = OrderEngine(state, session.strategy, PdtEngine(state, session.pdt))
    metrics = MetricsTracker(session.start_capital, session.start_date, session.strategy.cash_floor)
    collector = PriceCollector(session.start_date, session.end_date)
    orders.subscribe(metrics.on_event)
    orders.subscribe(collector.on_event)
    proc = ChunkProcessor(
        session=session,
        state=state,
        orders=orders,
        load_blobs=store.load_day_blobs,
        contributions=ContributionSchedule(session.contribution, session.start_date),
        metrics=metrics,
        collector=collector,
    )
    return proc, state, metrics


def test_skips_before_start_time_and_breaks_at_close(store, make_session):
    store.upsert_day_blobs([
        make_blob("TEST", "2025-01-06", [100.0] * 60),
        make_blob("TEST", "2025-01-07", [100.0] * 391),   # 最后一根在 21:00
    ])
    session = make_session(start="2025-01-06", end="2025-01-07", start_time="2025-01-06T15:00:00Z")
    proc, state, _ = _processor(store, session)

    out = proc.process_chunk("2025-01-06", "2025-01-07", first_chunk=True)

    assert out.processed_bars == 30 + 390
    assert out.should_break is True
    assert out.last_bar.ts_us == bar_ts("2025-01-07", 20, 59)
    # 种子单在第一根被处理的 bar 成交
    assert state.trade_history[0].ts_us == bar_ts("2025-01-06", 15, 0)


def test_later_chunk_does_not_skip(store, make_session):
    store.upsert_day_blobs([make_blob("TEST", "2025-01-06", [100.0] * 10)])
    session = make_session(start="2025-01-06", end="2025-01-06", start_time="2025-01-06T15:00:00Z")
    proc, _, _ = _processor(store, session)

    out = proc.process_chunk("2025-01-06", "2025-01-06", first_chunk=False)
    assert out.processed_bars == 10
    assert out.should_break is False


def test_contribution_injected_before_step(store, make_session):
    store.upsert_day_blobs([
        make_blob("TEST", "2025-01-06", [100.0, 100.0]),
        make_blob("TEST", "2025-01-07", [100.0]),
    ])
    session = make_session(
        start="2025-01-06",
        end="2025-01-07",
        contribution=ContributionConfig(frequency_days=1, amount=50.0),
    )
    proc, state, metrics = _processor(store, session)

    proc.process_chunk("2025-01-06", "2025-01-07", first_chunk=True)

    assert state.invested_capital == pytest.approx(1050.0)
    assert metrics.raw.contributions == pytest.approx(50.0)
    assert metrics.buy_hold_started
    assert metrics.raw.ticks == 3


def test_empty_chunk(store, make_session):
    proc, _, _ = _processor(store, make_session())
    out = proc.process_chunk("2025-01-06", "2025-01-10", first_chunk=True)
    assert out.processed_bars == 0
    assert out.last_bar is None
