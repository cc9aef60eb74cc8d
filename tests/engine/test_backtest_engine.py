import re

import pytest

from gridsim.config.app_config import AppConfig
from gridsim.config.backtest_config import ContributionConfig
from gridsim.core.cancellation import CancellationToken
from gridsim.core.types import Side
from gridsim.engine.engine import iter_chunks, run_backtest
from gridsim.observability.progress import ProgressStage
from gridsim.utils.errors import BacktestCancelled, BacktestError, ValidationError

from conftest import TODAY, FakeBarProvider, weekdays

SWING = [100.0, 97.5, 95.0, 119.0, 100.0]


def _run(store, cache_config, session, provider, **kwargs):
    return run_backtest(
        session,
        store,
        provider,
        app=AppConfig(cache=cache_config),
        today_fn=lambda: TODAY,
        **kwargs,
    )


def test_iter_chunks():
    assert list(iter_chunks("2025-01-06", "2025-04-30", 3)) == [
        ("2025-01-06", "2025-04-05"),
        ("2025-04-06", "2025-04-30"),
    ]
    assert list(iter_chunks("2025-01-31", "2025-02-10", 1)) == [("2025-01-31", "2025-02-10")]


def test_end_to_end(store, cache_config, make_session):
    days = {d: SWING for d in weekdays("2025-01-06", "2025-01-17")}
    provider = FakeBarProvider(days, first_day="2016-01-04")
    session = make_session(start="2025-01-06", end="2025-01-17")
    events = []

    result = _run(store, cache_config, session, provider, on_progress=events.append)

    assert result.symbol == "TEST"
    assert result.processed_bars == 10 * len(SWING)
    assert result.trades

    held = sum(t.shares for t in result.trades if t.side is Side.BUY) - sum(
        t.shares for t in result.trades if t.side is Side.SELL
    )
    assert result.final_equity == pytest.approx(result.final_cash + held * SWING[-1])
    assert result.total_return == pytest.approx(result.final_equity - 1000.0)
    assert result.final_cash >= 0
    assert re.fullmatch(r"\d{2}:\d{2}:\d{2}", result.execution_time)

    cap = result.capital
    assert cap.cash == result.final_cash
    assert cap.equity == pytest.approx(result.final_equity)
    assert cap.external_capital == 0.0
    assert cap.peak_equity >= max(1000.0, cap.equity)

    assert result.metrics is not None
    assert result.metrics.trade_count == len(result.trades)
    assert result.chart_data["samples"]
    assert result.chart_data["executions"]

    stages = [e.stage for e in events]
    assert stages[0] is ProgressStage.INITIALIZE_BACKTEST
    assert stages[-1] is ProgressStage.COMPLETED
    assert ProgressStage.WORKING_ON_CHUNK in stages
    assert ProgressStage.DOWNLOADING_AFTER_RANGE in stages


def test_cached_second_run_fetches_nothing(store, cache_config, make_session):
    provider = FakeBarProvider(first_day="2016-01-04")
    session = make_session(start="2025-01-06", end="2025-01-17")

    first = _run(store, cache_config, session, provider)
    provider.calls.clear()
    second = _run(store, cache_config, session, provider)

    assert provider.calls == []
    assert second.final_equity == pytest.approx(first.final_equity)
    assert second.processed_bars == first.processed_bars


def test_chunks_cover_every_day_once(store, cache_config, make_session):
    provider = FakeBarProvider(first_day="2016-01-04")
    session = make_session(start="2025-01-06", end="2025-04-30", collect_chart=False)

    result = _run(store, cache_config, session, provider)

    assert result.processed_bars == len(weekdays("2025-01-06", "2025-04-30"))
    assert result.chart_data is None


def test_contributions_raise_invested_capital(store, cache_config, make_session):
    provider = FakeBarProvider(first_day="2016-01-04")
    session = make_session(
        start="2025-01-06",
        end="2025-01-17",
        contribution=ContributionConfig(frequency_days=7, amount=100.0),
    )
    result = _run(store, cache_config, session, provider)
    # 01-13 到期一次（01-20 在区间外）
    assert result.invested_capital == pytest.approx(1100.0)
    assert result.capital.external_capital == pytest.approx(100.0)


def test_end_date_too_recent(store, cache_config, make_session):
    provider = FakeBarProvider(first_day="2016-01-04")
    session = make_session(start="2025-06-02", end="2025-06-27")
    with pytest.raises(ValidationError):
        _run(store, cache_config, session, provider)


def test_cancel_before_start(store, cache_config, make_session):
    token = CancellationToken()
    token.cancel("user abort")
    provider = FakeBarProvider(first_day="2016-01-04")

    with pytest.raises(BacktestCancelled) as exc:
        _run(store, cache_config, make_session(), provider, cancel=token)

    assert not isinstance(exc.value, BacktestError)
    assert provider.calls == []


def test_cancel_at_chunk_boundary(store, cache_config, make_session):
    token = CancellationToken()
    provider = FakeBarProvider(first_day="2016-01-04")
    session = make_session(start="2025-01-06", end="2025-04-30")

    def on_progress(event):
        if event.stage is ProgressStage.WORKING_ON_CHUNK:
            token.cancel()

    with pytest.raises(BacktestCancelled):
        _run(store, cache_config, session, provider, on_progress=on_progress, cancel=token)

    # 缓存仍然完整保存
    rng = store.get_range("TEST")
    assert rng.have_to == "2025-04-30"
