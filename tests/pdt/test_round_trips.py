from gridsim.core.types import Side, TradeRecord
from gridsim.pdt.round_trips import count_day_round_trips

from conftest import bar_ts

MON, TUE = "2025-01-06", "2025-01-07"


def _buy(id_, day, minute, shares=10.0):
    return TradeRecord(id_, Side.BUY, shares, 100.0, bar_ts(day, 15, minute))


def _sell(id_, day, minute, shares=10.0, closes=None):
    return TradeRecord(id_, Side.SELL, shares, 101.0, bar_ts(day, 15, minute), closes_trade_id=closes)


def test_tagged_same_day_round_trip():
    trades = [_buy("b1", MON, 0), _sell("s1", MON, 5, closes="b1")]
    assert count_day_round_trips(trades, MON) == 1


def test_previous_day_position_is_not_a_day_trade():
    trades = [_buy("b1", MON, 0), _sell("s1", TUE, 5, closes="b1")]
    assert count_day_round_trips(trades, TUE) == 0
    assert count_day_round_trips(trades, MON) == 0


def test_partial_close_does_not_count():
    trades = [_buy("b1", MON, 0), _sell("s1", MON, 5, shares=4.0, closes="b1")]
    assert count_day_round_trips(trades, MON) == 0


def test_untagged_sell_consumes_previous_day_first():
    trades = [
        _buy("b0", MON, 0, shares=5.0),
        _buy("b1", TUE, 0, shares=5.0),
        _sell("s1", TUE, 5, shares=5.0),
    ]
    assert count_day_round_trips(trades, TUE) == 0

    trades.append(_sell("s2", TUE, 6, shares=5.0))
    assert count_day_round_trips(trades, TUE) == 1


def test_untagged_sell_closing_everything_counts_today_positions():
    trades = [
        _buy("b0", MON, 0, shares=5.0),
        _buy("b1", TUE, 0, shares=5.0),
        _buy("b2", TUE, 1, shares=5.0),
        _sell("s1", TUE, 5, shares=15.0),
    ]
    assert count_day_round_trips(trades, TUE) == 2


def test_earlier_sells_rebuild_start_of_day_positions():
    # 周一开仓并平仓；周二只剩下新开的仓位
    trades = [
        _buy("b0", MON, 0),
        _sell("s0", MON, 1, closes="b0"),
        _buy("b1", TUE, 0),
        _sell("s1", TUE, 2),
    ]
    assert count_day_round_trips(trades, MON) == 1
    assert count_day_round_trips(trades, TUE) == 1
