from __future__ import annotations

# gridsim/core/time.py
US_PER_SECOND = 1_000_000
US_PER_MINUTE = 60 * US_PER_SECOND
US_PER_HOUR = 60 * US_PER_MINUTE
US_PER_DAY = 24 * US_PER_HOUR

# Regular session window in UTC (no DST adjustment)
MARKET_OPEN_HOUR_UTC = 14
MARKET_OPEN_MINUTE_UTC = 30
MARKET_CLOSE_HOUR_UTC = 21

TRADING_MINUTES_PER_DAY = 390
WEEKDAY_RATIO = 5 / 7
TRADING_DAYS_RATIO = 252 / 365


def seconds_of_day(ts_us: int) -> int:
    return (ts_us % US_PER_DAY) // US_PER_SECOND


def within_market_window(ts_us: int) -> bool:
    """[14:30, 21:00) UTC; the close minute itself is outside."""
    sec = seconds_of_day(ts_us)
    open_sec = MARKET_OPEN_HOUR_UTC * 3600 + MARKET_OPEN_MINUTE_UTC * 60
    close_sec = MARKET_CLOSE_HOUR_UTC * 3600
    return open_sec <= sec < close_sec
