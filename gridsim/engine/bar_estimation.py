from __future__ import annotations

from gridsim.core.time import TRADING_DAYS_RATIO, TRADING_MINUTES_PER_DAY, WEEKDAY_RATIO
from gridsim.utils.datetime_utils import DateTimeUtils


def estimate_total_bars(start_date: str, end_date: str) -> int:
    """日历天 × 252/365 × 390"""
    days = DateTimeUtils.days_between(start_date, end_date, inclusive=True)
    return max(1, round(days * TRADING_DAYS_RATIO * TRADING_MINUTES_PER_DAY))


def reestimate_total_bars(current_estimate: int, processed: int, chunk_end: str, end_date: str) -> int:
    """
    chunk 结束后按已处理 bar 数 + 剩余工作日重新估计

    只在还有剩余天数时更新，且不低于原估计 / 已处理数。
    """
    remaining_days = DateTimeUtils.days_between(chunk_end, end_date)
    if remaining_days < 1:
        return max(current_estimate, processed)

    estimate = processed + round(remaining_days * WEEKDAY_RATIO * TRADING_MINUTES_PER_DAY)
    return max(estimate, current_estimate, processed)
