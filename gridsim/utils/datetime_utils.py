#!filepath: gridsim/utils/datetime_utils.py
from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

import numpy as np

from gridsim.core.time import (
    MARKET_CLOSE_HOUR_UTC,
    MARKET_OPEN_HOUR_UTC,
    MARKET_OPEN_MINUTE_UTC,
    US_PER_DAY,
    US_PER_SECOND,
    within_market_window,
)

DayLike = Union[str, date, datetime]


class DateTimeUtils:
    """
    日期 / 时间戳工具（UTC）

    约定：
      - 日期统一为 "YYYY-MM-DD" 字符串
      - 时间戳统一为 ts_us（epoch microseconds, UTC）
    """

    UTC = timezone.utc

    # ================================================================
    # day <-> date
    # ================================================================
    @classmethod
    def parse_day(cls, day: DayLike) -> date:
        if isinstance(day, datetime):
            return day.astimezone(cls.UTC).date() if day.tzinfo else day.date()
        if isinstance(day, date):
            return day

        s = str(day).strip()
        for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y%m%d"):
            try:
                return datetime.strptime(s[:10] if "-" in s or "/" in s else s[:8], fmt).date()
            except ValueError:
                pass

        raise ValueError(f"invalid day: {day}")

    @classmethod
    def format_day(cls, d: DayLike) -> str:
        return cls.parse_day(d).isoformat()

    @classmethod
    def add_days(cls, day: DayLike, n: int) -> str:
        return (cls.parse_day(day) + timedelta(days=n)).isoformat()

    @classmethod
    def next_day(cls, day: DayLike) -> str:
        return cls.add_days(day, 1)

    @classmethod
    def previous_day(cls, day: DayLike) -> str:
        return cls.add_days(day, -1)

    @classmethod
    def add_months(cls, day: DayLike, n: int) -> str:
        """月份加减，月末日期向下夹到目标月最后一天（01-31 + 1M → 02-28）"""
        d = cls.parse_day(day)
        month_index = d.month - 1 + n
        year = d.year + month_index // 12
        month = month_index % 12 + 1
        last = calendar.monthrange(year, month)[1]
        return date(year, month, min(d.day, last)).isoformat()

    @classmethod
    def days_between(cls, start: DayLike, end: DayLike, inclusive: bool = False) -> int:
        delta = (cls.parse_day(end) - cls.parse_day(start)).days
        return delta + 1 if inclusive else delta

    @classmethod
    def today(cls) -> str:
        return datetime.now(cls.UTC).date().isoformat()

    @classmethod
    def today_minus(cls, days: int, today: Optional[str] = None) -> str:
        return cls.add_days(today or cls.today(), -days)

    # ================================================================
    # ts_us
    # ================================================================
    @classmethod
    def to_us(cls, dt_: datetime) -> int:
        if dt_.tzinfo is None:
            dt_ = dt_.replace(tzinfo=cls.UTC)
        return int(round(dt_.timestamp() * US_PER_SECOND))

    @classmethod
    def from_us(cls, ts_us: int) -> datetime:
        return datetime.fromtimestamp(ts_us / US_PER_SECOND, cls.UTC)

    @classmethod
    def parse_ts(cls, value: Union[str, datetime, int]) -> int:
        """ISO 字符串 / datetime / ts_us → ts_us"""
        if isinstance(value, int):
            return value
        if isinstance(value, datetime):
            return cls.to_us(value)
        s = str(value).strip().replace("Z", "+00:00")
        return cls.to_us(datetime.fromisoformat(s))

    @classmethod
    def day_of(cls, ts_us: int) -> str:
        return (date(1970, 1, 1) + timedelta(days=ts_us // US_PER_DAY)).isoformat()

    @classmethod
    def month_key(cls, ts_us: int) -> str:
        return cls.day_of(ts_us)[:7]

    @classmethod
    def day_start_us(cls, day: DayLike) -> int:
        d = cls.parse_day(day)
        return cls.to_us(datetime(d.year, d.month, d.day, tzinfo=cls.UTC))

    @classmethod
    def at_utc_us(cls, day: DayLike, hour: int, minute: int = 0) -> int:
        d = cls.parse_day(day)
        return cls.to_us(datetime(d.year, d.month, d.day, hour, minute, tzinfo=cls.UTC))

    @classmethod
    def market_open_us(cls, day: DayLike) -> int:
        return cls.at_utc_us(day, MARKET_OPEN_HOUR_UTC, MARKET_OPEN_MINUTE_UTC)

    @classmethod
    def market_close_us(cls, day: DayLike) -> int:
        return cls.at_utc_us(day, MARKET_CLOSE_HOUR_UTC)

    # ---------------------------------------------------------------
    # trading time / business days
    # ---------------------------------------------------------------
    @classmethod
    def is_weekday(cls, day: DayLike) -> bool:
        return cls.parse_day(day).weekday() < 5

    @classmethod
    def is_trading_tick(cls, ts_us: int) -> bool:
        return cls.is_weekday(cls.day_of(ts_us)) and within_market_window(ts_us)

    @classmethod
    def business_window_start(cls, day: DayLike, n: int) -> str:
        """
        包含 day 在内、往回数 n 个工作日（Mon–Fri）的第一天。
        周末的 day 先回滚到上一个周五。
        """
        d = np.datetime64(cls.format_day(day), "D")
        start = np.busday_offset(d, -(n - 1), roll="backward")
        return str(start)

    @classmethod
    def format_duration(cls, seconds: float) -> str:
        total = int(seconds)
        hours, rest = divmod(total, 3600)
        minutes, secs = divmod(rest, 60)
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
