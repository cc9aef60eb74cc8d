from __future__ import annotations

from typing import List, Optional

from gridsim.config.backtest_config import ContributionConfig
from gridsim.core.time import US_PER_DAY
from gridsim.utils.datetime_utils import DateTimeUtils


class ContributionSchedule:
    """
    定期追加资金

    第一次到期：start_date + frequency_days 的 00:00 UTC；
    之后每 frequency_days 一次。bar 时间越过到期点即注入（可一次补多期）。
    """

    def __init__(self, config: Optional[ContributionConfig], start_date: str):
        self.config = config
        self.next_due_us: Optional[int] = None
        if config is not None:
            self.next_due_us = DateTimeUtils.day_start_us(DateTimeUtils.add_days(start_date, config.frequency_days))

    def due(self, ts_us: int) -> List[float]:
        if self.config is None or self.next_due_us is None:
            return []

        amounts = []
        while ts_us >= self.next_due_us:
            amounts.append(self.config.amount)
            self.next_due_us += self.config.frequency_days * US_PER_DAY
        return amounts
