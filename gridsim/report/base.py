# gridsim/report/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from gridsim.engine.result import BacktestResult


class Report(ABC):
    """
    Report (FINAL / FROZEN)

    BacktestResult -> side effects (files, figures)

    - 只读消费 BacktestResult
    - 不影响回测执行和指标
    - 删除报告不影响可复现性
    """

    @abstractmethod
    def render(self, result: BacktestResult) -> None:
        ...


class ReportPipeline:
    def __init__(self, reports: List[Report]):
        self._reports = reports

    def render_all(self, result: BacktestResult) -> None:
        for r in self._reports:
            r.render(result)
