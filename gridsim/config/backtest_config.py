from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from gridsim.utils.datetime_utils import DateTimeUtils


class StrategyConfig(BaseModel):
    """
    网格策略参数（百分比均为 0–100 的数值）

    order_gap_pct < 0 关闭 gap filter。
    """

    model_config = ConfigDict(frozen=True)

    capital_pct: float = Field(60.0, gt=0, le=100)
    buy_below_pct: float = Field(2.0, gt=0, lt=100)
    sell_above_pct: float = Field(18.0, gt=0)
    buy_after_sell_pct: float = Field(25.0, gt=0)
    order_gap_pct: float = 1.5
    gap_filter_enabled: bool = True
    cash_floor: float = Field(200.0, ge=0)

    @property
    def gap_filter_active(self) -> bool:
        return self.gap_filter_enabled and self.order_gap_pct >= 0


class ContributionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    frequency_days: int = Field(..., ge=1)
    amount: float = Field(..., gt=0)


class PdtConfig(BaseModel):
    """
    Pattern-Day-Trader 规则

    equity < equity_threshold 且窗口内 round trip >= max_round_trips 时，
    禁止会构成当日 round trip 的卖单。
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    equity_threshold: float = 25_000.0
    max_round_trips: int = Field(3, ge=1)
    window_days: int = Field(5, ge=1)


class EngineConfig(BaseModel):
    chunk_months: int = Field(3, ge=1)
    progress_min_jump_pct: float = 20.0
    progress_min_step_pct: float = 1.0
    progress_stale_seconds: float = 10.0


class SessionConfig(BaseModel):
    """
    SessionConfig（FINAL / FROZEN）

    语义：
      - 一次回测的完整定义（symbol / 区间 / 资金 / 策略）
      - start_date / end_date 均为包含端点的 UTC 日期
      - 一旦开始运行不可修改
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., min_length=1)
    start_date: str
    end_date: str
    start_capital: float = Field(..., gt=0)

    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    contribution: Optional[ContributionConfig] = None
    pdt: PdtConfig = Field(default_factory=PdtConfig)

    # 第一天的盘中起点（ISO datetime, UTC），None → 14:30 开盘
    start_time: Optional[str] = None

    collect_chart: bool = True
    collect_metrics: bool = True

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("start_date", "end_date")
    @classmethod
    def _normalize_day(cls, v: str) -> str:
        return DateTimeUtils.format_day(v)

    @model_validator(mode="after")
    def _check_start_time(self) -> "SessionConfig":
        if self.start_time is not None:
            ts = DateTimeUtils.parse_ts(self.start_time)
            if DateTimeUtils.day_of(ts) != self.start_date:
                raise ValueError("start_time must fall on start_date")
        return self

    @property
    def desired_start_us(self) -> int:
        if self.start_time is not None:
            return DateTimeUtils.parse_ts(self.start_time)
        return DateTimeUtils.market_open_us(self.start_date)

    @property
    def end_boundary_us(self) -> int:
        return DateTimeUtils.market_close_us(self.end_date)
