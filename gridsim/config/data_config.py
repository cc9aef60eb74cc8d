#!filepath: gridsim/config/data_config.py
from pydantic import BaseModel, Field


class CacheConfig(BaseModel):
    """
    分钟线缓存 / 增量下载参数

    - batch_size: bucket 满多少个 day blob 落盘一次
    - request_delay_ms: 两次 provider 请求之间的固定间隔
    - settlement_buffer_days: 最近 N 天视为未结算，不允许回测
    - oldest_day: first-available-day 二分搜索下界
    """

    store_dir: str = "data/cache"
    batch_size: int = Field(10, ge=1)
    request_delay_ms: int = Field(200, ge=0)
    settlement_buffer_days: int = Field(10, ge=0)
    oldest_day: str = "2016-01-01"
    max_search_iterations: int = Field(16, ge=1)
    probe_radius_days: int = Field(4, ge=0)
    fetch_attempts: int = Field(2, ge=1)
    fetch_retry_delay: float = Field(0.5, ge=0)

    @property
    def request_delay_seconds(self) -> float:
        return self.request_delay_ms / 1000.0
