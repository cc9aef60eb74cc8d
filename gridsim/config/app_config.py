#!filepath: gridsim/config/app_config.py
import os

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .backtest_config import EngineConfig, PdtConfig, StrategyConfig
from .data_config import CacheConfig
from .log_config import LogConfig


def project_root() -> str:
    """
    gridsim/config/app_config.py → gridsim/config → gridsim → project_root
    """
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "../../"))


# 部署时沿用的环境变量名 → cache 字段
_ENV_OVERRIDES = {
    "MINUTE_BAR_BATCH_SIZE": "batch_size",
    "DAYS_BEFORE_TODAY": "settlement_buffer_days",
    "TIME_BETWEEN_BATCHES": "request_delay_ms",
    "GRIDSIM_STORE_DIR": "store_dir",
}


class AppConfig(BaseModel):
    log: LogConfig = Field(default_factory=LogConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    pdt: PdtConfig = Field(default_factory=PdtConfig)

    @classmethod
    def load(cls, path: str | None = None) -> "AppConfig":
        """
        加载 YAML 配置 + .env
        - 默认使用 gridsim/config/base.yml
        - 环境变量覆盖 cache 参数
        """
        root = project_root()

        # 1) .env（项目根目录）
        load_dotenv(os.path.join(root, ".env"))

        # 2) YAML
        if path is None:
            path = os.path.join(os.path.dirname(__file__), "base.yml")

        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        # 3) env 覆盖
        cache = dict(raw.get("cache") or {})
        for env_name, field in _ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value not in (None, ""):
                cache[field] = value
        raw["cache"] = cache

        return cls(**raw)
