from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import yaml

from gridsim import logs
from gridsim.core.time import (
    MARKET_CLOSE_HOUR_UTC,
    MARKET_OPEN_HOUR_UTC,
    MARKET_OPEN_MINUTE_UTC,
    US_PER_DAY,
    US_PER_SECOND,
)
from gridsim.core.types import DayBlob, Split
from gridsim.utils.datetime_utils import DateTimeUtils


# ======================================================================
# interfaces
# ======================================================================
class BarProvider(ABC):
    @abstractmethod
    def fetch_day_bars(self, symbol: str, day: str) -> Optional[DayBlob]:
        """None = 当天无交易（休市）；异常 = 本次获取失败"""


class SplitProvider(ABC):
    @abstractmethod
    def fetch_splits(self, symbol: str) -> Optional[List[Split]]:
        """None = 获取失败；[] = 确认无拆股"""


# ======================================================================
# helpers
# ======================================================================
def parse_split_factor(value: Union[str, int, float]) -> float:
    """
    "4:1" → 4.0, "1:10" → 0.1, "2/1" → 2.0, 3 → 3.0
    """
    if isinstance(value, (int, float)):
        factor = float(value)
    else:
        s = str(value).strip()
        sep = ":" if ":" in s else ("/" if "/" in s else None)
        if sep:
            num, den = (float(x) for x in s.split(sep, 1))
            if den == 0:
                raise ValueError(f"invalid split factor: {value}")
            factor = num / den
        else:
            factor = float(s)

    if factor <= 0:
        raise ValueError(f"invalid split factor: {value}")
    return factor


def filter_market_window(df: pd.DataFrame) -> pd.DataFrame:
    """只保留 14:30 <= t < 21:00 UTC 的分钟线（df 需有 ts_us 列）"""
    sec = (df["ts_us"].to_numpy(dtype=np.int64) % US_PER_DAY) // US_PER_SECOND
    open_sec = MARKET_OPEN_HOUR_UTC * 3600 + MARKET_OPEN_MINUTE_UTC * 60
    close_sec = MARKET_CLOSE_HOUR_UTC * 3600
    return df[(sec >= open_sec) & (sec < close_sec)]


def apply_split_adjustment(df: pd.DataFrame, splits: Sequence[Split]) -> pd.DataFrame:
    """拆股日之前的价格除以 factor（多次拆股累乘）"""
    if not splits or df.empty:
        return df

    out = df.copy()
    days = out["ts_us"].map(DateTimeUtils.day_of)
    for s in splits:
        mask = days < s.effective_date
        out.loc[mask, "close"] = out.loc[mask, "close"] / s.factor
    return out


def compact_day(symbol: str, day: str, df: pd.DataFrame) -> Optional[DayBlob]:
    if df.empty:
        return None

    df = df.sort_values("ts_us")
    ts = df["ts_us"].to_numpy(dtype=np.int64)
    prices = df["close"].to_numpy(dtype=np.float64)
    offsets = (ts % US_PER_DAY) // US_PER_SECOND

    return DayBlob(
        symbol=symbol,
        day=day,
        compact=tuple((int(o), float(p)) for o, p in zip(offsets, prices)),
        start_ts=int(ts[0] // US_PER_SECOND),
        end_ts=int(ts[-1] // US_PER_SECOND),
    )


# ======================================================================
# local implementations
# ======================================================================
class CsvBarProvider(BarProvider):
    """
    本地分钟线文件：<data_dir>/<SYMBOL>.csv 或 <SYMBOL>.parquet

    - timestamp 列：任意 pandas 可解析时间（无时区视为 UTC）
    - close 列：收盘价
    - splits：原始价格未复权时，传入拆股列表做前复权
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        splits: Optional[Sequence[Split]] = None,
        timestamp_col: str = "timestamp",
        price_col: str = "close",
    ):
        self.data_dir = Path(data_dir)
        self.splits = list(splits or [])
        self.timestamp_col = timestamp_col
        self.price_col = price_col
        self._days: Dict[str, Dict[str, pd.DataFrame]] = {}

    def _path(self, symbol: str) -> Path:
        for suffix in (".parquet", ".csv"):
            p = self.data_dir / f"{symbol}{suffix}"
            if p.exists():
                return p
        raise FileNotFoundError(f"no minute bar file for {symbol} under {self.data_dir}")

    def _load(self, symbol: str) -> Dict[str, pd.DataFrame]:
        if symbol in self._days:
            return self._days[symbol]

        path = self._path(symbol)
        raw = pd.read_parquet(path) if path.suffix == ".parquet" else pd.read_csv(path)

        ts = pd.to_datetime(raw[self.timestamp_col], utc=True)
        df = pd.DataFrame(
            {
                "ts_us": (ts - pd.Timestamp("1970-01-01", tz="UTC")) // pd.Timedelta(microseconds=1),
                "close": raw[self.price_col].astype("float64"),
            }
        ).dropna()
        df["ts_us"] = df["ts_us"].astype("int64")

        df = filter_market_window(df)
        df = apply_split_adjustment(df, self.splits)

        days = df["ts_us"].map(DateTimeUtils.day_of)
        grouped = {day: part for day, part in df.groupby(days, sort=True)}
        logs.info(f"[CsvBarProvider] loaded {symbol}: rows={len(df)} days={len(grouped)} from {path}")

        self._days[symbol] = grouped
        return grouped

    def fetch_day_bars(self, symbol: str, day: str) -> Optional[DayBlob]:
        part = self._load(symbol).get(day)
        if part is None:
            return None
        return compact_day(symbol, day, part)


class FileSplitProvider(SplitProvider):
    """
    YAML / JSON 拆股表：

        AAPL:
          - {effective_date: "2020-08-31", factor: "4:1"}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> dict:
        text = self.path.read_text(encoding="utf-8")
        if self.path.suffix == ".json":
            return json.loads(text) or {}
        return yaml.safe_load(text) or {}

    def fetch_splits(self, symbol: str) -> Optional[List[Split]]:
        try:
            raw = self._read()
            rows = raw.get(symbol) or raw.get(symbol.upper()) or []
            return [
                Split(
                    effective_date=DateTimeUtils.format_day(r.get("effective_date") or r["date"]),
                    factor=parse_split_factor(r.get("factor", r.get("ratio"))),
                )
                for r in rows
            ]
        except (OSError, ValueError, KeyError, TypeError, AttributeError, yaml.YAMLError) as e:
            logs.warning(f"[SplitProvider] failed to read splits for {symbol}: {e}")
            return None
