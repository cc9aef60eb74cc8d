from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from gridsim import logs
from gridsim.core.types import DayBlob, SymbolRange
from gridsim.utils.filesystem import FileSystem

from .codec import decode_day_blob, encode_day_blob


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class BarStore(ABC):
    """
    symbol range 行 + day blob 的 key/range 存储

    - range: 每个 symbol 一行（coverage / splits / first available day）
    - blob: (symbol, day) 唯一，upsert 语义
    """

    @abstractmethod
    def get_range(self, symbol: str) -> Optional[SymbolRange]:
        ...

    @abstractmethod
    def put_range(self, rng: SymbolRange) -> SymbolRange:
        ...

    @abstractmethod
    def upsert_day_blobs(self, blobs: Sequence[DayBlob]) -> None:
        ...

    @abstractmethod
    def load_day_blobs(self, symbol: str, start: str, end: str) -> List[DayBlob]:
        """[start, end] 内的 blob，按 day 升序"""

    @abstractmethod
    def delete_day_blobs(self, symbol: str) -> int:
        ...

    @abstractmethod
    def list_days(self, symbol: str) -> List[str]:
        ...


class InMemoryBarStore(BarStore):
    """测试 / 一次性运行用；blob 仍以编码后的 bytes 保存"""

    def __init__(self) -> None:
        self._ranges: Dict[str, dict] = {}
        self._blobs: Dict[str, Dict[str, bytes]] = {}

    def get_range(self, symbol: str) -> Optional[SymbolRange]:
        raw = self._ranges.get(symbol)
        return SymbolRange.from_dict(raw) if raw is not None else None

    def put_range(self, rng: SymbolRange) -> SymbolRange:
        rng.updated_at = _now_iso()
        self._ranges[rng.symbol] = rng.to_dict()
        return rng

    def upsert_day_blobs(self, blobs: Sequence[DayBlob]) -> None:
        for blob in blobs:
            self._blobs.setdefault(blob.symbol, {})[blob.day] = encode_day_blob(blob)

    def load_day_blobs(self, symbol: str, start: str, end: str) -> List[DayBlob]:
        days = self._blobs.get(symbol, {})
        return [decode_day_blob(days[d]) for d in sorted(days) if start <= d <= end]

    def delete_day_blobs(self, symbol: str) -> int:
        return len(self._blobs.pop(symbol, {}))

    def list_days(self, symbol: str) -> List[str]:
        return sorted(self._blobs.get(symbol, {}))


class ParquetBarStore(BarStore):
    """
    本地文件存储

        <root>/bars/<SYMBOL>/<YYYY-MM-DD>.parquet
        <root>/ranges/<SYMBOL>.range.json

    所有写入均为原子写（tmp → replace）。
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        FileSystem.ensure_dir(self.root)
        removed = FileSystem.clean_temp_files(self.root)
        if removed:
            logs.warning(f"[Store] removed {removed} interrupted writes under {self.root}")

    # --------------------------------------------------
    def _bars_dir(self, symbol: str) -> Path:
        return self.root / "bars" / symbol

    def _range_path(self, symbol: str) -> Path:
        return self.root / "ranges" / f"{symbol}.range.json"

    # --------------------------------------------------
    def get_range(self, symbol: str) -> Optional[SymbolRange]:
        data = FileSystem.read_bytes(self._range_path(symbol))
        if data is None:
            return None
        return SymbolRange.from_dict(json.loads(data.decode("utf-8")))

    def put_range(self, rng: SymbolRange) -> SymbolRange:
        rng.updated_at = _now_iso()
        payload = json.dumps(rng.to_dict(), indent=2, ensure_ascii=False)
        FileSystem.safe_write(self._range_path(rng.symbol), payload.encode("utf-8"))
        return rng

    def upsert_day_blobs(self, blobs: Sequence[DayBlob]) -> None:
        for blob in blobs:
            FileSystem.safe_write(self._bars_dir(blob.symbol) / f"{blob.day}.parquet", encode_day_blob(blob))

    def load_day_blobs(self, symbol: str, start: str, end: str) -> List[DayBlob]:
        out = []
        for f in FileSystem.scan_dir(self._bars_dir(symbol), ".parquet"):
            if start <= f.stem <= end:
                out.append(decode_day_blob(f.read_bytes()))
        return out

    def delete_day_blobs(self, symbol: str) -> int:
        n = len(self.list_days(symbol))
        FileSystem.remove(self._bars_dir(symbol))
        return n

    def list_days(self, symbol: str) -> List[str]:
        return [f.stem for f in FileSystem.scan_dir(self._bars_dir(symbol), ".parquet")]
