#!filepath: gridsim/observability/progress.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from gridsim import logs


class ProgressStage(str, Enum):
    INITIALIZE_BACKTEST = "initialize_backtest"
    SEARCHING_FIRST_AVAILABLE_DAY = "searching_first_available_day"
    DOWNLOADING_BEFORE_RANGE = "downloading_before_range"
    DOWNLOADING_AFTER_RANGE = "downloading_after_range"
    WORKING_ON_CHUNK = "working_on_chunk"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ProgressEvent:
    stage: ProgressStage
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "message": self.message,
            "data": dict(self.data),
            "timestamp": self.timestamp,
        }


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressReporter:
    """
    轻量进度系统（日志 + 可选回调）

    节流策略（按 stage + total 分组）：
      - 每组第一条必发
      - 完成（current >= total）必发
      - 进度跳变 >= min_jump_pct 发
      - 距上次发送 >= stale_seconds 且跳变 >= min_step_pct 发
    不带 total 的事件（开始 / 完成）不节流。
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        enabled: bool = True,
        min_jump_pct: float = 20.0,
        min_step_pct: float = 1.0,
        stale_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.callback = callback
        self.enabled = enabled
        self.min_jump_pct = min_jump_pct
        self.min_step_pct = min_step_pct
        self.stale_seconds = stale_seconds
        self.clock = clock

        # (stage, total) → (last_pct, last_emit_time)
        self._last: Dict[Tuple[ProgressStage, Optional[int]], Tuple[float, float]] = {}

    def _should_emit(self, stage: ProgressStage, pct: float, total: int) -> bool:
        now = self.clock()
        key = (stage, total)
        last = self._last.get(key)

        emit = (
            last is None
            or pct >= 100.0
            or pct - last[0] >= self.min_jump_pct
            or (now - last[1] >= self.stale_seconds and pct - last[0] >= self.min_step_pct)
        )
        if emit:
            self._last[key] = (pct, now)
        return emit

    def report(
        self,
        stage: ProgressStage,
        message: str,
        current: Optional[int] = None,
        total: Optional[int] = None,
        **extra: Any,
    ) -> Optional[ProgressEvent]:
        if not self.enabled:
            return None

        data: Dict[str, Any] = dict(extra)
        if current is not None and total:
            pct = min(100.0, max(0.0, current / total * 100.0))
            data.update(current=current, total=total, progress=round(pct, 2))
            if not self._should_emit(stage, pct, total):
                return None
        elif stage is ProgressStage.COMPLETED:
            data.setdefault("progress", 100.0)

        event = ProgressEvent(stage=stage, message=message, data=data, timestamp=time.time())
        pct_text = f" ({data['progress']:.0f}%)" if "progress" in data else ""
        logs.info(f"[Progress] {stage.value}: {message}{pct_text}")

        if self.callback is not None:
            self.callback(event)
        return event
