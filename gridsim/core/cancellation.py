from __future__ import annotations

import threading
from typing import Optional

from gridsim.utils.errors import BacktestCancelled


class CancellationToken:
    """
    协作式取消

    另一个线程（或 Ctrl-C handler）调用 cancel()；
    回测在 chunk 边界 / 下载循环每一天调用 raise_if_cancelled()。
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Backtest cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise BacktestCancelled(self._reason or "Backtest cancelled")
