from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from gridsim.core.events import Event, FillEvent, OrderCancelled, OrderPlaced


@dataclass
class ExecutionLine:
    id: str
    type: str                 # buy / sell
    trigger_price: float
    start_ts: int
    execution_ts: Optional[int] = None
    executed: bool = False


class OrderTracker:
    """
    挂单生命周期 → 图表执行线

    下单 → 开线；成交 → executed；被 gap filter 合并 → 结束但未成交。
    种子单没有下单事件，在成交时补线。
    """

    def __init__(self) -> None:
        self._lines: Dict[str, ExecutionLine] = {}

    def on_event(self, event: Event) -> None:
        if isinstance(event, OrderPlaced):
            o = event.order
            self._lines[o.id] = ExecutionLine(o.id, event.side, o.trigger_price, event.ts_us)

        elif isinstance(event, OrderCancelled):
            line = self._lines.get(event.order.id)
            if line is not None:
                line.execution_ts = event.ts_us

        elif isinstance(event, FillEvent):
            f = event.fill
            line = self._lines.get(f.order_id)
            if line is None:
                line = ExecutionLine(f.order_id, f.side.value, f.price, f.ts_us)
                self._lines[f.order_id] = line
            line.execution_ts = f.ts_us
            line.executed = True

    def lines(self) -> List[ExecutionLine]:
        return sorted(self._lines.values(), key=lambda l: (l.start_ts, l.id))

    def to_list(self) -> List[dict]:
        return [asdict(l) for l in self.lines()]
