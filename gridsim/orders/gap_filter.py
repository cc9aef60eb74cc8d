from __future__ import annotations

from typing import AbstractSet, List, Sequence, Tuple

from gridsim.core.pricing import pct_distance
from gridsim.core.types import Direction, OrderAction


def _winner(rep: OrderAction, other: OrderAction, keep_ids: AbstractSet[str]) -> OrderAction:
    rep_kept = rep.id in keep_ids
    other_kept = other.id in keep_ids
    if rep_kept != other_kept:
        return rep if rep_kept else other

    # below → 保留更低；higher → 保留更高；价格相同保留先出现的
    if rep.direction is Direction.BELOW:
        return other if other.trigger_price < rep.trigger_price else rep
    return other if other.trigger_price > rep.trigger_price else rep


def filter_buy_actions(
    actions: Sequence[OrderAction],
    gap_pct: float,
    keep_ids: AbstractSet[str] = frozenset(),
) -> Tuple[List[OrderAction], List[OrderAction]]:
    """
    合并价格过近的同方向买单。

    按 trigger 升序（稳定排序）遍历相邻对：
      同方向 且 |rep - next| / rep * 100 <= gap_pct → 合并，只留一个代表；
    keep_ids 中的单子（本次成交刚生成的）合并时总是胜出。

    返回 (kept, removed)；kept 保持输入顺序。gap_pct < 0 不做过滤。
    """
    if gap_pct < 0 or len(actions) < 2:
        return list(actions), []

    ordered = sorted(actions, key=lambda o: o.trigger_price)

    removed: List[OrderAction] = []
    rep = ordered[0]
    for other in ordered[1:]:
        if other.direction is rep.direction and pct_distance(rep.trigger_price, other.trigger_price) <= gap_pct:
            winner = _winner(rep, other, keep_ids)
            removed.append(other if winner is rep else rep)
            rep = winner
        else:
            rep = other

    removed_ids = {o.id for o in removed}
    kept = [o for o in actions if o.id not in removed_ids]
    return kept, removed
