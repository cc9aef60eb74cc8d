from __future__ import annotations

import math

# gridsim/core/pricing.py

# 浮点误差容忍（避免 599.99999999 → 599.9999）
_EPS = 1e-9


def round_down(value: float, digits: int = 4) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + _EPS) / factor


def below(price: float, pct: float) -> float:
    return price * (1 - pct / 100)


def above(price: float, pct: float) -> float:
    return price * (1 + pct / 100)


def pct_distance(a: float, b: float) -> float:
    """|a - b| / a * 100"""
    if a == 0:
        return math.inf
    return abs(a - b) / abs(a) * 100
