"""
Arrondis monétaires (ROUND_HALF_UP au centime) via Decimal.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")

def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))

def round_money(value: Any) -> float:
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))

def to_cents(value: Any) -> int:
    return int((to_decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
