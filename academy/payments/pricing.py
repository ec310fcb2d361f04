"""
Calcul des montants d'une commande: remise d'abord, taxe ensuite.
"""
from typing import Dict, Optional

from academy.config import TAX_RATE
from academy.utils.money import round_money, to_decimal

def compute_totals(subtotal: float, discount: float = 0.0, tax_rate: Optional[float] = None) -> Dict[str, float]:
    """
    total = round((subtotal - discount) * (1 + tax_rate), 2); tax = total - (subtotal - discount).
    La remise est bornée à [0, subtotal].
    """
    rate = to_decimal(TAX_RATE if tax_rate is None else tax_rate)
    sub = to_decimal(round_money(subtotal))
    disc = min(max(to_decimal(round_money(discount)), to_decimal(0)), sub)
    net = sub - disc
    total = to_decimal(round_money(net * (1 + rate)))
    return {
        "subtotal": float(sub),
        "discount": float(disc),
        "tax": round_money(total - net),
        "total": float(total),
    }
