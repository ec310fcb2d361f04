"""
Validation des codes promo.

validate_coupon est une lecture pure (aucune mutation); l'usage n'est
comptabilisé que par register_usage, appelé à la création de la commande.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from academy.utils.dates import parse_iso, utcnow
from . import repository

logger = logging.getLogger(__name__)

PERCENTAGE = "percentage"
FIXED = "fixed"


@dataclass
class CouponValidation:
    valid: bool
    discount: float = 0.0
    message: Optional[str] = None
    coupon: Dict[str, Any] = field(default_factory=dict)

    @property
    def coupon_id(self) -> Optional[str]:
        return self.coupon.get("id") if self.coupon else None


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()

def compute_discount(coupon: Dict[str, Any], amount: float) -> float:
    """Remise brute: pourcentage du montant ou valeur fixe, plafonnée au montant."""
    value = float(coupon.get("value") or 0)
    if coupon.get("type") == PERCENTAGE:
        discount = amount * value / 100
    else:
        discount = value
    return round(max(0.0, min(discount, amount)), 2)

def validate_coupon(code: Optional[str], amount: float, now=None) -> CouponValidation:
    """
    Vérifie un code promo pour un sous-total donné.
    Ordre des contrôles: existence/actif, expiration, limite d'usage, minimum d'achat.
    """
    code_norm = normalize_code(code)
    if not code_norm:
        return CouponValidation(False, message="Code promo invalide")

    coupon = repository.get_active_coupon_by_code(code_norm)
    if not coupon:
        return CouponValidation(False, message="Code promo invalide")

    now = now or utcnow()
    expires_at = parse_iso(coupon.get("expires_at"))
    if expires_at and expires_at < now:
        return CouponValidation(False, message="Code promo expiré", coupon=coupon)

    max_uses = int(coupon.get("max_uses") or 0)
    if max_uses > 0 and int(coupon.get("used_count") or 0) >= max_uses:
        return CouponValidation(False, message="Limite d'utilisation du code promo atteinte", coupon=coupon)

    minimum = float(coupon.get("min_purchase_amount") or 0)
    if minimum and amount < minimum:
        return CouponValidation(
            False,
            message=f"Montant minimum d'achat de {minimum:.2f} requis pour ce code promo",
            coupon=coupon,
        )

    return CouponValidation(True, discount=compute_discount(coupon, amount), coupon=coupon)

def register_usage(coupon_id: Optional[str]) -> None:
    """Comptabilise une utilisation du coupon (best-effort, erreur loguée)."""
    if not coupon_id:
        return
    if not repository.increment_usage(coupon_id):
        logger.error("coupons.register_usage failed coupon_id=%s", coupon_id)
