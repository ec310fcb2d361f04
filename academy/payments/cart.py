"""
Logique panier (pas de prestataire): normalisation et résolution catalogue.
"""
import logging
from typing import Any, Dict, List, Optional

from academy.catalog import repository as catalog_repository
from academy.errors import ValidationError
from academy.utils.money import round_money

logger = logging.getLogger(__name__)

COURSE = "course"
PRODUCT = "product"

# module academy.payments.cart
def normalize_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Normalise un panier brut [{course_id|product_id, quantity, price?}, ...].
    - Ignore les lignes invalides (sans id, quantity <= 0).
    - Un cours n'est acheté qu'une fois: doublons fusionnés, quantité 1.
    - Les produits identiques sont agrégés (quantités additionnées).
    - Lève ValidationError si aucune ligne valide n’est présente.
    """
    merged: Dict[tuple, Dict[str, Any]] = {}
    for it in items or []:
        course_id = str(it.get("course_id") or "").strip()
        product_id = str(it.get("product_id") or "").strip()
        try:
            qty = int(it.get("quantity") or 1)
        except (TypeError, ValueError):
            continue
        if qty <= 0 or bool(course_id) == bool(product_id):
            continue
        kind, ref_id = (COURSE, course_id) if course_id else (PRODUCT, product_id)
        key = (kind, ref_id)
        hint = it.get("price")
        if key in merged:
            if kind == PRODUCT:
                merged[key]["quantity"] += qty
            continue
        merged[key] = {
            "kind": kind,
            "ref_id": ref_id,
            "quantity": 1 if kind == COURSE else qty,
            "price_hint": hint,
        }
    if not merged:
        raise ValidationError("Panier invalide")
    return list(merged.values())

def placeholder_name(kind: str, ref_id: str) -> str:
    return f"{'Cours' if kind == COURSE else 'Produit'} {ref_id}"

def _price(value: Any) -> Optional[float]:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if price >= 0 else None

def resolve_lines(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Résout chaque ligne auprès du catalogue, un article à la fois.
    - Nom: titre catalogue, sinon nom de repli déterministe (« Cours <id> »)
    - Prix: prix catalogue, sinon indication de prix du client
    - Ligne sans aucun prix exploitable: ValidationError
    """
    lines: List[Dict[str, Any]] = []
    for it in items:
        kind, ref_id = it["kind"], it["ref_id"]
        entry = catalog_repository.get_course(ref_id) if kind == COURSE else catalog_repository.get_product(ref_id)
        if entry is None:
            logger.warning("payments.cart.lookup_failed kind=%s id=%s", kind, ref_id)
        name = (entry or {}).get("title") or (entry or {}).get("name") or placeholder_name(kind, ref_id)
        unit_price = _price((entry or {}).get("price")) if entry else None
        if unit_price is None:
            unit_price = _price(it.get("price_hint"))
        if unit_price is None:
            raise ValidationError(f"Prix introuvable pour {placeholder_name(kind, ref_id)}")
        qty = int(it["quantity"])
        lines.append({
            "kind": kind,
            "ref_id": ref_id,
            "name": name,
            "unit_price": round_money(unit_price),
            "quantity": qty,
            "amount": round_money(unit_price * qty),
        })
    return lines

def subtotal_of(lines: List[Dict[str, Any]]) -> float:
    return round_money(sum(float(ln["amount"]) for ln in lines))
