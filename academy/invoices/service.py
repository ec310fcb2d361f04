"""
Génération des factures (INV-<année>-<NNNN>) après paiement confirmé.
"""
import logging
from typing import Any, Dict, List

from academy.errors import NotFoundError, PermissionDeniedError
from academy.infra.supabase_client import is_unique_violation
from academy.utils.dates import utcnow_iso
from academy.utils.numbering import DuplicateRow, insert_with_sequential_number
from academy.utils.security import is_admin
from . import repository

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"

def _insert_unless_invoiced(order_id: str):
    def _insert(row: Dict[str, Any]):
        try:
            return repository.insert_invoice(row)
        except Exception as e:
            # Conflit sur order_id (et non sur le numéro): la facture existe déjà
            if is_unique_violation(e) and repository.get_invoice_by_order(order_id):
                raise DuplicateRow(order_id) from e
            raise
    return _insert

def generate_for_order(order: Dict[str, Any]) -> Dict[str, Any]:
    """
    Crée la facture de la commande, ou renvoie celle qui existe déjà.
    Snapshot: montants, lignes et adresse de facturation de la commande.
    """
    existing = repository.get_invoice_by_order(order["id"])
    if existing:
        return existing
    now = utcnow_iso()
    row = {
        "order_id": order["id"],
        "user_id": order.get("user_id"),
        "subtotal": order.get("subtotal"),
        "discount": order.get("discount"),
        "tax": order.get("tax"),
        "total": order.get("total"),
        "currency": order.get("currency"),
        "status": "paid",
        "items": [
            {"description": ln.get("name"), "quantity": ln.get("quantity"), "unit_price": ln.get("unit_price"), "amount": ln.get("amount")}
            for ln in order.get("items") or []
        ],
        "billing_info": order.get("billing_address") or {},
        "invoice_date": now,
        "due_date": now,
        "paid_at": order.get("paid_at") or now,
    }
    try:
        invoice = insert_with_sequential_number(
            prefix=INVOICE_PREFIX,
            field="invoice_number",
            count_fn=repository.count_invoices,
            insert_fn=_insert_unless_invoiced(order["id"]),
            row=row,
        )
    except DuplicateRow:
        return repository.get_invoice_by_order(order["id"])
    logger.info("invoices.created order=%s number=%s", order["id"], invoice.get("invoice_number"))
    return invoice

def list_user_invoices(user_id: str) -> List[Dict[str, Any]]:
    return repository.list_user_invoices(user_id)

def get_invoice_for_user(invoice_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    invoice = repository.get_invoice(invoice_id)
    if not invoice:
        raise NotFoundError("Facture introuvable")
    if invoice.get("user_id") != user.get("id") and not is_admin(user):
        raise PermissionDeniedError("Facture appartenant à un autre utilisateur")
    return invoice
