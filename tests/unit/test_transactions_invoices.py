from academy.invoices import service as invoices_service
from academy.transactions import service as transactions_service
from academy.utils.dates import utcnow

ORDER = {
    "id": "order-1",
    "order_number": "ORD-2025-0001",
    "user_id": "user-1",
    "currency": "usd",
    "subtotal": 100.0,
    "discount": 20.0,
    "tax": 6.4,
    "total": 86.4,
    "items": [{"kind": "course", "ref_id": "c1", "name": "Python", "unit_price": 100.0, "quantity": 1, "amount": 100.0}],
    "billing_address": {"address": "1 rue X", "city": "Paris", "country": "FR", "zip_code": "75001"},
    "paid_at": "2025-01-10T10:00:00+00:00",
}

def test_pending_then_completed_payment_is_one_row(db):
    transactions_service.record_pending_payment(ORDER, gateway="stripe", gateway_transaction_id="cs_1")
    transactions_service.record_payment(ORDER, gateway="stripe", gateway_transaction_id="pi_1", gateway_response={"id": "cs_1", "secret": "x"})
    rows = db.rows("transactions", order_id="order-1")
    assert len(rows) == 1
    assert rows[0]["status"] == "completed"
    assert rows[0]["gateway_transaction_id"] == "pi_1"
    assert rows[0]["gateway_response"] == {"id": "cs_1"}

def test_record_payment_twice_keeps_single_row(db):
    transactions_service.record_payment(ORDER, gateway="paypal", gateway_transaction_id="CAP-1")
    transactions_service.record_payment(ORDER, gateway="paypal", gateway_transaction_id="CAP-1")
    assert len(db.rows("transactions", order_id="order-1", type="payment")) == 1

def test_refund_row_is_negative(db):
    transactions_service.record_payment(ORDER, gateway="stripe", gateway_transaction_id="pi_1")
    tx = transactions_service.record_refund(ORDER, gateway="stripe", amount=86.4, refund_id="re_1", reason="doublon")
    assert tx["amount"] == -86.4
    assert tx["type"] == "refund"
    assert "doublon" in tx["description"]
    assert len(db.rows("transactions", order_id="order-1")) == 2

def test_invoice_generated_once(db):
    first = invoices_service.generate_for_order(ORDER)
    second = invoices_service.generate_for_order(ORDER)
    assert first["invoice_number"] == f"INV-{utcnow().year}-0001"
    assert second["id"] == first["id"]
    assert len(db.rows("invoices", order_id="order-1")) == 1
    assert first["total"] == 86.4
    assert first["items"][0]["description"] == "Python"

def test_invoice_race_returns_existing(db, monkeypatch):
    # Simule un autre appelant qui insère la facture entre la lecture et l'insertion
    existing = db.seed("invoices", {"order_id": "order-1", "invoice_number": "INV-2025-0099"})[0]
    calls = {"n": 0}
    real_get = invoices_service.repository.get_invoice_by_order

    def _first_miss(order_id):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_get(order_id)

    monkeypatch.setattr(invoices_service.repository, "get_invoice_by_order", _first_miss)
    invoice = invoices_service.generate_for_order(ORDER)
    assert invoice["id"] == existing["id"]
    assert len(db.rows("invoices")) == 1
