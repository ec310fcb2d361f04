from tests.fakes import pay_session

ADMIN = "/api/v1/admin/orders"

def _paid_order(client, catalog, providers):
    data = client.post("/api/v1/payments/checkout", json={"items": [{"course_id": catalog["python"]["id"]}]}).json()
    pay_session(providers, data["session_id"])
    client.get(f"/api/v1/payments/verify-session/{data['session_id']}")
    return data

def test_admin_requires_authentication(client):
    assert client.get(ADMIN).status_code == 401

def test_list_and_get_orders(admin_client, db, catalog, providers):
    data = _paid_order(admin_client, catalog, providers)
    orders = admin_client.get(ADMIN, params={"status": "completed"}).json()["orders"]
    assert [o["id"] for o in orders] == [data["order_id"]]
    assert admin_client.get(f"{ADMIN}/{data['order_id']}").json()["status"] == "completed"
    assert admin_client.get(f"{ADMIN}/missing").status_code == 404

def test_admin_refund_any_order(admin_client, db, catalog, providers):
    data = _paid_order(admin_client, catalog, providers)
    r = admin_client.post(f"{ADMIN}/{data['order_id']}/refund", json={"reason": "geste commercial", "amount": 50})
    assert r.status_code == 200
    assert r.json()["refund"]["amount"] == 50.0
    assert r.json()["refund"]["processed_by"] == "admin-1"

def test_cancel_pending_only(admin_client, db, catalog, providers):
    paid = _paid_order(admin_client, catalog, providers)
    assert admin_client.post(f"{ADMIN}/{paid['order_id']}/cancel", json={}).status_code == 400

    pending = admin_client.post("/api/v1/payments/checkout", json={"items": [{"course_id": catalog["sql"]["id"]}]}).json()
    r = admin_client.post(f"{ADMIN}/{pending['order_id']}/cancel", json={"reason": "doublon"})
    assert r.status_code == 200
    assert r.json()["order_status"] == "cancelled"
    assert db.one("orders", id=pending["order_id"])["cancellation_reason"] == "doublon"

def test_refulfill_after_partial_failure(admin_client, db, catalog, providers):
    db.fail("invoices", "insert")
    data = _paid_order(admin_client, catalog, providers)
    assert db.one("orders", id=data["order_id"])["fulfillment_status"] == "partial"

    db.failures.clear()
    r = admin_client.post(f"{ADMIN}/{data['order_id']}/fulfill")
    assert r.status_code == 200
    assert r.json()["fulfillment"] == "fulfilled"
    assert len(db.rows("invoices", order_id=data["order_id"])) == 1
    assert len(db.rows("enrollments", order_id=data["order_id"])) == 1

def test_refulfill_requires_paid_order(admin_client, db, catalog):
    pending = admin_client.post("/api/v1/payments/checkout", json={"items": [{"course_id": catalog["sql"]["id"]}]}).json()
    assert admin_client.post(f"{ADMIN}/{pending['order_id']}/fulfill").status_code == 400

def test_delete_rules(admin_client, db, catalog, providers):
    paid = _paid_order(admin_client, catalog, providers)
    assert admin_client.delete(f"{ADMIN}/{paid['order_id']}").status_code == 400

    pending = admin_client.post("/api/v1/payments/checkout", json={"items": [{"course_id": catalog["sql"]["id"]}]}).json()
    assert admin_client.delete(f"{ADMIN}/{pending['order_id']}").status_code == 200
    assert db.one("orders", id=pending["order_id"]) is None

def test_rate_limit_health(client):
    info = client.get("/health/rate-limit").json()
    assert info["enabled"] is False
