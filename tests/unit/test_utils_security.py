from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from academy.auth.service import determine_role
from academy.utils.security import COOKIE_NAME, get_current_user, is_admin, require_admin

def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return user

    @app.get("/admin")
    def admin(user=Depends(require_admin)):
        return {"ok": True}

    return app

def _auth_returns(monkeypatch, user):
    monkeypatch.setattr("academy.auth.service.get_user_from_token", lambda token: user)

def test_determine_role():
    assert determine_role(None, {"role": "ADMIN"}) == "admin"
    assert determine_role({"role": "instructor"}, None) == "instructor"
    assert determine_role({"role": "admin"}, {"role": "student"}) == "student"
    assert determine_role(None, None) == "student"
    assert determine_role({"role": "superuser"}) == "student"

def test_get_current_user_bearer_success(monkeypatch):
    _auth_returns(monkeypatch, {"id": "u1", "email": "a@b", "role": "student"})
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok-123"})
    assert r.status_code == 200
    assert r.json() == {"id": "u1", "email": "a@b", "role": "student"}

def test_get_current_user_cookie_success(monkeypatch):
    _auth_returns(monkeypatch, {"id": "u1", "role": "admin"})
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")
    r = client.get("/me")
    assert r.status_code == 200
    assert r.json()["role"] == "admin"

def test_get_current_user_missing_token_401():
    client = TestClient(_make_app())
    r = client.get("/me")
    assert r.status_code == 401
    assert "Non authentifié" in r.text

def test_get_current_user_missing_id_401(monkeypatch):
    _auth_returns(monkeypatch, {"email": "x@y"})
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 401
    assert "Session expirée" in r.text

def test_get_current_user_auth_failure_401(monkeypatch):
    def _invalid(token):
        raise RuntimeError("invalid JWT")

    monkeypatch.setattr("academy.auth.service.get_user_from_token", _invalid)
    client = TestClient(_make_app())
    assert client.get("/me", headers={"Authorization": "Bearer tok"}).status_code == 401

def test_require_admin_forbidden_and_allowed(monkeypatch):
    client = TestClient(_make_app())
    _auth_returns(monkeypatch, {"id": "u1", "role": "student"})
    assert client.get("/admin", headers={"Authorization": "Bearer tok"}).status_code == 403
    _auth_returns(monkeypatch, {"id": "u1", "role": "admin"})
    r_ok = client.get("/admin", headers={"Authorization": "Bearer tok"})
    assert r_ok.status_code == 200
    assert r_ok.json() == {"ok": True}

def test_is_admin():
    assert is_admin({"role": "admin"})
    assert not is_admin({"role": "student"})
    assert not is_admin(None)
