# -*- coding: utf-8 -*-
"""Registration, login, bearer tokens and the sales-user CLI."""

import time

from carfinance.auth import issue_token, verify_token
from main import db, User


def _register(client, email="new@example.com", password="secret123", **extra):
    payload = {"email": email, "password": password, "first_name": "Dana", "last_name": "Driver"}
    payload.update(extra)
    return client.post("/api/auth/register", json=payload)


def test_register_creates_user_and_session(client):
    resp = _register(client)
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["user"]["email"] == "new@example.com"
    assert data["user"]["role"] == "user"
    assert data["has_profile"] is False
    assert data["token"]

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.get_json()["data"]["user"]["email"] == "new@example.com"


def test_register_normalizes_email(client):
    resp = _register(client, email="  Mixed@Example.COM ")
    assert resp.get_json()["data"]["user"]["email"] == "mixed@example.com"


def test_register_duplicate_email(client):
    _register(client)
    resp = _register(client, email="NEW@example.com")
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "email_taken"


def test_register_short_password(client):
    resp = _register(client, password="123")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["details"]["field"] == "password"


def test_register_invalid_email(client):
    resp = _register(client, email="not-an-email")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["details"]["field"] == "email"


def test_register_ignores_requested_role(app, client):
    resp = _register(client, role="sales")
    assert resp.get_json()["data"]["user"]["role"] == "user"


def test_sales_emails_get_sales_role(app, client):
    app.config["SALES_EMAILS"] = ["boss@example.com"]
    resp = _register(client, email="Boss@example.com")
    assert resp.status_code == 201
    assert resp.get_json()["data"]["user"]["role"] == "sales"


def test_login_and_logout(app, make_user):
    make_user("driver@example.com")
    client = app.test_client()

    bad = client.post("/api/auth/login", json={"email": "driver@example.com", "password": "wrong-pass"})
    assert bad.status_code == 401
    assert bad.get_json()["error"]["code"] == "invalid_credentials"

    ok = client.post("/api/auth/login", json={"email": "DRIVER@example.com", "password": "password123"})
    assert ok.status_code == 200
    assert ok.get_json()["data"]["token"]
    assert client.get("/api/auth/me").status_code == 200

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401


def test_login_unknown_email(client):
    resp = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "whatever1"})
    assert resp.status_code == 401


def test_login_requires_fields(client):
    resp = client.post("/api/auth/login", json={"email": "x@example.com"})
    assert resp.status_code == 400


def test_bearer_token_authenticates(app, make_user):
    client = app.test_client()
    make_user("token@example.com")
    token = client.post(
        "/api/auth/login", json={"email": "token@example.com", "password": "password123"}
    ).get_json()["data"]["token"]

    fresh = app.test_client()
    resp = fresh.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["user"]["email"] == "token@example.com"


def test_invalid_token_is_anonymous(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.token"})
    assert resp.status_code == 401


def test_expired_token_rejected(app, make_user):
    user_id = make_user()
    with app.app_context():
        user = db.session.get(User, user_id)
        token = issue_token(user, now=int(time.time()) - 30 * 24 * 3600)
        assert verify_token(token) is None
    resp = app.test_client().get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_token_claims(app, make_user):
    user_id = make_user("claims@example.com", role="sales")
    with app.app_context():
        claims = verify_token(issue_token(db.session.get(User, user_id)))
    assert claims["sub"] == str(user_id)
    assert claims["role"] == "sales"
    assert claims["email"] == "claims@example.com"
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600


def test_token_signed_with_other_key_rejected(app, make_user):
    user_id = make_user()
    with app.app_context():
        user = db.session.get(User, user_id)
        app.config["SECRET_KEY"] = "another-key"
        forged = issue_token(user)
        app.config["SECRET_KEY"] = "test-secret-key"
        assert verify_token(forged) is None


def test_refresh_token(logged_in_client):
    client, _user_id = logged_in_client
    resp = client.post("/api/auth/token")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["token"]


def test_create_sales_user_cli(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["create-sales-user", "staff@example.com", "secret123", "--first-name", "Sam"])
    assert result.exit_code == 0, result.output
    assert "Created sales user staff@example.com" in result.output
    with app.app_context():
        user = User.query.filter_by(email="staff@example.com").first()
        assert user.role == "sales"
        assert user.first_name == "Sam"


def test_create_sales_user_cli_duplicate(app, make_user):
    make_user("taken@example.com")
    result = app.test_cli_runner().invoke(args=["create-sales-user", "taken@example.com", "secret123"])
    assert result.exit_code != 0
