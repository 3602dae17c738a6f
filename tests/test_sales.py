# -*- coding: utf-8 -*-
"""Sales portal: role gate and cross-customer views."""

import pytest

SALES_LISTS = ["users", "profiles", "documents", "recommendations", "referrals"]


@pytest.mark.parametrize("section", SALES_LISTS)
def test_customer_is_forbidden(logged_in_client, section):
    client, _ = logged_in_client
    resp = client.get(f"/api/sales/{section}")
    assert resp.status_code == 403


@pytest.mark.parametrize("section", SALES_LISTS)
def test_anonymous_is_unauthenticated(client, section):
    assert client.get(f"/api/sales/{section}").status_code == 401


def test_users_lists_customers_only(sales_client, make_user):
    client, sales_id = sales_client
    customer_id = make_user("buyer@example.com")
    resp = client.get("/api/sales/users")
    assert resp.status_code == 200
    ids = [u["id"] for u in resp.get_json()["data"]["users"]]
    assert customer_id in ids
    assert sales_id not in ids


def test_profiles_include_owner(sales_client, logged_in_client):
    customer, customer_id = logged_in_client
    customer.post("/api/profile", json={"gross_monthly_income": 5000})
    client, _ = sales_client
    profiles = client.get("/api/sales/profiles").get_json()["data"]["profiles"]
    assert len(profiles) == 1
    assert profiles[0]["user"]["id"] == customer_id
    assert profiles[0]["user"]["email"] == "tester@example.com"
    assert profiles[0]["gross_monthly_income"] == 5000


def test_customer_profile_view(sales_client, logged_in_client):
    customer, customer_id = logged_in_client
    client, _ = sales_client
    assert client.get(f"/api/sales/users/{customer_id}/profile").status_code == 404

    customer.post("/api/profile", json={"liquid_savings": 20000})
    resp = client.get(f"/api/sales/users/{customer_id}/profile")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["profile"]["liquid_savings"] == 20000


def test_customer_overview(sales_client, logged_in_client):
    _customer, customer_id = logged_in_client
    client, _ = sales_client
    resp = client.get(f"/api/sales/users/{customer_id}/overview")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert set(data) == {"user", "profile", "documents", "recommendations", "referrals"}
    assert data["user"]["id"] == customer_id
    assert data["profile"] is None
    assert data["documents"] == []


def test_customer_detail_views(sales_client, logged_in_client):
    _customer, customer_id = logged_in_client
    client, _ = sales_client
    assert client.get(f"/api/sales/users/{customer_id}").get_json()["data"]["user"]["id"] == customer_id
    assert client.get(f"/api/sales/users/{customer_id}/documents").get_json()["data"]["documents"] == []
    assert client.get(f"/api/sales/users/{customer_id}/recommendations").get_json()["data"]["recommendations"] == []


@pytest.mark.parametrize("suffix", ["", "/profile", "/documents", "/recommendations", "/overview"])
def test_missing_customer(sales_client, suffix):
    client, _ = sales_client
    resp = client.get(f"/api/sales/users/9999{suffix}")
    assert resp.status_code == 404


def test_sales_bearer_token(app, make_user, auth_headers):
    sales_id = make_user("desk@example.com", role="sales")
    resp = app.test_client().get("/api/sales/users", headers=auth_headers(sales_id))
    assert resp.status_code == 200


def test_customer_token_cannot_reach_sales(app, make_user, auth_headers):
    user_id = make_user()
    resp = app.test_client().get("/api/sales/users", headers=auth_headers(user_id))
    assert resp.status_code == 403
