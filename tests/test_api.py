"""HTTP API: authentication, action envelopes and query endpoints."""

import inspect

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from api import app
from database import get_db

AUTH = ("alice", "s3cret")


@pytest.fixture
def client(db, user):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health_needs_no_auth(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_bad_credentials_are_rejected(client):
    response = client.get("/queries/accounts", auth=("alice", "wrong"))
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Basic"


def test_account_and_transaction_flow(client):
    created = client.post("/actions/new_account", json={"name": "Checking", "type": "cash", "balance": 100}, auth=AUTH)
    assert created.status_code == 200
    account_id = created.json()["data"]["id"]

    txn = client.post(
        "/actions/new_transaction",
        json={"title": "Coffee", "account_id": account_id, "date": "2024-06-15", "amount": 3.5, "type": "outflow"},
        auth=AUTH,
    )
    assert txn.json()["ok"] is True

    listing = client.post("/queries/transactions", json={"page": 1, "page_size": 10}, auth=AUTH)
    body = listing.json()
    assert body["data"]["pagination"]["total"] == 1
    assert body["data"]["transactions"][0]["amount"] == 3.5

    accounts = client.get("/queries/accounts", params={"type": "cash"}, auth=AUTH).json()["data"]
    assert accounts[0]["current_balance"] == 96.5


def test_failed_action_returns_400_envelope(client):
    response = client.post("/actions/delete_transaction", json={"id": 404}, auth=AUTH)
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Failed to delete transaction"}


def test_invalid_payload_is_rejected_by_validation(client):
    response = client.post(
        "/actions/new_transaction",
        json={"title": "", "account_id": 1, "date": "2024-06-15", "amount": -1, "type": "outflow"},
        auth=AUTH,
    )
    assert response.status_code == 422


def test_analytics_endpoints(client):
    client.post("/actions/new_account", json={"name": "Savings", "type": "cash", "balance": 250}, auth=AUTH)

    net_worth = client.get("/queries/net_worth", auth=AUTH).json()
    assert net_worth["data"][0] == 250

    summary = client.get("/queries/analytics_summary", params={"range": "90d"}, auth=AUTH).json()
    assert summary["data"]["income"] == 0

    assert client.get("/queries/spending_by_category", params={"range": "bogus"}, auth=AUTH).status_code == 422


def test_export(client):
    client.post("/actions/create_category", json={"name": "Food", "type": "outflow"}, auth=AUTH)
    export = client.get("/queries/export", auth=AUTH).json()["data"]
    assert export["version"] == "1.0"
    assert [c["name"] for c in export["categories"]] == ["Food"]


def test_unstorable_balance_is_a_validation_error(client):
    response = client.post("/actions/new_account", json={"name": "Huge", "type": "cash", "balance": 1e300}, auth=AUTH)
    assert response.status_code == 422


def test_preferences_endpoints(client):
    defaults = client.get("/queries/preferences", auth=AUTH).json()["data"]
    assert defaults["currency"] == "EUR"

    updated = client.post(
        "/actions/update_preferences",
        json={"currency": "JPY", "region": "JP", "date_format": "YYYY-MM-DD", "timezone": "Asia/Tokyo"},
        auth=AUTH,
    )
    assert updated.status_code == 200
    assert client.get("/queries/preferences", auth=AUTH).json()["data"]["timezone"] == "Asia/Tokyo"

    duplicate = client.post("/actions/create_preferences", auth=AUTH)
    assert duplicate.status_code == 400
    assert duplicate.json() == {"ok": False, "error": "Failed to create user preferences"}


def test_endpoints_run_in_the_threadpool():
    endpoints = [route.endpoint for route in app.routes if isinstance(route, APIRoute)]
    assert endpoints
    assert not [e.__name__ for e in endpoints if inspect.iscoroutinefunction(e)]
