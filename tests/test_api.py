"""Tests for the HTTP routes in bonfire.main."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from bonfire import main
from bonfire.config import Settings
from bonfire.database import MemoryStore
from bonfire.main import app, get_service, get_settings
from bonfire.schema import DEFAULT_NEEDED_ITEMS


def _item(client: TestClient, name: str) -> dict:
    items = client.get("/api/needed-items").json()["neededItems"]
    return next(i for i in items if i["item"] == name)


def _delete(client: TestClient, body: dict):
    return client.request("DELETE", "/api/needed-items", json=body)


# --- GET / and /api/test ---


def test_health_check(client: TestClient) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_connection_check_reports_env(client: TestClient) -> None:
    resp = client.get("/api/test")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["env"] == {"sheetId": "Missing", "email": "Missing", "privateKey": "Missing"}


def test_connection_check_failure(client: TestClient, store) -> None:
    app.dependency_overrides[get_settings] = lambda: Settings(
        storage_backend="sheets", sheet_id="abc", service_account_email="svc@x.com", private_key="key",
    )
    store.broken = True
    resp = client.get("/api/test")
    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "The caller does not have permission"
    assert body["env"] == {"sheetId": "Set", "email": "Set", "privateKey": "Set"}


def test_connection_check_reuses_shared_store(monkeypatch: pytest.MonkeyPatch) -> None:
    built = []

    def fake_build_store(current):
        built.append(MemoryStore())
        return built[-1]

    monkeypatch.setattr(main, "_service", None)
    monkeypatch.setattr(main, "build_store", fake_build_store)
    app.dependency_overrides[get_settings] = lambda: Settings(storage_backend="memory")
    try:
        with TestClient(app) as c:
            for _ in range(3):
                assert c.get("/api/test").status_code == 200
            assert c.get("/api/needed-items").status_code == 200
    finally:
        app.dependency_overrides.clear()
    assert len(built) == 1
    assert main._service.store is built[0]


# --- /api/needed-items ---


class TestNeededItemsRoutes:
    def test_list_seeded_items(self, client: TestClient) -> None:
        resp = client.get("/api/needed-items")
        assert resp.status_code == 200
        items = resp.json()["neededItems"]
        assert len(items) == len(DEFAULT_NEEDED_ITEMS)
        assert items[0] == {
            "item": "BBQ Grill",
            "category": "supplies",
            "taken": False,
            "takenBy": "",
            "quantityNeeded": 1,
            "quantityBrought": 0,
        }

    def test_create(self, client: TestClient) -> None:
        resp = client.post("/api/needed-items", json={"item": "Guitar", "category": "other", "quantityNeeded": 2})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert _item(client, "Guitar")["quantityNeeded"] == 2

    def test_create_defaults_quantity(self, client: TestClient) -> None:
        client.post("/api/needed-items", json={"item": "Frisbee", "category": "other"})
        assert _item(client, "Frisbee")["quantityNeeded"] == 1

    @pytest.mark.parametrize("body", [{}, {"item": "Guitar"}, {"category": "food"}, {"item": " ", "category": "food"}])
    def test_create_missing_fields(self, client: TestClient, body: dict) -> None:
        resp = client.post("/api/needed-items", json=body)
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_create_duplicate(self, client: TestClient) -> None:
        resp = client.post("/api/needed-items", json={"item": "napkins", "category": "supplies"})
        assert resp.status_code == 400

    def test_create_bad_category(self, client: TestClient) -> None:
        resp = client.post("/api/needed-items", json={"item": "Kite", "category": "toys"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid request body"}

    def test_update_quantity_needed(self, client: TestClient) -> None:
        resp = client.put("/api/needed-items", json={"item": "Firewood", "quantityNeeded": 8})
        assert resp.status_code == 200
        assert _item(client, "Firewood")["quantityNeeded"] == 8

    def test_update_missing_quantity(self, client: TestClient) -> None:
        resp = client.put("/api/needed-items", json={"item": "Firewood"})
        assert resp.status_code == 400

    def test_delete_firewood(self, client: TestClient) -> None:
        resp = _delete(client, {"item": "Firewood"})
        assert resp.status_code == 200
        names = [i["item"] for i in client.get("/api/needed-items").json()["neededItems"]]
        assert "Firewood" not in names

    def test_delete_missing_item_field(self, client: TestClient) -> None:
        assert _delete(client, {}).status_code == 400

    def test_storage_failure(self, client: TestClient, store) -> None:
        client.get("/api/needed-items")
        store.broken = True
        resp = client.get("/api/needed-items")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to fetch needed items"}

        resp = client.post("/api/needed-items", json={"item": "Kite", "category": "other"})
        assert resp.status_code == 500
        assert "permission" not in resp.text


# --- /api/signup ---


class TestSignupRoutes:
    def test_multi_item_signup(self, client: TestClient) -> None:
        resp = client.post("/api/signup", json={
            "name": "Al",
            "email": "a@x.com",
            "items": [
                {"item": "Napkins", "category": "supplies", "quantity": 40},
                {"item": "Sodas", "category": "drinks"},
            ],
        })
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

        signups = client.get("/api/signup").json()["signups"]
        assert [(s["item"], s["itemCategory"], s["quantity"]) for s in signups] == [
            ("Napkins", "supplies", 40),
            ("Sodas", "drinks", 1),
        ]
        napkins = _item(client, "Napkins")
        assert napkins["quantityBrought"] == 40
        assert napkins["taken"] is False
        assert _item(client, "Sodas")["taken"] is True

    def test_legacy_single_item_shape(self, client: TestClient) -> None:
        resp = client.post("/api/signup", json={
            "name": "Test User", "email": "test@example.com", "item": "Test Food Item", "itemCategory": "food",
        })
        assert resp.status_code == 200
        created = _item(client, "Test Food Item")
        assert created["category"] == "food"
        assert created["quantityNeeded"] == 1
        assert created["taken"] is True
        assert created["takenBy"] == "Test User"

    def test_napkins_reach_target(self, client: TestClient) -> None:
        client.post("/api/signup", json={"name": "Al", "email": "a@x.com", "items": [{"item": "Napkins", "quantity": 40}]})
        client.post("/api/signup", json={"name": "Bo", "email": "b@x.com", "items": [{"item": "Napkins", "quantity": 65}]})
        napkins = _item(client, "Napkins")
        assert napkins["quantityBrought"] == 105
        assert napkins["taken"] is True
        assert napkins["takenBy"] == "Al, Bo"

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "a@x.com", "item": "Chips"},
            {"name": "Al", "item": "Chips"},
            {"name": "Al", "email": "a@x.com"},
            {"name": "Al", "email": "a@x.com", "items": []},
            {"name": "", "email": "a@x.com", "item": "Chips"},
        ],
    )
    def test_missing_fields(self, client: TestClient, body: dict) -> None:
        before = client.get("/api/needed-items").json()
        resp = client.post("/api/signup", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Name, email, and at least one item are required"
        assert client.get("/api/signup").json() == {"signups": []}
        assert client.get("/api/needed-items").json() == before

    def test_storage_failure(self, client: TestClient, store) -> None:
        client.get("/api/signup")
        store.broken = True
        resp = client.post("/api/signup", json={"name": "Al", "email": "a@x.com", "item": "Chips"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to add signup"}


# --- unexpected errors ---


def test_unexpected_error_is_generic_500() -> None:
    class Broken:
        async def get_signups(self):
            raise RuntimeError("secret internal detail")

    async def override():
        return Broken()

    app.dependency_overrides[get_service] = override
    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            resp = c.get("/api/signup")
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 500
    assert "secret" not in resp.text
