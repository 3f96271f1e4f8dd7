import pytest
from fastapi.testclient import TestClient

import database
import main


def test_unknown_route_uses_envelope(client):
    res = client.get("/api/does-not-exist")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Not Found"}


def test_database_timeout_maps_to_504(client, monkeypatch):
    def unreachable(*args, **kwargs):
        raise database.DatabaseTimeout()

    monkeypatch.setattr(database, "db", None)
    monkeypatch.setattr(database, "connect", unreachable)
    res = client.get("/api/products")
    assert res.status_code == 504
    assert res.json() == {"success": False, "error": "Database connection timeout. Please try again."}


def test_connect_without_settings_raises_timeout(monkeypatch):
    monkeypatch.setattr(database.config, "DATABASE_URL", None)
    with pytest.raises(database.DatabaseTimeout, match="DB timeout"):
        database.connect(retries=1, delay=0)


def test_unexpected_errors_return_500(db, monkeypatch, table_product):
    def broken(order):
        raise RuntimeError("boom")

    monkeypatch.setattr(main, "describe", broken)
    order = database.create_document("order", {"order_id": "ORD_ABCDEFGH", "status": "ordered"})
    client = TestClient(main.app, raise_server_exceptions=False)
    res = client.get(f"/api/orders/{order}/status")
    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Internal server error"}


def test_seed_is_idempotent(client, admin, db):
    first = client.post("/api/seed", headers=admin).json()["data"]["seeded"]
    assert first["products"] == 3
    second = client.post("/api/seed", headers=admin).json()["data"]["seeded"]
    assert second == {"categories": 0, "products": 0}

    table = db["product"].find_one({"slug": "walnut-dining-table"})
    assert table["variants"][0]["options"][0]["sku"] == "WALNUT-DINING-TABLE-SIZE-4-SEATER"


def test_root(client):
    assert client.get("/").json() == {"message": "Storefront API is running"}
