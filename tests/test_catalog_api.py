from datetime import datetime, timedelta

import database
from schemas import Product

FUTURE = "2099-01-01T00:00:00Z"

DEEP = {
    "variant_name": "Size", "option_value": "large",
    "sub_variants": [{
        "variant_name": "Finish", "option_value": "matte",
        "sub_variants": [{"variant_name": "Legs", "option_value": "brass"}],
    }],
}


def quote(client, **overrides):
    payload = {
        "product": "oak-table",
        "variants": [DEEP],
        "addons": [{"addon_name": "Assembly", "option_label": "Standard", "quantity": 3}],
    }
    payload.update(overrides)
    return client.post("/api/pricing/quote", json=payload)


# Products / categories

def test_create_product_generates_skus(client, admin, db):
    database.create_document("category", {"name": "Lighting", "slug": "lighting"})
    payload = {
        "name": "Pendant",
        "slug": "pendant",
        "price": 120,
        "category": "lighting",
        "variants": [{"name": "Color", "options": [
            {"label": "Black", "value": "black", "stock": 2, "sub_variants": [
                {"name": "Cord", "options": [{"label": "Long Cord", "value": "long", "stock": 1}]},
            ]},
            {"label": "White", "value": "white", "stock": 3, "sku": "CUSTOM-1"},
        ]}],
    }
    res = client.post("/api/products", json=payload, headers=admin)
    assert res.status_code == 201, res.text
    options = res.json()["data"]["variants"][0]["options"]
    assert options[0]["sku"] == "PENDANT-COLOR-BLACK"
    assert options[0]["sub_variants"][0]["options"][0]["sku"] == "PENDANT-COLOR-BLACK-CORD-LONG"
    assert options[1]["sku"] == "CUSTOM-1"

    res = client.post("/api/products", json=payload, headers=admin)
    assert res.status_code == 409


def test_create_product_rejects_unknown_category(client, admin):
    res = client.post("/api/products", json={"name": "Vase", "slug": "vase", "price": 10, "category": "nope"},
                      headers=admin)
    assert res.status_code == 400
    assert res.json()["error"] == "Category not found"


def test_product_lookup_and_filters(client, table_product):
    assert client.get("/api/products/oak-table").json()["data"]["id"] == table_product
    assert client.get(f"/api/products/{table_product}").json()["data"]["slug"] == "oak-table"

    res = client.get("/api/products/missing")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Product not found"}

    assert len(client.get("/api/products", params={"q": "OAK"}).json()["data"]) == 1
    assert client.get("/api/products", params={"max_price": 500}).json()["data"] == []
    assert client.get("/api/products", params={"ids": table_product}).json()["data"][0]["slug"] == "oak-table"
    body = client.get("/api/products", params={"category": "unknown"}).json()
    assert body["data"] == []
    assert body["message"] == "Category not found"


def test_update_and_delete_product(client, admin, table_product):
    res = client.put("/api/products/oak-table", json={"price": 1100, "featured": True}, headers=admin)
    assert res.json()["data"]["price"] == 1100
    assert client.get("/api/products", params={"featured": True}).json()["data"][0]["slug"] == "oak-table"

    assert client.delete("/api/products/oak-table", headers=admin).json()["success"] is True
    assert client.delete("/api/products/oak-table", headers=admin).status_code == 404


def test_categories_report_product_counts(client, admin, table_product):
    res = client.post("/api/categories", json={"name": "Outdoor Seating"}, headers=admin)
    assert res.status_code == 201
    assert res.json()["data"]["slug"] == "outdoor-seating"

    data = client.get("/api/categories").json()["data"]
    counts = {c["slug"]: c["product_count"] for c in data}
    assert counts == {"furniture": 1, "outdoor-seating": 0}

    assert client.post("/api/categories", json={"name": "Furniture"}, headers=admin).status_code == 409


# Pricing quote

def test_quote_sums_every_level_and_caps_addons(client, table_product):
    res = quote(client)
    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["variant_adjustment"] == 325
    assert data["addons_total"] == 80
    assert data["total"] == 1405
    assert data["available_stock"] == 2
    assert data["sale"] is None
    assert {"name": "Coating", "value": "Oil"} in data["specifications"]


def test_quote_applies_active_sale_to_base_only(client, admin, table_product):
    res = client.post("/api/sale", json={"name": "Spring", "category_slugs": ["furniture"], "ends_at": FUTURE,
                                          "discount_percent": 10}, headers=admin)
    assert res.status_code == 200, res.text

    data = quote(client, quantity=2).json()["data"]
    assert data["discounted_base"] == 900
    assert data["total"] == 1305
    assert data["line_total"] == 2610
    assert data["sale"]["name"] == "Spring"


def test_quote_requires_required_variants(client, table_product):
    res = quote(client, variants=[{"variant_name": "Color", "option_value": "natural"}])
    assert res.status_code == 400
    assert res.json()["error"] == "Missing required variants: Size"


# Sales

def test_sale_admin_gate_and_validation(client, admin, table_product):
    body = {"name": "Flash", "product_ids": [table_product], "ends_at": FUTURE, "discount_percent": 150}
    assert client.post("/api/sale", json=body).status_code == 401

    res = client.post("/api/sale", json=body, headers=admin)
    assert res.json()["data"]["discount_percent"] == 95

    res = client.post("/api/sale", json={"name": "Empty", "ends_at": FUTURE}, headers=admin)
    assert res.status_code == 400
    res = client.post("/api/sale", json={"name": "Bad", "category_slugs": ["furniture"], "ends_at": "soon"},
                      headers=admin)
    assert res.json()["error"] == "Invalid ends_at datetime"


def test_latest_active_sale_wins(client, admin, db):
    db["sale"].insert_one({"name": "Expired", "category_slugs": ["furniture"], "active": True,
                           "ends_at": datetime.utcnow() - timedelta(days=1), "discount_percent": 50,
                           "created_at": datetime.utcnow()})
    for name in ("First", "Second"):
        client.post("/api/sale", json={"name": name, "category_slugs": ["furniture"], "ends_at": FUTURE,
                                       "discount_percent": 20}, headers=admin)

    assert client.get("/api/sale").json()["data"]["name"] == "Second"
    names = [s["name"] for s in client.get("/api/sale", params={"mode": "all"}).json()["data"]]
    assert names == ["Second", "First"]


def test_update_sale(client, admin):
    sale = client.post("/api/sale", json={"name": "Weekend", "category_slugs": ["decor"], "ends_at": FUTURE,
                                           "discount_percent": 15}, headers=admin).json()["data"]
    res = client.put("/api/sale", json={"id": sale["id"], "name": "Weekend", "category_slugs": ["decor"],
                                        "ends_at": FUTURE, "discount_percent": 25, "active": False}, headers=admin)
    assert res.json()["data"]["discount_percent"] == 25
    assert client.get("/api/sale").json()["data"] is None

    res = client.put("/api/sale", json={"name": "x", "category_slugs": ["decor"], "ends_at": FUTURE}, headers=admin)
    assert res.json()["error"] == "Sale ID is required"


# Reviews

def review(**overrides):
    body = {"user_id": "u-1", "user_name": "Sara", "user_email": "sara@mail.com", "rating": 4, "comment": "Sturdy"}
    body.update(overrides)
    return body


def test_reviews_update_product_rating(client, db, table_product):
    res = client.post("/api/products/oak-table/reviews", json=review())
    assert res.status_code == 200, res.text
    client.post("/api/products/oak-table/reviews", json=review(user_id="u-2", rating=5))

    product = db["product"].find_one({"slug": "oak-table"})
    assert product["num_reviews"] == 2
    assert product["rating"] == 4.5

    listed = client.get("/api/products/oak-table/reviews").json()["data"]
    assert listed["num_reviews"] == 2


def test_review_validation(client, table_product):
    res = client.post("/api/products/oak-table/reviews", json=review())
    assert res.status_code == 200
    res = client.post("/api/products/oak-table/reviews", json=review())
    assert res.json()["error"] == "You have already reviewed this product"

    res = client.post("/api/products/oak-table/reviews", json=review(user_id="u-3", rating=6))
    assert res.json()["error"] == "Rating must be between 1 and 5"
    res = client.post("/api/products/oak-table/reviews", json=review(comment=""))
    assert res.json()["error"] == "All required fields must be provided"
    assert client.post("/api/products/nope/reviews", json=review(user_id="u-4")).status_code == 404


def test_fractional_rating_is_rejected(client, db, table_product):
    res = client.post("/api/products/oak-table/reviews", json=review(rating=4.7))
    assert res.status_code == 400
    assert db["review"].count_documents({}) == 0


# Nested option tree

THREE_LEVELS = {
    "name": "Bookcase",
    "slug": "bookcase",
    "price": 300,
    "variants": [{"name": "Height", "options": [
        {"label": "Tall", "value": "tall", "price_modifier": 60, "stock": 2, "sub_variants": [
            {"name": "Wood", "options": [
                {"label": "Walnut", "value": "walnut", "price_modifier": 45.5, "stock": 1, "sub_variants": [
                    {"name": "Doors", "options": [
                        {"label": "Glass Doors", "value": "glass", "price_modifier": 30, "stock": 1},
                    ]},
                ]},
            ]},
        ]},
    ]}],
}


def _levels(variants):
    """(variant name, option label, price_modifier) down the first branch."""
    found = []
    while variants:
        option = variants[0]["options"][0]
        found.append((variants[0]["name"], option["label"], option["price_modifier"]))
        variants = option.get("sub_variants") or []
    return found


EXPECTED_LEVELS = [("Height", "Tall", 60), ("Wood", "Walnut", 45.5), ("Doors", "Glass Doors", 30)]


def test_nested_product_survives_dump_and_validate():
    product = Product(**THREE_LEVELS)
    again = Product.model_validate(product.model_dump())
    assert again == product
    assert _levels(again.model_dump()["variants"]) == EXPECTED_LEVELS


def test_nested_product_round_trips_through_api(client, admin, db):
    assert client.post("/api/products", json=THREE_LEVELS, headers=admin).status_code == 201
    data = client.get("/api/products/bookcase").json()["data"]
    assert _levels(data["variants"]) == EXPECTED_LEVELS


def test_quote_keeps_fractional_discount(client, table_product):
    data = quote(client, variants=[{"variant_name": "Size", "option_value": "small"}], addons=[],
                 discount_percent=10.4).json()["data"]
    assert data["discount_percent"] == 10.4
    assert data["discounted_base"] == 896
    assert data["total"] == 896
