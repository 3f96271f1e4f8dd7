import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import database
import main

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().storefront_test
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(config, "ADMIN_API_TOKEN", ADMIN_TOKEN)
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(config, "RESEND_API_KEY", "")
    return mock_db


@pytest.fixture
def client(db):
    return TestClient(main.app)


@pytest.fixture
def admin():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def table_product(db):
    """A product with a three-level option tree and one flat variant."""
    database.create_document("category", {"name": "Furniture", "slug": "furniture"})
    product_id = database.create_document("product", {
        "name": "Oak Table",
        "slug": "oak-table",
        "price": 1000,
        "stock": 0,
        "category": "furniture",
        "variants": [
            {
                "name": "Size",
                "type": "size",
                "required": True,
                "options": [
                    {
                        "label": "Large", "value": "large", "price_modifier": 200, "stock": 5,
                        "sub_variants": [
                            {
                                "name": "Finish",
                                "options": [
                                    {
                                        "label": "Matte", "value": "matte", "price_modifier": 50, "stock": 4,
                                        "specifications": [{"name": "Coating", "value": "Oil"}],
                                        "sub_variants": [
                                            {"name": "Legs", "options": [
                                                {"label": "Steel", "value": "steel", "price_modifier": 0, "stock": 3},
                                                {"label": "Brass", "value": "brass", "price_modifier": 75, "stock": 2},
                                            ]},
                                        ],
                                    },
                                ],
                            },
                        ],
                    },
                    {"label": "Small", "value": "small", "price_modifier": 0, "stock": 7},
                ],
            },
            {
                "name": "Color",
                "options": [
                    {"label": "Natural", "value": "natural", "price_modifier": 0, "stock": 9},
                ],
            },
        ],
        "addons": [
            {"name": "Assembly", "max_quantity": 2, "options": [{"label": "Standard", "price": 40}]},
        ],
        "specifications": [{"name": "Material", "value": "Oak"}],
    })
    return product_id
