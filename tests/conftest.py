"""Shared fixtures for OData query tests."""

from __future__ import annotations

import pytest

from cqrs_ddd_odata.edm import EdmModel
from cqrs_ddd_odata.functions import build_default_registry


@pytest.fixture
def registry():
    """Default function registry for building engines."""
    return build_default_registry()


@pytest.fixture
def products():
    return [
        {"id": 1, "name": "A", "price": 10.5, "categoryId": 1},
        {"id": 2, "name": "B", "price": 7, "categoryId": 2},
        {"id": 3, "name": "C", "price": 12, "categoryId": 1},
    ]


@pytest.fixture
def people():
    return [
        {"id": 1, "name": "Alice", "age": 30},
        {"id": 2, "name": "Bob", "age": 20},
        {"id": 3, "name": "Charlie", "age": 16},
    ]


@pytest.fixture
def categories():
    return [
        {"id": 1, "name": "Tools"},
        {"id": 2, "name": "Toys"},
    ]


@pytest.fixture
def model():
    """Products/Categories model with navigation both ways."""
    return EdmModel.model_validate(
        {
            "namespace": "Test",
            "entityTypes": [
                {
                    "name": "Product",
                    "key": ["id"],
                    "properties": [
                        {"name": "id", "type": "Edm.Int32", "nullable": False},
                        {"name": "name"},
                        {"name": "price", "type": "Edm.Decimal"},
                        {"name": "categoryId", "type": "Edm.Int32"},
                    ],
                    "navigation": [{"name": "category", "target": "Test.Category"}],
                },
                {
                    "name": "Category",
                    "key": ["id"],
                    "properties": [
                        {"name": "id", "type": "Edm.Int32", "nullable": False},
                        {"name": "name"},
                    ],
                    "navigation": [
                        {"name": "products", "target": "Product", "collection": True}
                    ],
                },
            ],
            "entitySets": [
                {"name": "Products", "entityType": "Test.Product"},
                {"name": "Categories", "entityType": "Test.Category"},
            ],
        }
    )
