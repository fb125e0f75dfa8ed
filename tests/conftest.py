"""Shared fixtures: schema documents on disk and a matching SQLite database."""

import json
from pathlib import Path

import pytest

from schemacrud.auth.types import Principal
from schemacrud.config import Settings
from schemacrud.core.types import FieldTypeRegistry
from schemacrud.crud import CrudService
from schemacrud.persistence.sqlite import SQLiteAdapter
from schemacrud.schema.loader import SchemaLoader
from schemacrud.schema.service import SchemaService

PRODUCTS = {
    "model": "products",
    "table": "products",
    "title": "Products",
    "soft_delete": True,
    "title_field": "name",
    "permissions": {
        "read": "products.read",
        "create": "products.create",
        "update": "products.update",
        "delete": "products.delete",
    },
    "default_sort": {"name": "asc"},
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True, "sortable": True},
        "sku": {
            "type": "string",
            "required": True,
            "sortable": True,
            "filterable": True,
            "validation": {"max_length": 20},
        },
        "name": {"type": "string", "required": True, "sortable": True, "filterable": True},
        "price": {"type": "currency", "sortable": True, "filterable": True},
        "active": {"type": "boolean-tgl", "filterable": True, "default": True},
        "description": {"type": "text", "listable": False},
        "tags": {"type": "multiselect"},
    },
    "relationships": [
        {
            "name": "categories",
            "type": "many_to_many",
            "pivot_table": "product_categories",
            "foreign_key": "product_id",
            "related_key": "category_id",
        }
    ],
    "details": [
        {"model": "reviews", "foreign_key": "product_id", "list_fields": ["rating", "body"]}
    ],
    "actions": [
        {
            "key": "toggle_active",
            "type": "field_update",
            "field": "active",
            "toggle": True,
            "permission": "products.toggle",
        }
    ],
}

CATEGORIES = {
    "model": "categories",
    "table": "categories",
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "name": {"type": "string", "required": True, "sortable": True, "filterable": True},
    },
}

REVIEWS = {
    "model": "reviews",
    "table": "reviews",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "product_id": {"type": "integer", "required": True},
        "rating": {"type": "integer", "sortable": True, "filterable": True},
        "body": {"type": "text", "filterable": True},
        "author": {"type": "string"},
    },
}

DDL = [
    """CREATE TABLE products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sku TEXT, name TEXT, price INTEGER, active BOOLEAN, description TEXT,
        created_at TEXT, updated_at TEXT, deleted_at TEXT
    )""",
    """CREATE TABLE categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT, created_at TEXT, updated_at TEXT
    )""",
    """CREATE TABLE product_categories (
        product_id INTEGER NOT NULL,
        category_id INTEGER NOT NULL,
        PRIMARY KEY (product_id, category_id)
    )""",
    """CREATE TABLE reviews (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER, rating INTEGER, body TEXT, author TEXT
    )""",
]


def write_schema(directory: Path, document: dict, name: str | None = None) -> Path:
    """Write ``document`` as ``{name or model}.json`` under ``directory``."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name or document['model']}.json"
    path.write_text(json.dumps(document))
    return path


@pytest.fixture
def schema_dir(tmp_path):
    """Directory holding the products, categories and reviews schemas."""
    directory = tmp_path / "schema"
    for doc in (PRODUCTS, CATEGORIES, REVIEWS):
        write_schema(directory, doc)
    return directory


@pytest.fixture
def registry():
    return FieldTypeRegistry()


@pytest.fixture
def loader(schema_dir, registry):
    return SchemaLoader([schema_dir], registry)


@pytest.fixture
def schemas(loader):
    return SchemaService(loader)


@pytest.fixture
def adapter():
    """Connected in-memory SQLite adapter with the fixture tables."""
    adapter = SQLiteAdapter(":memory:")
    adapter.connect()
    for statement in DDL:
        adapter.execute(statement)
    yield adapter
    adapter.close()


@pytest.fixture
def service(schemas, adapter):
    return CrudService(schemas, adapter, settings=Settings(schema_paths=[]))


@pytest.fixture
def root():
    """Principal holding every permission."""
    return Principal.with_permissions("*", user_id=1)


def seed_products(adapter, count: int = 25) -> None:
    """Insert ``count`` products named 'Product 01'.. with ascending prices."""
    for i in range(1, count + 1):
        adapter.execute(
            "INSERT INTO products (sku, name, price, active) VALUES (?, ?, ?, ?)",
            [f"SKU-{i:02d}", f"Product {i:02d}", i * 100, i % 2],
        )


def seed_categories(adapter, names=("Tools", "Garden", "Kitchen")) -> None:
    for name in names:
        adapter.execute("INSERT INTO categories (name) VALUES (?)", [name])
