"""Tests for the schema-configured table accessor."""

import pytest

from schemacrud.exceptions import InvalidInputError, RecordNotFoundError
from schemacrud.persistence.accessor import TableAccessor
from schemacrud.schema.normalizer import normalize_document

USERS = {
    "model": "users",
    "table": "users",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "user_name": {"type": "string", "required": True},
        "password": {"type": "password"},
        "flag_enabled": {"type": "boolean", "default": False},
        "created_by": {"type": "integer", "editable": False},
    },
}


@pytest.fixture
def products(loader, adapter):
    return TableAccessor.configure(loader.load("products"), adapter)


@pytest.fixture
def users(loader, adapter):
    adapter.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, user_name TEXT, "
        "password TEXT, flag_enabled BOOLEAN, created_by INTEGER)"
    )
    return TableAccessor.configure(loader.build(normalize_document(USERS)), adapter)


class TestCreate:
    def test_create_returns_cast_record(self, products):
        record = products.create({"sku": "A-1", "name": "Anvil", "price": "19.99"})
        assert record["id"] == 1
        assert record["price"] == 19.99
        assert record["active"] is True
        assert record["created_at"] == record["updated_at"]
        assert record["deleted_at"] is None

    def test_stored_currency_is_minor_units(self, products, adapter):
        products.create({"sku": "A-1", "name": "Anvil", "price": "$1,250.50"})
        row = adapter.fetch_one("SELECT price FROM products")
        assert row["price"] == 125050

    def test_drops_unknown_and_non_writable_input(self, products, adapter):
        record = products.create({
            "sku": "A-1", "name": "Anvil", "id": 99, "bogus": "x", "tags": ["a"],
        })
        assert record["id"] == 1
        assert "bogus" not in record
        assert "tags" not in record

    def test_invalid_value_names_the_field(self, users):
        with pytest.raises(InvalidInputError) as exc_info:
            users.create({"user_name": "ann", "flag_enabled": "sometimes"})
        assert "flag_enabled" in exc_info.value.field_errors

    def test_password_hashed_and_never_returned(self, users, adapter):
        record = users.create({"user_name": "ann", "password": "s3cret"})
        assert "password" not in record
        stored = adapter.fetch_one("SELECT password FROM users")["password"]
        assert stored and stored != "s3cret"

    def test_editable_false_field_ignored(self, users):
        record = users.create({"user_name": "ann", "created_by": 5})
        assert record["created_by"] is None
        assert record["flag_enabled"] is False


class TestUpdate:
    def test_update_changes_values(self, products):
        products.create({"sku": "A-1", "name": "Anvil"})
        record = products.update(1, {"name": "Big Anvil", "price": 5})
        assert record["name"] == "Big Anvil"
        assert record["price"] == 5.0

    def test_blank_password_leaves_hash(self, users, adapter):
        users.create({"user_name": "ann", "password": "s3cret"})
        before = adapter.fetch_one("SELECT password FROM users")["password"]
        users.update(1, {"password": "", "user_name": "anne"})
        after = adapter.fetch_one("SELECT password, user_name FROM users")
        assert after["password"] == before
        assert after["user_name"] == "anne"

    def test_update_missing_record(self, products):
        with pytest.raises(RecordNotFoundError):
            products.update(42, {"name": "x"})


class TestDelete:
    def test_soft_delete_hides_record(self, products, adapter):
        products.create({"sku": "A-1", "name": "Anvil"})
        products.delete(1)
        with pytest.raises(RecordNotFoundError):
            products.find(1)
        assert products.find(1, with_trashed=True)["deleted_at"] is not None
        assert adapter.fetch_one("SELECT COUNT(*) AS n FROM products")["n"] == 1

    def test_soft_delete_twice_is_not_found(self, products):
        products.create({"sku": "A-1", "name": "Anvil"})
        products.delete(1)
        with pytest.raises(RecordNotFoundError):
            products.delete(1)

    def test_restore(self, products):
        products.create({"sku": "A-1", "name": "Anvil"})
        products.delete(1)
        assert products.restore(1)["deleted_at"] is None
        assert products.find(1)["name"] == "Anvil"

    def test_hard_delete(self, users, adapter):
        users.create({"user_name": "ann"})
        users.delete(1)
        assert adapter.fetch_one("SELECT * FROM users") is None

    def test_restore_requires_soft_delete(self, users):
        with pytest.raises(InvalidInputError):
            users.restore(1)


class TestConfigure:
    def test_configure_returns_fresh_instances(self, loader, adapter):
        schema = loader.load("products")
        first = TableAccessor.configure(schema, adapter)
        second = TableAccessor.configure(schema, adapter)
        assert first is not second
        first.handlers.pop("price")
        assert "price" in second.handlers

    def test_clone_is_independent(self, products):
        other = products.clone()
        other.handlers.pop("price")
        assert "price" in products.handlers

    def test_virtual_fields_have_no_handler(self, products):
        assert "tags" not in products.handlers
        assert products.table == "products"
        assert products.soft_delete is True
