"""Tests for the DatabaseAdapter Protocol, SQLiteAdapter and adapter selection by URL."""

import pytest

from schemacrud.persistence import DatabaseAdapter, SQLiteAdapter, create_adapter, sqlite_path
from schemacrud.persistence.postgresql import PostgreSQLAdapter


class TestDatabaseAdapterProtocol:
    """Verify SQLiteAdapter satisfies the DatabaseAdapter protocol."""

    def test_sqlite_adapter_is_instance(self):
        adapter = SQLiteAdapter(":memory:")
        assert isinstance(adapter, DatabaseAdapter)

    def test_sqlite_adapter_has_all_methods(self):
        required_methods = [
            "connect",
            "close",
            "quote",
            "execute",
            "fetch_all",
            "fetch_one",
            "insert",
            "insert_ignore_sql",
            "transaction",
        ]
        adapter = SQLiteAdapter(":memory:")
        for method_name in required_methods:
            assert hasattr(adapter, method_name), f"Missing method: {method_name}"
            assert callable(getattr(adapter, method_name))

    def test_sqlite_adapter_has_conn_attribute(self):
        adapter = SQLiteAdapter(":memory:")
        # Before connect, conn is None
        assert adapter.conn is None
        adapter.connect()
        assert adapter.conn is not None
        adapter.close()
        assert adapter.conn is None

    def test_not_connected_raises(self):
        with pytest.raises(RuntimeError):
            SQLiteAdapter(":memory:").fetch_all("SELECT 1")


class TestSQLiteAdapter:
    def test_quote_escapes_embedded_quotes(self, adapter):
        assert adapter.quote("name") == '"name"'
        assert adapter.quote('we"ird') == '"we""ird"'

    def test_insert_returns_generated_key(self, adapter):
        assert adapter.insert("categories", {"name": "Tools"}, "id") == 1
        assert adapter.insert("categories", {"name": "Garden"}, "id") == 2

    def test_insert_returns_supplied_key(self, adapter):
        assert adapter.insert("categories", {"id": 40, "name": "Tools"}, "id") == 40

    def test_insert_default_values(self, adapter):
        assert adapter.insert("categories", {}, "id") == 1

    def test_insert_ignore_skips_duplicates(self, adapter):
        sql = adapter.insert_ignore_sql("product_categories", ["product_id", "category_id"])
        assert adapter.execute(sql, [1, 2]) == 1
        assert adapter.execute(sql, [1, 2]) == 0

    def test_fetch_helpers(self, adapter):
        adapter.execute("INSERT INTO categories (name) VALUES ('A'), ('B')")
        rows = adapter.fetch_all("SELECT name FROM categories ORDER BY id")
        assert rows == [{"name": "A"}, {"name": "B"}]
        assert adapter.fetch_one("SELECT name FROM categories WHERE id = ?", [9]) is None

    def test_transaction_commits(self, adapter):
        with adapter.transaction():
            adapter.execute("INSERT INTO categories (name) VALUES ('A')")
        assert adapter.fetch_one("SELECT COUNT(*) AS n FROM categories")["n"] == 1

    def test_transaction_rolls_back_on_error(self, adapter):
        with pytest.raises(ValueError):
            with adapter.transaction():
                adapter.execute("INSERT INTO categories (name) VALUES ('A')")
                raise ValueError("boom")
        assert adapter.fetch_one("SELECT COUNT(*) AS n FROM categories")["n"] == 0

    def test_nested_transaction_joins_outer(self, adapter):
        with pytest.raises(ValueError):
            with adapter.transaction():
                with adapter.transaction():
                    adapter.execute("INSERT INTO categories (name) VALUES ('inner')")
                adapter.execute("INSERT INTO categories (name) VALUES ('outer')")
                raise ValueError("boom")
        assert adapter.fetch_one("SELECT COUNT(*) AS n FROM categories")["n"] == 0


class TestSqlitePath:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("sqlite:///app.db", "app.db"),
            ("sqlite:///data/app.db", "data/app.db"),
            ("sqlite:////var/lib/app.db", "/var/lib/app.db"),
            ("sqlite://", ":memory:"),
            ("sqlite:///:memory:", ":memory:"),
        ],
    )
    def test_paths(self, url, expected):
        assert sqlite_path(url) == expected


class TestCreateAdapter:
    def test_sqlite(self, tmp_path):
        adapter = create_adapter(f"sqlite:///{tmp_path / 'x.db'}")
        assert isinstance(adapter, SQLiteAdapter)
        assert adapter.db_path == str(tmp_path / "x.db")
        assert adapter.conn is None

    def test_sqlite_memory(self):
        assert create_adapter("sqlite://").db_path == ":memory:"

    @pytest.mark.parametrize(
        "url", ["postgresql+psycopg://u:p@h/db", "postgresql://u:p@h/db", "postgres://u:p@h/db"]
    )
    def test_postgresql(self, url):
        adapter = create_adapter(url)
        assert isinstance(adapter, PostgreSQLAdapter)
        assert adapter.url.endswith("://u:p@h/db")
        assert "+psycopg" not in adapter.url

    def test_unsupported_scheme(self):
        with pytest.raises(ValueError, match="Unsupported database URL scheme 'mysql'"):
            create_adapter("mysql://u:p@h/db")
