"""Tests for pivot writes, lifecycle actions and related-row listings."""

import logging

import pytest

from conftest import seed_categories, seed_products, write_schema
from schemacrud.exceptions import InvalidInputError, RelationshipConfigError
from schemacrud.relationships.manager import ON_CREATE, ON_DELETE, ON_UPDATE, RelationshipManager

ARTICLES = {
    "model": "articles",
    "table": "articles",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "title": {"type": "string"},
    },
    "relationships": [
        {
            "name": "tags",
            "type": "many_to_many",
            "pivot_table": "article_tags",
            "foreign_key": "article_id",
            "related_key": "tag_id",
            "actions": {
                "on_create": {
                    "attach": [{"related_id": 1, "pivot_data": {"assigned_by": "current_user"}}]
                },
                "on_update": {"sync": True},
                "on_delete": {"detach": "all"},
            },
        }
    ],
}

USERS = {
    "model": "users",
    "table": "users",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "user_name": {"type": "string"},
    },
    "relationships": [
        {
            "name": "roles",
            "type": "many_to_many",
            "pivot_table": "role_users",
            "foreign_key": "user_id",
            "related_key": "role_id",
        },
        {
            "name": "permissions",
            "type": "belongs_to_many_through",
            "through": "roles",
            "first_pivot_table": "role_users",
            "first_foreign_key": "user_id",
            "first_related_key": "role_id",
            "second_pivot_table": "permission_roles",
            "second_foreign_key": "role_id",
            "second_related_key": "permission_id",
        },
    ],
}

PERMISSIONS = {
    "model": "permissions",
    "table": "permissions",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True},
        "slug": {"type": "string", "sortable": True},
    },
}


@pytest.fixture
def manager(loader, adapter):
    seed_products(adapter, 3)
    seed_categories(adapter)
    return RelationshipManager(loader.load("products"), adapter, loader.load)


def pivot_rows(adapter, product_id=1):
    return adapter.fetch_all(
        "SELECT category_id FROM product_categories WHERE product_id = ? ORDER BY category_id",
        [product_id],
    )


class TestAttach:
    def test_attach_accumulates(self, manager):
        assert manager.attach(1, "categories", [1, 2]) == [1, 2]
        assert manager.attach(1, "categories", [2, 3]) == [3]
        assert manager.related_ids(1, "categories") == {1, 2, 3}

    def test_attach_is_idempotent(self, manager, adapter):
        manager.attach(1, "categories", [1, 2])
        assert manager.attach(1, "categories", [1, 2]) == []
        assert len(pivot_rows(adapter)) == 2

    def test_duplicate_ids_in_batch(self, manager, adapter):
        assert manager.attach(1, "categories", [2, 2, 2]) == [2]
        assert len(pivot_rows(adapter)) == 1

    def test_parents_are_independent(self, manager):
        manager.attach(1, "categories", [1])
        manager.attach(2, "categories", [2])
        assert manager.related_ids(1, "categories") == {1}
        assert manager.related_ids(2, "categories") == {2}

    @pytest.mark.parametrize("ids", [[], "1", None, [1, None], [{"id": 1}]])
    def test_invalid_batches_rejected(self, manager, adapter, ids):
        with pytest.raises(InvalidInputError):
            manager.attach(1, "categories", ids)
        assert pivot_rows(adapter) == []

    def test_unknown_relationship(self, manager):
        with pytest.raises(RelationshipConfigError) as exc_info:
            manager.attach(1, "suppliers", [1])
        assert exc_info.value.relation == "suppliers"
        assert exc_info.value.status_code == 400

    def test_failure_rolls_back_whole_batch(self, manager, adapter, monkeypatch, caplog):
        original = manager._insert_pivot
        calls = []

        def flaky(rel, parent_id, related_id, extra=None):
            calls.append(related_id)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return original(rel, parent_id, related_id, extra)

        monkeypatch.setattr(manager, "_insert_pivot", flaky)
        with caplog.at_level(logging.ERROR):
            with pytest.raises(RuntimeError):
                manager.attach(1, "categories", [1, 2, 3])
        assert pivot_rows(adapter) == []
        assert "rolled back" in caplog.text

    def test_cancellation_rolls_back(self, manager, adapter, monkeypatch):
        original = manager._insert_pivot

        def interrupted(rel, parent_id, related_id, extra=None):
            if related_id == 3:
                raise KeyboardInterrupt
            return original(rel, parent_id, related_id, extra)

        monkeypatch.setattr(manager, "_insert_pivot", interrupted)
        with pytest.raises(KeyboardInterrupt):
            manager.attach(1, "categories", [1, 2, 3])
        assert pivot_rows(adapter) == []
        # The connection is usable again afterwards
        monkeypatch.setattr(manager, "_insert_pivot", original)
        assert manager.attach(1, "categories", [1]) == [1]


class TestDetachAndSync:
    def test_detach_round_trip(self, manager):
        manager.attach(1, "categories", [1, 2, 3])
        assert manager.detach(1, "categories", [2, 9]) == 1
        assert manager.related_ids(1, "categories") == {1, 3}

    def test_detach_empty_rejected(self, manager):
        with pytest.raises(InvalidInputError):
            manager.detach(1, "categories", [])

    def test_sync(self, manager):
        manager.attach(1, "categories", [1, 2])
        result = manager.sync(1, "categories", [2, 3])
        assert result == {"attached": [3], "detached": [1]}
        assert manager.related_ids(1, "categories") == {2, 3}

    def test_sync_empty_clears(self, manager):
        manager.attach(1, "categories", [1, 2])
        manager.sync(1, "categories", [])
        assert manager.related_ids(1, "categories") == set()


class TestUnconstrainedPivot:
    """Pivot table without a unique key: duplicates are the manager's job to avoid."""

    @pytest.fixture
    def loose(self, manager, adapter):
        adapter.execute("DROP TABLE product_categories")
        adapter.execute("CREATE TABLE product_categories (product_id INTEGER, category_id INTEGER)")
        return manager

    def rows(self, adapter):
        return adapter.fetch_all(
            "SELECT product_id, category_id FROM product_categories ORDER BY category_id"
        )

    def test_string_id_matches_stored_link(self, loose, adapter):
        assert loose.attach(1, "categories", [2]) == [2]
        assert loose.attach(1, "categories", ["2"]) == []
        assert self.rows(adapter) == [{"product_id": 1, "category_id": 2}]

    def test_repeat_attach_adds_nothing(self, loose, adapter):
        loose.attach(1, "categories", [1, 2])
        assert loose.attach(1, "categories", [1, 2, 3]) == [3]
        assert [r["category_id"] for r in self.rows(adapter)] == [1, 2, 3]

    def test_mixed_duplicates_in_one_batch(self, loose, adapter):
        assert loose.attach(1, "categories", [3, "3", " 3 "]) == [3]
        assert len(self.rows(adapter)) == 1

    def test_sync_keeps_existing_links(self, loose, adapter):
        loose.attach(1, "categories", [1, 2])
        result = loose.sync(1, "categories", ["2", "3"])
        assert result == {"attached": [3], "detached": [1]}
        assert [r["category_id"] for r in self.rows(adapter)] == [2, 3]

    def test_non_numeric_id_rejected(self, loose, adapter):
        with pytest.raises(InvalidInputError) as exc_info:
            loose.attach(1, "categories", ["abc"])
        assert "ids" in exc_info.value.field_errors
        assert self.rows(adapter) == []


class TestReadOnlyRelationships:
    @pytest.fixture
    def users(self, schema_dir, loader, adapter):
        for doc in (USERS, PERMISSIONS):
            write_schema(schema_dir, doc)
        for ddl in (
            "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, user_name TEXT)",
            "CREATE TABLE permissions (id INTEGER PRIMARY KEY AUTOINCREMENT, slug TEXT)",
            "CREATE TABLE role_users (user_id INTEGER, role_id INTEGER)",
            "CREATE TABLE permission_roles (permission_id INTEGER, role_id INTEGER)",
        ):
            adapter.execute(ddl)
        adapter.execute("INSERT INTO users (user_name) VALUES ('ann'), ('bob')")
        adapter.execute(
            "INSERT INTO permissions (slug) VALUES ('posts.read'), ('posts.write'), ('admin')"
        )
        # ann: roles 10, 11; bob: role 12
        adapter.execute("INSERT INTO role_users VALUES (1, 10), (1, 11), (2, 12)")
        adapter.execute("INSERT INTO permission_roles VALUES (1, 10), (2, 11), (1, 11), (3, 12)")
        return RelationshipManager(loader.load("users"), adapter, loader.load)

    def test_list_through_relationship(self, users):
        result = users.list_related(1, "permissions", None)
        assert [r["slug"] for r in result.rows] == ["posts.read", "posts.write"]
        assert result.count == 2

    def test_through_relationship_is_not_writable(self, users):
        with pytest.raises(RelationshipConfigError):
            users.attach(1, "permissions", [3])
        with pytest.raises(RelationshipConfigError):
            users.sync(1, "permissions", [3])

    def test_list_many_to_many(self, manager):
        manager.attach(1, "categories", [1, 3])
        result = manager.list_related(1, "categories")
        assert [r["name"] for r in result.rows] == ["Tools", "Kitchen"]
        assert result.count == 2

    def test_list_details(self, manager, adapter):
        adapter.execute(
            "INSERT INTO reviews (product_id, rating, body, author) VALUES "
            "(1, 5, 'Great', 'ann'), (1, 3, 'Fine', 'bob'), (2, 1, 'Bad', 'cy')"
        )
        result = manager.list_details(1, "reviews")
        assert result.count == 2
        assert set(result.rows[0]) == {"id", "rating", "body"}

    def test_list_unknown_detail(self, manager):
        with pytest.raises(RelationshipConfigError):
            manager.list_details(1, "invoices")


class TestLifecycleActions:
    @pytest.fixture
    def articles(self, schema_dir, loader, adapter):
        write_schema(schema_dir, ARTICLES)
        adapter.execute("CREATE TABLE articles (id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT)")
        adapter.execute(
            "CREATE TABLE article_tags (article_id INTEGER, tag_id INTEGER, assigned_by INTEGER, "
            "PRIMARY KEY (article_id, tag_id))"
        )
        adapter.execute("INSERT INTO articles (title) VALUES ('Hello')")
        return RelationshipManager(loader.load("articles"), adapter)

    def tags(self, adapter):
        return adapter.fetch_all("SELECT tag_id, assigned_by FROM article_tags ORDER BY tag_id")

    def test_on_create_attach_with_pivot_data(self, articles, adapter):
        articles.process_actions(ON_CREATE, 1, {}, user_id=7)
        assert self.tags(adapter) == [{"tag_id": 1, "assigned_by": 7}]

    def test_on_update_sync_from_data(self, articles, adapter):
        articles.process_actions(ON_CREATE, 1, {}, user_id=7)
        articles.process_actions(ON_UPDATE, 1, {"tags_ids": [2, 3]})
        assert [r["tag_id"] for r in self.tags(adapter)] == [2, 3]

    def test_on_update_sync_keeps_matching_string_ids(self, articles, adapter):
        articles.process_actions(ON_CREATE, 1, {}, user_id=7)
        articles.process_actions(ON_UPDATE, 1, {"tags_ids": ["1", "2", "2"]})
        # tag 1 keeps its pivot data, so it was not deleted and re-inserted
        assert self.tags(adapter) == [
            {"tag_id": 1, "assigned_by": 7},
            {"tag_id": 2, "assigned_by": None},
        ]

    def test_on_update_without_ids_leaves_links(self, articles, adapter):
        articles.process_actions(ON_CREATE, 1, {}, user_id=7)
        articles.process_actions(ON_UPDATE, 1, {"title": "Changed"})
        assert [r["tag_id"] for r in self.tags(adapter)] == [1]

    def test_on_delete_detach_all(self, articles, adapter):
        articles.process_actions(ON_CREATE, 1, {}, user_id=7)
        articles.process_actions(ON_DELETE, 1)
        assert self.tags(adapter) == []

    def test_models_without_actions_are_untouched(self, manager, adapter):
        manager.process_actions(ON_CREATE, 1, {"categories_ids": [1]})
        assert pivot_rows(adapter) == []
