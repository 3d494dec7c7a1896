"""Pytest configuration and fixtures."""
import pytest

from pgforge.config_runtime import PostgrestSettings
from pgforge.errors import ConnectionUnavailable, PartialAnalysisFailure
from pgforge.models import Column, ExistingIndex, ExistingPolicy, ExistingTrigger
from pgforge.store import TableFolderStore


@pytest.fixture
def settings():
    """Default PostgREST role and schema names."""
    return PostgrestSettings()


@pytest.fixture
def order_columns():
    """Columns of a typical user-owned table."""
    return [
        Column("id", "UUID", nullable=False, is_primary_key=True),
        Column("user_id", "UUID", nullable=False, is_foreign_key=True,
               references_table="users", references_column="id"),
        Column("status", "VARCHAR"),
        Column("title", "TEXT"),
        Column("amount", "NUMERIC"),
        Column("created_at", "TIMESTAMPTZ"),
        Column("updated_at", "TIMESTAMPTZ"),
        Column("deleted_at", "TIMESTAMPTZ"),
    ]


@pytest.fixture
def project(tmp_path, monkeypatch):
    """Empty project directory as the working directory, with no database configured."""
    monkeypatch.chdir(tmp_path)
    for var in ("PGFORGE_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture
def store(tmp_path):
    return TableFolderStore(tmp_path)


class FakeIntrospector:
    """In-memory stand-in for SchemaIntrospector.

    ``failing`` maps a method name to the exception it should raise.
    """

    def __init__(self, tables=None, policies=None, indexes=None, triggers=None,
                 sizes=None, schema="api", failing=None):
        self.tables = tables or {}
        self.policies = policies or {}
        self.indexes = indexes or {}
        self.triggers = triggers or {}
        self.sizes = sizes or {}
        self.schema = schema
        self.failing = failing or {}
        self.calls = []

    def _call(self, name):
        self.calls.append(name)
        if name in self.failing:
            raise self.failing[name]

    def test_connection(self):
        return "test_connection" not in self.failing

    def list_tables(self):
        self._call("list_tables")
        return sorted(self.tables)

    def analyze_table(self, table):
        self._call("analyze_table")
        return list(self.tables.get(table, []))

    def detect_user_ownership_patterns(self):
        self._call("detect_user_ownership_patterns")
        result = {}
        for table, columns in self.tables.items():
            for col in columns:
                if col.name in ("user_id", "owner_id", "created_by", "author_id") and col.is_foreign_key:
                    result[table] = col.name
                    break
        return result

    def get_table_policies(self, table):
        self._call("get_table_policies")
        return list(self.policies.get(table, []))

    def check_rls_status(self):
        self._call("check_rls_status")
        return {t: bool(self.policies.get(t)) for t in self.tables}

    def get_table_indexes(self, table):
        self._call("get_table_indexes")
        return list(self.indexes.get(table, []))

    def get_table_triggers(self, table):
        self._call("get_table_triggers")
        return list(self.triggers.get(table, []))

    def get_table_size(self, table):
        self._call("get_table_size")
        return self.sizes.get(table)


@pytest.fixture
def fake_db(order_columns):
    """Fake database with orders, users, categories and app_settings tables."""
    return FakeIntrospector(
        tables={
            "orders": order_columns,
            "users": [
                Column("id", "UUID", nullable=False, is_primary_key=True),
                Column("email", "VARCHAR"),
                Column("created_at", "TIMESTAMPTZ"),
            ],
            "categories": [
                Column("id", "INTEGER", nullable=False, is_primary_key=True),
                Column("name", "TEXT"),
            ],
            "app_settings": [
                Column("key", "TEXT", nullable=False, is_primary_key=True),
                Column("value", "JSONB"),
            ],
        },
        policies={
            "orders": [ExistingPolicy("orders_select_own", "SELECT", "(user_id = auth.current_user_id())")],
        },
        indexes={
            "orders": [
                ExistingIndex("orders_pkey", ["id"], unique=True, primary=True),
                ExistingIndex("idx_orders_user_id", ["user_id"]),
                ExistingIndex("idx_orders_user_id_created_at", ["user_id", "created_at"]),
            ],
        },
        triggers={
            "orders": [ExistingTrigger("update_orders_timestamp", "BEFORE", ["UPDATE"], "api.update_timestamp_orders()")],
        },
        sizes={"orders": 50 * 1024 * 1024},
    )


@pytest.fixture
def offline_db():
    """Introspector whose every call fails as if the server were down."""
    down = ConnectionUnavailable("Could not connect to postgresql://localhost:5432/app")
    methods = [
        "list_tables", "analyze_table", "detect_user_ownership_patterns", "get_table_policies",
        "check_rls_status", "get_table_indexes", "get_table_triggers", "get_table_size",
    ]
    return FakeIntrospector(failing={m: down for m in methods})


@pytest.fixture
def broken_indexes_db(fake_db):
    """Fake database whose index catalog query fails."""
    fake_db.failing["get_table_indexes"] = PartialAnalysisFailure("index", "permission denied for pg_index")
    return fake_db
