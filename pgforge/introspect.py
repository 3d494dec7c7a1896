"""Live schema introspection over psycopg.

Every query runs in its own short-lived connection. Connection failures
surface as ConnectionUnavailable so commands can fall back to templates;
query failures inside a single analysis step surface as
PartialAnalysisFailure.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import psycopg
from psycopg.rows import dict_row

from pgforge.connection import ConnectionInfo, discover_connection
from pgforge.detection.patterns import AccessPatterns
from pgforge.errors import ConnectionUnavailable, PartialAnalysisFailure
from pgforge.models import Column, ExistingIndex, ExistingPolicy, ExistingTrigger
from pgforge.utils.logging import logger

TYPE_MAPPING = {
    "character varying": "VARCHAR",
    "character": "CHAR",
    "text": "TEXT",
    "integer": "INTEGER",
    "bigint": "BIGINT",
    "smallint": "SMALLINT",
    "boolean": "BOOLEAN",
    "uuid": "UUID",
    "timestamp without time zone": "TIMESTAMP",
    "timestamp with time zone": "TIMESTAMPTZ",
    "date": "DATE",
    "time without time zone": "TIME",
    "jsonb": "JSONB",
    "json": "JSON",
    "numeric": "NUMERIC",
    "decimal": "DECIMAL",
    "real": "REAL",
    "double precision": "DOUBLE PRECISION",
    "bytea": "BYTEA",
}


def normalize_data_type(pg_type: str) -> str:
    return TYPE_MAPPING.get(pg_type.lower(), pg_type.upper())


# ============================================================================
# QUERIES
# ============================================================================

LIST_TABLES_SQL = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = %(schema)s AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

COLUMNS_SQL = """
    SELECT
        c.column_name,
        c.data_type,
        c.character_maximum_length,
        c.is_nullable,
        c.column_default,
        bool_or(tc.constraint_type = 'PRIMARY KEY') AS is_primary_key,
        bool_or(tc.constraint_type = 'FOREIGN KEY') AS is_foreign_key,
        bool_or(tc.constraint_type = 'UNIQUE') AS is_unique,
        max(ccu.table_name) FILTER (WHERE tc.constraint_type = 'FOREIGN KEY') AS referenced_table,
        max(ccu.column_name) FILTER (WHERE tc.constraint_type = 'FOREIGN KEY') AS referenced_column
    FROM information_schema.columns c
    LEFT JOIN information_schema.key_column_usage kcu
        ON c.table_name = kcu.table_name
        AND c.column_name = kcu.column_name
        AND c.table_schema = kcu.table_schema
    LEFT JOIN information_schema.table_constraints tc
        ON kcu.constraint_name = tc.constraint_name
        AND kcu.table_schema = tc.table_schema
    LEFT JOIN information_schema.constraint_column_usage ccu
        ON tc.constraint_name = ccu.constraint_name
        AND tc.table_schema = ccu.table_schema
    WHERE c.table_schema = %(schema)s AND c.table_name = %(table)s
    GROUP BY c.column_name, c.data_type, c.character_maximum_length,
             c.is_nullable, c.column_default, c.ordinal_position
    ORDER BY c.ordinal_position
"""

POLICIES_SQL = """
    SELECT policyname, cmd, qual, with_check, roles
    FROM pg_policies
    WHERE schemaname = %(schema)s AND tablename = %(table)s
    ORDER BY policyname
"""

RLS_STATUS_SQL = """
    SELECT tablename, rowsecurity
    FROM pg_tables
    WHERE schemaname = %(schema)s
    ORDER BY tablename
"""

INDEXES_SQL = """
    SELECT
        i.relname AS index_name,
        am.amname AS index_type,
        ix.indisunique AS is_unique,
        ix.indisprimary AS is_primary,
        array_agg(a.attname ORDER BY k.ord) FILTER (WHERE a.attname IS NOT NULL) AS columns
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_am am ON am.oid = i.relam
    CROSS JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord)
    LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
    WHERE n.nspname = %(schema)s AND t.relname = %(table)s
    GROUP BY i.relname, am.amname, ix.indisunique, ix.indisprimary
    ORDER BY i.relname
"""

TRIGGERS_SQL = """
    SELECT
        trigger_name,
        action_timing,
        array_agg(event_manipulation::text ORDER BY event_manipulation) AS events,
        max(action_statement) AS action_statement
    FROM information_schema.triggers
    WHERE event_object_schema = %(schema)s AND event_object_table = %(table)s
    GROUP BY trigger_name, action_timing
    ORDER BY trigger_name
"""

TABLE_SIZE_SQL = """
    SELECT pg_total_relation_size(c.oid) AS size
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = %(schema)s AND c.relname = %(table)s
"""


class SchemaIntrospector:
    """Reads table metadata for one PostgREST schema."""

    def __init__(self, connection: ConnectionInfo, schema: str = "api", connect_timeout: int = 5):
        self.connection = connection
        self.schema = schema
        self.connect_timeout = connect_timeout

    @contextmanager
    def get_connection(self) -> Iterator[psycopg.Connection]:
        """Context manager for a dict_row connection.

        Raises ConnectionUnavailable when the server cannot be reached.
        """
        try:
            conn = psycopg.connect(
                self.connection.conninfo,
                row_factory=dict_row,
                connect_timeout=self.connect_timeout,
                autocommit=True,
            )
        except psycopg.OperationalError as e:
            logger.debug(f"PostgreSQL connection error: {e}")
            raise ConnectionUnavailable(
                f"Could not connect to {self.connection.redacted()}: {e}"
            ) from e
        try:
            yield conn
        finally:
            conn.close()

    def _fetch(self, sql: str, category: str = "schema", **params) -> list[dict]:
        params.setdefault("schema", self.schema)
        with self.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    return cur.fetchall()
            except psycopg.Error as e:
                raise PartialAnalysisFailure(category, e) from e

    def test_connection(self) -> bool:
        try:
            self._fetch("SELECT 1 AS ok")
        except ConnectionUnavailable:
            return False
        return True

    # ------------------------------------------------------------------
    # tables and columns
    # ------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        return [row["table_name"] for row in self._fetch(LIST_TABLES_SQL)]

    def analyze_table(self, table: str) -> list[Column]:
        """Columns of ``table`` in ordinal order; empty when the table does not exist."""
        rows = self._fetch(COLUMNS_SQL, "column", table=table)
        columns = [
            Column(
                name=row["column_name"],
                type=normalize_data_type(row["data_type"]),
                nullable=row["is_nullable"] == "YES",
                is_primary_key=bool(row["is_primary_key"]),
                is_foreign_key=bool(row["is_foreign_key"]),
                is_unique=bool(row["is_unique"]),
                references_table=row["referenced_table"],
                references_column=row["referenced_column"],
                default=row["column_default"],
                max_length=row["character_maximum_length"],
            )
            for row in rows
        ]
        logger.debug(f"Found {len(columns)} columns in {self.schema}.{table}")
        return columns

    def detect_user_ownership_patterns(self) -> dict[str, str]:
        """Map table -> ownership column, for ownership columns that are foreign keys."""
        patterns: dict[str, str] = {}
        for table in self.list_tables():
            for col in self.analyze_table(table):
                if col.name in AccessPatterns.OWNERSHIP_COLUMNS and col.is_foreign_key:
                    patterns[table] = col.name
                    break
        return patterns

    # ------------------------------------------------------------------
    # existing objects
    # ------------------------------------------------------------------

    def get_table_policies(self, table: str) -> list[ExistingPolicy]:
        return [
            ExistingPolicy(
                name=row["policyname"],
                command=row["cmd"],
                using=row["qual"],
                with_check=row["with_check"],
                roles=list(row["roles"] or []),
            )
            for row in self._fetch(POLICIES_SQL, "policy", table=table)
        ]

    def check_rls_status(self) -> dict[str, bool]:
        return {row["tablename"]: bool(row["rowsecurity"]) for row in self._fetch(RLS_STATUS_SQL, "rls")}

    def get_table_indexes(self, table: str) -> list[ExistingIndex]:
        return [
            ExistingIndex(
                name=row["index_name"],
                columns=list(row["columns"] or []),
                index_type=row["index_type"],
                unique=bool(row["is_unique"]),
                primary=bool(row["is_primary"]),
            )
            for row in self._fetch(INDEXES_SQL, "index", table=table)
        ]

    def get_table_triggers(self, table: str) -> list[ExistingTrigger]:
        triggers = []
        for row in self._fetch(TRIGGERS_SQL, "trigger", table=table):
            statement = row["action_statement"] or ""
            function = None
            if "FUNCTION" in statement.upper():
                function = statement.split()[-1].rstrip("()") or None
            triggers.append(
                ExistingTrigger(
                    name=row["trigger_name"],
                    timing=row["action_timing"],
                    events=list(row["events"] or []),
                    function=function,
                )
            )
        return triggers

    def get_table_size(self, table: str) -> int | None:
        rows = self._fetch(TABLE_SIZE_SQL, "size", table=table)
        return rows[0]["size"] if rows else None


def open_introspector(
    root: str = ".",
    schema: str = "api",
    database_url: str | None = None,
    connect_timeout: int = 5,
) -> SchemaIntrospector | None:
    """Introspector for the discovered connection, or None when none is configured."""
    info = discover_connection(root, database_url)
    if info is None:
        return None
    missing = info.validate()
    if missing:
        logger.warning(f"Incomplete database configuration from {info.source}: missing {', '.join(missing)}")
        return None
    return SchemaIntrospector(info, schema=schema, connect_timeout=connect_timeout)
