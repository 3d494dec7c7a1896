"""Index DDL (``indexes.sql``) and index analysis queries (``analysis.sql``)."""

from pgforge.config_runtime import PostgrestSettings
from pgforge.models import (
    GeneratedArtifact,
    IdentityKey,
    IndexRecommendation,
    ObjectKind,
    SQLFragment,
)

from .base import fragment, qualified, sql_literal


class IndexGenerator:
    """Render index recommendations as CREATE INDEX + COMMENT ON INDEX pairs."""

    def __init__(self, settings: PostgrestSettings):
        self.settings = settings

    def generate(
        self, table: str, recommendations: list[IndexRecommendation], schema: str | None = None
    ) -> GeneratedArtifact:
        schema = schema or self.settings.schema
        artifact = GeneratedArtifact(kind="indexes", title=f"Indexes for {qualified(schema, table)}")
        for rec in recommendations:
            artifact.fragments.extend(self.render(table, rec, schema))
        return artifact

    def render(self, table: str, rec: IndexRecommendation, schema: str) -> list[SQLFragment]:
        key = IdentityKey(ObjectKind.INDEX, rec.index_name)
        impact = rec.impact.value if rec.impact else "UNKNOWN"
        unique = "UNIQUE " if rec.unique else ""
        where = f" WHERE {rec.partial_condition}" if rec.partial_condition else ""
        comment_lines = [
            f"Index: {rec.index_name}",
            f"Columns: {', '.join(rec.columns)}",
            f"Type: {rec.index_type.value.upper()}",
            f"Reason: {rec.reason}",
            f"Performance Impact: {impact}",
        ]
        create = fragment(
            comment_lines,
            f"CREATE {unique}INDEX CONCURRENTLY IF NOT EXISTS {rec.index_name}\n"
            f"    ON {qualified(schema, table)} USING {rec.index_type.value} ({', '.join(rec.columns)}){where}",
            key=key,
        )
        describe = fragment(
            None,
            f"COMMENT ON INDEX {qualified(schema, rec.index_name)} IS "
            f"{sql_literal(f'{rec.reason} (Impact: {impact})')}",
            key=key,
            attached=True,
        )
        return [create, describe]


def analysis_queries(table: str, schema: str) -> GeneratedArtifact:
    """Diagnostic SELECTs for an existing table's indexes."""
    t = sql_literal(table)
    s = sql_literal(schema)
    fragments = [
        fragment(
            f"Existing indexes on {schema}.{table}",
            "SELECT indexname, indexdef\n"
            "FROM pg_indexes\n"
            f"WHERE schemaname = {s} AND tablename = {t}\n"
            "ORDER BY indexname",
        ),
        fragment(
            "Index usage statistics",
            "SELECT indexrelname AS index_name, idx_scan, idx_tup_read, idx_tup_fetch\n"
            "FROM pg_stat_user_indexes\n"
            f"WHERE schemaname = {s} AND relname = {t}\n"
            "ORDER BY idx_scan DESC",
        ),
        fragment(
            "Unused indexes (never scanned since statistics reset)",
            "SELECT indexrelname AS index_name, pg_size_pretty(pg_relation_size(indexrelid)) AS size\n"
            "FROM pg_stat_user_indexes\n"
            f"WHERE schemaname = {s} AND relname = {t} AND idx_scan = 0",
        ),
        fragment(
            "Table and index sizes",
            "SELECT pg_size_pretty(pg_table_size(c.oid)) AS table_size,\n"
            "       pg_size_pretty(pg_indexes_size(c.oid)) AS indexes_size,\n"
            "       pg_size_pretty(pg_total_relation_size(c.oid)) AS total_size\n"
            "FROM pg_class c\n"
            "JOIN pg_namespace n ON n.oid = c.relnamespace\n"
            f"WHERE n.nspname = {s} AND c.relname = {t}",
        ),
        fragment(
            "Sequential vs index scan ratio (high seq_scan on large tables means missing indexes)",
            "SELECT seq_scan, idx_scan,\n"
            "       CASE WHEN seq_scan + COALESCE(idx_scan, 0) = 0 THEN NULL\n"
            "            ELSE round(100.0 * COALESCE(idx_scan, 0) / (seq_scan + COALESCE(idx_scan, 0)), 2)\n"
            "       END AS index_scan_pct,\n"
            "       n_live_tup\n"
            "FROM pg_stat_user_tables\n"
            f"WHERE schemaname = {s} AND relname = {t}",
        ),
    ]
    return GeneratedArtifact(
        kind="analysis", fragments=fragments, title=f"Index analysis queries for {schema}.{table}"
    )
