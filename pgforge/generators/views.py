"""View DDL (``views.sql``): table views, materialized views and the common catalog views."""

from pgforge.config_runtime import PostgrestSettings
from pgforge.models import (
    GeneratedArtifact,
    IdentityKey,
    ObjectKind,
    SQLFragment,
    ViewDefinition,
)

from .base import fragment, qualified, sql_literal


def select_sql(view: ViewDefinition, schema: str) -> str:
    lines = ["SELECT", ",\n".join(f"    {column}" for column in view.columns)]
    lines.append(f"FROM {qualified(schema, view.base_table)}")
    for join in view.joins:
        lines.append(f"{join.join_type} JOIN {qualified(schema, join.table)} AS {join.alias} ON {join.condition}")
    if view.where:
        lines.append(f"WHERE {view.where}")
    if view.group_by:
        lines.append("GROUP BY " + ", ".join(view.group_by))
    if view.order_by:
        lines.append(f"ORDER BY {view.order_by}")
    return "\n".join(lines)


class ViewGenerator:
    """Render view definitions.

    Plain views are created with ``security_invoker`` so the base table's
    row level security still applies to the caller (PostgreSQL 15+).
    Materialized views cannot do that; they are granted to the admin role
    only and come with a refresh function.
    """

    def __init__(self, settings: PostgrestSettings):
        self.settings = settings

    def generate(
        self, table: str, views: list[ViewDefinition], schema: str | None = None
    ) -> GeneratedArtifact:
        schema = schema or self.settings.schema
        artifact = GeneratedArtifact(kind="views", title=f"Views for {qualified(schema, table)}")
        for view in views:
            artifact.fragments.extend(self.render(view, schema))
        return artifact

    def render(self, view: ViewDefinition, schema: str) -> list[SQLFragment]:
        if view.materialized:
            return self._materialized(view, schema)
        target = qualified(schema, view.name)
        key = IdentityKey(ObjectKind.VIEW, target)
        comment_lines = [f"View: {view.name}", f"Template: {view.template.value}"]
        if view.reason:
            comment_lines.append(f"Reason: {view.reason}")
        return [
            fragment(
                comment_lines,
                f"CREATE OR REPLACE VIEW {target}\n"
                "    WITH (security_invoker = true, security_barrier = true) AS\n"
                f"{select_sql(view, schema)}",
                key=key,
            ),
            fragment(None, f"COMMENT ON VIEW {target} IS {sql_literal(self._describe(view))}", key=key, attached=True),
            fragment(None, f"GRANT SELECT ON {target} TO {self.settings.authenticated_role}"),
        ]

    def _materialized(self, view: ViewDefinition, schema: str) -> list[SQLFragment]:
        target = qualified(schema, view.name)
        key = IdentityKey(ObjectKind.VIEW, target)
        refresh = qualified(schema, f"refresh_{view.name}")
        refresh_key = IdentityKey(ObjectKind.FUNCTION, refresh)
        admin = self.settings.admin_role
        comment_lines = [
            f"Materialized view: {view.name}",
            f"Template: {view.template.value}",
            f"Materialized views ignore row level security; readable by {admin} only",
        ]
        if view.reason:
            comment_lines.insert(2, f"Reason: {view.reason}")
        return [
            fragment(
                f"Recreate materialized view {view.name}",
                f"DROP MATERIALIZED VIEW IF EXISTS {target}",
                key=key,
                attached=True,
            ),
            fragment(comment_lines, f"CREATE MATERIALIZED VIEW {target} AS\n{select_sql(view, schema)}", key=key),
            fragment(
                None,
                f"COMMENT ON MATERIALIZED VIEW {target} IS {sql_literal(self._describe(view))}",
                key=key,
                attached=True,
            ),
            fragment(None, f"GRANT SELECT ON {target} TO {admin}"),
            fragment(
                f"Refresh {view.name}",
                f"CREATE OR REPLACE FUNCTION {refresh}()\n"
                "RETURNS void AS $$\n"
                "BEGIN\n"
                f"    REFRESH MATERIALIZED VIEW {target};\n"
                "END;\n"
                "$$ LANGUAGE plpgsql SECURITY DEFINER",
                key=refresh_key,
            ),
            fragment(None, f"GRANT EXECUTE ON FUNCTION {refresh}() TO {admin}", key=refresh_key, attached=True),
        ]

    @staticmethod
    def _describe(view: ViewDefinition) -> str:
        text = f"{view.template.value.capitalize()} view over {view.base_table}"
        return f"{text}: {view.reason}" if view.reason else text

    def common_views(self, schema: str | None = None) -> GeneratedArtifact:
        """Catalog views describing the exposed schema, for ``sql/schemas/views.sql``."""
        schema = schema or self.settings.schema
        s = sql_literal(schema)
        artifact = GeneratedArtifact(kind="views", title=f"Common views for schema {schema}")
        definitions = [
            (
                "table_info",
                "Tables in the API schema with their RLS state",
                "SELECT\n"
                "    t.tablename AS table_name,\n"
                "    t.rowsecurity AS rls_enabled,\n"
                "    obj_description(c.oid, 'pg_class') AS description\n"
                "FROM pg_tables t\n"
                "JOIN pg_namespace n ON n.nspname = t.schemaname\n"
                "JOIN pg_class c ON c.relname = t.tablename AND c.relnamespace = n.oid\n"
                f"WHERE t.schemaname = {s}",
            ),
            (
                "column_info",
                "Columns of every table in the API schema",
                "SELECT\n"
                "    table_name,\n"
                "    column_name,\n"
                "    data_type,\n"
                "    is_nullable = 'YES' AS nullable,\n"
                "    column_default,\n"
                "    ordinal_position\n"
                "FROM information_schema.columns\n"
                f"WHERE table_schema = {s}",
            ),
            (
                "table_relationships",
                "Foreign keys between tables in the API schema",
                "SELECT\n"
                "    tc.table_name,\n"
                "    kcu.column_name,\n"
                "    ccu.table_name AS foreign_table_name,\n"
                "    ccu.column_name AS foreign_column_name,\n"
                "    tc.constraint_name\n"
                "FROM information_schema.table_constraints tc\n"
                "JOIN information_schema.key_column_usage kcu\n"
                "    ON kcu.constraint_name = tc.constraint_name AND kcu.table_schema = tc.table_schema\n"
                "JOIN information_schema.constraint_column_usage ccu\n"
                "    ON ccu.constraint_name = tc.constraint_name AND ccu.table_schema = tc.table_schema\n"
                f"WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = {s}",
            ),
            (
                "table_sizes",
                "Disk usage and estimated row counts per table",
                "SELECT\n"
                "    c.relname AS table_name,\n"
                "    pg_size_pretty(pg_total_relation_size(c.oid)) AS total_size,\n"
                "    pg_size_pretty(pg_relation_size(c.oid)) AS table_size,\n"
                "    pg_size_pretty(pg_indexes_size(c.oid)) AS indexes_size,\n"
                "    c.reltuples::bigint AS estimated_rows\n"
                "FROM pg_class c\n"
                "JOIN pg_namespace n ON n.oid = c.relnamespace\n"
                f"WHERE n.nspname = {s} AND c.relkind = 'r'",
            ),
        ]
        for name, description, select in definitions:
            target = qualified(schema, name)
            key = IdentityKey(ObjectKind.VIEW, target)
            artifact.fragments.extend(
                [
                    fragment(f"Common view: {name}", f"CREATE OR REPLACE VIEW {target} AS\n{select}", key=key),
                    fragment(None, f"COMMENT ON VIEW {target} IS {sql_literal(description)}", key=key, attached=True),
                    fragment(None, f"GRANT SELECT ON {target} TO {self.settings.authenticated_role}"),
                ]
            )
        return artifact
