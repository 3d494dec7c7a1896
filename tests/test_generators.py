"""Tests for the SQL generators."""

import pytest

from pgforge.config_runtime import PostgrestSettings
from pgforge.errors import GenerationError
from pgforge.generators import (
    FunctionGenerator,
    FunctionSpec,
    IndexGenerator,
    PolicyGenerator,
    RoleGenerator,
    TriggerGenerator,
    ViewGenerator,
    analysis_queries,
    resolve_trigger_types,
    select_sql,
    trigger_name_for,
)
from pgforge.generators.base import fragment
from pgforge.models import (
    Column,
    IdentityKey,
    IndexRecommendation,
    IndexType,
    ObjectKind,
    PatternDecision,
    PatternKind,
    TriggerType,
    ViewDefinition,
    ViewJoin,
    ViewTemplate,
)
from pgforge.sqlblocks import identity_keys


def keys_roundtrip(artifact):
    """Keys the block scanner finds in the rendered text equal the generator's keys."""
    return identity_keys(artifact.text) == artifact.identity_keys


class TestFragment:
    def test_quoted_name_keeps_case(self):
        """The key matches what a parse of the written file reports."""
        frag = fragment(
            None,
            'CREATE POLICY "Orders_select_own" ON api.orders FOR SELECT USING (true)',
            key=IdentityKey(ObjectKind.POLICY, "Orders_select_own"),
        )
        assert frag.key == IdentityKey(ObjectKind.POLICY, "Orders_select_own")
        assert identity_keys(frag.text) == [frag.key]

    def test_unquoted_name_folds(self):
        frag = fragment(None, "CREATE INDEX IDX_Orders_A ON api.orders (a)", key=IdentityKey(ObjectKind.INDEX, "IDX_Orders_A"))
        assert frag.key == IdentityKey(ObjectKind.INDEX, "idx_orders_a")

    def test_companion_takes_key_of_its_object(self):
        frag = fragment(
            None,
            "DROP TRIGGER IF EXISTS t_orders ON api.orders",
            key=IdentityKey(ObjectKind.TRIGGER, "t_orders"),
            attached=True,
        )
        assert frag.key == IdentityKey(ObjectKind.TRIGGER, "t_orders")
        assert frag.attached

    def test_statement_without_declaration_keeps_given_key(self):
        frag = fragment(None, "GRANT SELECT ON api.Orders TO web_anon", key=IdentityKey(ObjectKind.RLS, "api.Orders"))
        assert frag.key == IdentityKey(ObjectKind.RLS, "api.orders")
        assert frag.text == "GRANT SELECT ON api.Orders TO web_anon;\n"


class TestPolicyGenerator:
    def test_user_specific(self, settings):
        decision = PatternDecision(PatternKind.USER_SPECIFIC, "Found ownership column: user_id", "user_id")
        art = PolicyGenerator(settings).generate("orders", decision)
        assert art.names(ObjectKind.POLICY) == [
            "orders_select_own", "orders_insert_own", "orders_update_own", "orders_delete_own", "orders_admin_all",
        ]
        assert "user_id = auth.current_user_id()" in art.text
        assert "ALTER TABLE api.orders ENABLE ROW LEVEL SECURITY;" in art.text
        assert "GRANT SELECT ON api.orders TO web_anon;" in art.text
        assert keys_roundtrip(art)

    def test_public_read_with_condition(self, settings):
        decision = PatternDecision(PatternKind.PUBLIC_READ, "lookup", condition="is_visible")
        art = PolicyGenerator(settings).generate("categories", decision)
        assert "USING (is_visible)" in art.text
        assert "categories_public_select" in art.names()

    def test_admin_only_uses_configured_role(self):
        settings = PostgrestSettings(admin_role="superuser")
        decision = PatternDecision(PatternKind.ADMIN_ONLY, "admin")
        art = PolicyGenerator(settings).generate("app_settings", decision)
        assert art.names(ObjectKind.POLICY) == ["app_settings_admin_only"]
        assert "auth.current_user_role() = 'superuser'" in art.text
        assert "TO web_anon" not in art.text

    def test_manual_condition_denies_by_default(self, settings):
        decision = PatternDecision(PatternKind.USER_SPECIFIC, "Default pattern for user data tables")
        art = PolicyGenerator(settings).generate("notes", decision)
        assert art.names(ObjectKind.POLICY) == ["notes_custom_access", "notes_admin_all"]
        assert "USING (false)" in art.text
        assert "no ownership column was found" in art.text

    def test_custom_condition(self, settings):
        decision = PatternDecision(PatternKind.CUSTOM, "custom", condition="team_id = auth.team_id()")
        art = PolicyGenerator(settings).generate("docs", decision, schema="public")
        assert "USING (team_id = auth.team_id())" in art.text
        assert "ON public.docs" in art.text

    def test_rls_toggle(self, settings):
        art = PolicyGenerator(settings).rls_toggle_artifact("orders", False)
        assert "DISABLE ROW LEVEL SECURITY" in art.text
        assert art.identity_keys == [IdentityKey(ObjectKind.RLS, "api.orders")]


class TestTriggerGenerator:
    def test_function_and_trigger_pairs(self, settings):
        art = TriggerGenerator(settings).generate("orders", [TriggerType.TIMESTAMP])
        assert art.identity_keys == [
            IdentityKey(ObjectKind.FUNCTION, "api.update_timestamp_orders"),
            IdentityKey(ObjectKind.TRIGGER, "update_orders_timestamp"),
        ]
        assert "DROP TRIGGER IF EXISTS update_orders_timestamp ON api.orders;" in art.text
        assert keys_roundtrip(art)

    def test_full_timestamp_supersedes_plain(self):
        assert resolve_trigger_types([TriggerType.TIMESTAMP, TriggerType.TIMESTAMP_FULL]) == [
            TriggerType.TIMESTAMP_FULL
        ]

    def test_audit_creates_log_table_once(self, settings):
        art = TriggerGenerator(settings).generate("orders", [TriggerType.AUDIT, TriggerType.SECURITY])
        assert art.text.count("CREATE SCHEMA IF NOT EXISTS utils") == 1
        assert IdentityKey(ObjectKind.TABLE, "utils.audit_log") in art.identity_keys
        assert IdentityKey(ObjectKind.TABLE, "utils.security_log") in art.identity_keys

    def test_validation_checks_columns(self, settings, order_columns):
        art = TriggerGenerator(settings).generate("orders", [TriggerType.VALIDATION], order_columns)
        assert "amount cannot be negative" in art.text

    def test_soft_delete_uses_primary_key(self, settings):
        columns = [Column("order_no", "INTEGER", is_primary_key=True), Column("deleted_at", "TIMESTAMPTZ")]
        art = TriggerGenerator(settings).generate("orders", [TriggerType.SOFT_DELETE], columns)
        assert "WHERE order_no = OLD.order_no" in art.text

    def test_trigger_name(self):
        assert trigger_name_for(TriggerType.AUDIT, "Orders") == "audit_orders_changes"


class TestIndexGenerator:
    def test_render_with_comment(self, settings):
        rec = IndexRecommendation(
            "idx_orders_status_active", ("status",), IndexType.BTREE, unique=False,
            partial_condition="deleted_at IS NULL", reason="Status filtering",
        )
        art = IndexGenerator(settings).generate("orders", [rec])
        assert "CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_orders_status_active" in art.text
        assert "USING btree (status) WHERE deleted_at IS NULL" in art.text
        assert "-- Performance Impact: UNKNOWN" in art.text
        assert "COMMENT ON INDEX api.idx_orders_status_active IS 'Status filtering (Impact: UNKNOWN)';" in art.text
        assert keys_roundtrip(art)

    def test_unique(self, settings):
        rec = IndexRecommendation("idx_users_email", ("email",), unique=True, reason="r")
        assert "CREATE UNIQUE INDEX" in IndexGenerator(settings).generate("users", [rec]).text

    def test_analysis_queries_have_no_keys(self):
        art = analysis_queries("orders", "api")
        assert art.identity_keys == []
        assert "pg_stat_user_indexes" in art.text
        assert "'orders'" in art.text


class TestFunctionGenerator:
    def test_auth_set(self, settings):
        art = FunctionGenerator(settings).auth_functions()
        names = art.names(ObjectKind.FUNCTION)
        assert "auth.current_user_id" in names
        assert "auth.current_user_role" in names
        assert "auth.is_admin" in names
        assert "GRANT EXECUTE ON FUNCTION auth.current_user_id() TO web_anon;" in art.text
        assert keys_roundtrip(art)

    def test_crud_set(self, settings):
        pk = Column("order_id", "BIGINT", is_primary_key=True)
        art = FunctionGenerator(settings).crud_functions("orders", pk)
        assert art.names(ObjectKind.FUNCTION) == [
            "api.create_orders", "api.get_orders", "api.update_orders", "api.delete_orders",
        ]
        assert "p_order_id BIGINT" in art.text
        assert keys_roundtrip(art)

    @pytest.mark.parametrize(
        "name,needle",
        [
            ("validate_email", "@"),
            ("format_slug", "regexp_replace"),
            ("generate_token", "gen_random_bytes"),
        ],
    )
    def test_utility_templates(self, settings, name, needle):
        art = FunctionGenerator(settings).utility_function(name)
        assert needle in art.text
        assert art.names() == [f"api.{name}"]

    def test_custom_skeleton(self, settings):
        art = FunctionGenerator(settings).custom_function(
            "archive_order", "p_id UUID, p_note TEXT DEFAULT NULL", "BOOLEAN", security_definer=True
        )
        assert "RETURNS BOOLEAN" in art.text
        assert "SECURITY DEFINER" in art.text
        assert "COMMENT ON FUNCTION api.archive_order(UUID, TEXT)" in art.text

    def test_unsupported_language(self, settings):
        with pytest.raises(GenerationError):
            FunctionGenerator(settings).custom_function("f", language="plpython3u")

    def test_signature(self):
        spec = FunctionSpec("api", "f", "a INTEGER, b TEXT DEFAULT 'x'", "VOID", "", "d")
        assert spec.signature == "api.f(INTEGER, TEXT)"


class TestRoleGenerator:
    def test_roles_and_grants(self, settings):
        art = RoleGenerator(settings).generate()
        assert art.names(ObjectKind.ROLE) == ["web_anon", "authenticated", "admin", "authenticator"]
        assert "GRANT web_anon TO authenticator;" in art.text
        assert "GRANT USAGE ON SCHEMA api TO web_anon" in art.text
        assert keys_roundtrip(art)

    def test_without_authenticator(self, settings):
        art = RoleGenerator(settings).generate(include_authenticator=False)
        assert "authenticator" not in art.names(ObjectKind.ROLE)
        assert "TO authenticator" not in art.text


class TestViewGenerator:
    def test_plain_view(self, settings):
        view = ViewDefinition("orders_active", "orders", ViewTemplate.FILTERED, where="deleted_at IS NULL")
        art = ViewGenerator(settings).generate("orders", [view])
        assert art.identity_keys == [IdentityKey(ObjectKind.VIEW, "api.orders_active")]
        assert "CREATE OR REPLACE VIEW api.orders_active\n    WITH (security_invoker = true" in art.text
        assert "FROM api.orders\nWHERE deleted_at IS NULL;" in art.text
        assert "GRANT SELECT ON api.orders_active TO authenticated;" in art.text
        assert keys_roundtrip(art)

    def test_joins_and_grouping(self):
        view = ViewDefinition(
            "orders_by_user",
            "orders",
            columns=("users.email", "count(*) AS total"),
            joins=(ViewJoin("users", "users", "orders.user_id = users.id", "INNER"),),
            group_by=("users.email",),
            order_by="total DESC",
        )
        sql = select_sql(view, "api")
        assert "INNER JOIN api.users AS users ON orders.user_id = users.id" in sql
        assert sql.endswith("GROUP BY users.email\nORDER BY total DESC")

    def test_materialized_view_with_refresh(self, settings):
        view = ViewDefinition("orders_summary", "orders", ViewTemplate.AGGREGATED, materialized=True)
        art = ViewGenerator(settings).generate("orders", [view])
        assert art.identity_keys == [
            IdentityKey(ObjectKind.VIEW, "api.orders_summary"),
            IdentityKey(ObjectKind.FUNCTION, "api.refresh_orders_summary"),
        ]
        assert art.text.index("DROP MATERIALIZED VIEW IF EXISTS") < art.text.index("CREATE MATERIALIZED VIEW")
        assert "REFRESH MATERIALIZED VIEW api.orders_summary;" in art.text
        assert "GRANT SELECT ON api.orders_summary TO admin;" in art.text
        assert "TO authenticated" not in art.text
        assert keys_roundtrip(art)

    def test_common_views(self, settings):
        art = ViewGenerator(settings).common_views("public")
        assert art.names(ObjectKind.VIEW) == [
            "public.table_info", "public.column_info", "public.table_relationships", "public.table_sizes",
        ]
        assert "WHERE n.nspname = 'public' AND c.relkind = 'r'" in art.text
        assert keys_roundtrip(art)
