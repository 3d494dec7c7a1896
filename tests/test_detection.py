"""Tests for pattern, trigger, index, view and function-type detection."""

import pytest

from pgforge.detection import (
    analyze_table_for_triggers,
    detect_function_type,
    detect_performance_issues,
    detect_policy_pattern,
    drop_existing,
    filter_performance_only,
    find_ownership_column,
    find_redundant_indexes,
    index_name_for,
    missing_trigger_suggestions,
    recommend_indexes,
    suggest_views,
)
from pgforge.models import (
    Column,
    ExistingIndex,
    FunctionType,
    Impact,
    IndexRecommendation,
    IndexType,
    PatternKind,
    TriggerType,
    ViewTemplate,
)


class TestPolicyPattern:
    """Classification precedence for access patterns."""

    def test_explicit_pattern_wins(self, order_columns):
        decision = detect_policy_pattern("orders", order_columns, explicit=PatternKind.ADMIN_ONLY)
        assert decision.kind == PatternKind.ADMIN_ONLY
        assert decision.reason == "Explicitly specified by user"

    def test_explicit_user_specific_finds_owner(self, order_columns):
        decision = detect_policy_pattern("orders", order_columns, explicit=PatternKind.USER_SPECIFIC)
        assert decision.owner_column == "user_id"

    def test_ownership_map_beats_column_scan(self, order_columns):
        decision = detect_policy_pattern("orders", order_columns, {"orders": "created_by"})
        assert decision.kind == PatternKind.USER_SPECIFIC
        assert decision.owner_column == "created_by"
        assert decision.reason == "Detected ownership column: created_by"

    def test_ownership_column_scan(self):
        columns = [Column("id", "INTEGER"), Column("author_id", "BIGINT")]
        decision = detect_policy_pattern("posts", columns)
        assert decision.owner_column == "author_id"
        assert decision.reason == "Found ownership column: author_id"

    def test_owner_column_needs_uuid_or_integer(self):
        """A text user_id is not an ownership reference."""
        assert find_ownership_column([Column("user_id", "TEXT")]) is None

    def test_first_ownership_column_in_table_order(self):
        columns = [Column("created_by", "UUID"), Column("user_id", "UUID")]
        assert find_ownership_column(columns).name == "created_by"

    @pytest.mark.parametrize("table", ["admin_users", "app_config", "user_settings", "system_flags"])
    def test_admin_tables(self, table):
        assert detect_policy_pattern(table, []).kind == PatternKind.ADMIN_ONLY

    @pytest.mark.parametrize("table", ["product_category", "tags", "order_status", "country_codes", "currency_rates"])
    def test_lookup_tables(self, table):
        decision = detect_policy_pattern(table, [])
        assert decision.kind == PatternKind.PUBLIC_READ
        assert decision.reason == "Reference/lookup table detected"

    def test_admin_reason(self):
        decision = detect_policy_pattern("admin_settings", [Column("key", "TEXT")])
        assert decision.kind == PatternKind.ADMIN_ONLY
        assert "Administrative/configuration table" in decision.reason

    def test_lowercase_type_names(self):
        """information_schema reports types in lower case."""
        decision = detect_policy_pattern("orders", [Column("user_id", "uuid")])
        assert decision.kind == PatternKind.USER_SPECIFIC
        assert decision.owner_column == "user_id"

    def test_admin_checked_before_lookup(self):
        """'system_status' matches both; administrative wins."""
        assert detect_policy_pattern("system_status", []).kind == PatternKind.ADMIN_ONLY

    def test_default_requires_manual_condition(self):
        decision = detect_policy_pattern("notes", [Column("body", "TEXT")])
        assert decision.kind == PatternKind.USER_SPECIFIC
        assert decision.owner_column is None
        assert decision.requires_manual_condition

    def test_custom_with_condition(self):
        decision = detect_policy_pattern("notes", [], explicit=PatternKind.CUSTOM, condition="is_public")
        assert not decision.requires_manual_condition


class TestTriggerSuggestions:
    def test_timestamps_and_soft_delete(self, order_columns):
        """Rules accumulate rather than pick one."""
        names = {s.name for s in analyze_table_for_triggers("orders", order_columns)}
        assert {"auto_update_timestamp", "timestamp_management", "soft_delete_protection"} <= names

    def test_reasons_are_recorded(self, order_columns):
        by_type = {s.type: s for s in analyze_table_for_triggers("orders", order_columns)}
        assert by_type[TriggerType.TIMESTAMP].reason == "Found updated_at column"

    def test_no_columns_no_suggestions(self):
        assert analyze_table_for_triggers("notes", [Column("body", "TEXT")]) == []

    def test_existing_triggers_filtered(self, order_columns):
        suggestions = analyze_table_for_triggers("orders", order_columns)
        remaining = missing_trigger_suggestions(suggestions, ["update_orders_timestamp"], "orders")
        assert TriggerType.TIMESTAMP not in {s.type for s in remaining}
        assert TriggerType.SOFT_DELETE in {s.type for s in remaining}


class TestIndexRecommendations:
    def test_foreign_key_is_high_impact(self, order_columns):
        recs = {r.index_name: r for r in recommend_indexes("orders", order_columns)}
        assert recs["idx_orders_user_id"].impact == Impact.HIGH

    def test_full_text_search_uses_gin(self, order_columns):
        recs = {r.index_name: r for r in recommend_indexes("orders", order_columns)}
        assert recs["idx_orders_title_search"].index_type == IndexType.GIN

    def test_names_unique(self, order_columns):
        names = [r.index_name for r in recommend_indexes("orders", order_columns)]
        assert len(names) == len(set(names))

    def test_boolean_status_gets_partial_index(self):
        recs = recommend_indexes("posts", [Column("is_published", "BOOLEAN")])
        assert recs[0].partial_condition == "is_published = true"

    def test_performance_only_filter(self):
        recs = [
            IndexRecommendation("a", ("a",), impact=Impact.LOW),
            IndexRecommendation("b", ("b",), impact=Impact.HIGH),
            IndexRecommendation("c", ("c",), impact=Impact.CRITICAL),
            IndexRecommendation("d", ("d",)),
        ]
        assert [r.index_name for r in filter_performance_only(recs)] == ["b", "c"]

    def test_drop_existing_by_name_and_columns(self):
        recs = [
            IndexRecommendation("idx_t_a", ("a",)),
            IndexRecommendation("idx_t_b", ("b",)),
            IndexRecommendation("idx_t_c", ("c",)),
        ]
        existing = [ExistingIndex("idx_t_a", ["x"]), ExistingIndex("t_b_key", ["b"])]
        assert [r.index_name for r in drop_existing(recs, existing)] == ["idx_t_c"]

    def test_index_name_truncated(self):
        name = index_name_for("t" * 40, ["c" * 40])
        assert len(name) == 63

    def test_redundant_prefix(self, fake_db):
        redundant = find_redundant_indexes(fake_db.indexes["orders"])
        assert len(redundant) == 1
        assert redundant[0].index_name == "idx_orders_user_id"
        assert redundant[0].covered_by == "idx_orders_user_id_created_at"

    def test_performance_issues(self, order_columns):
        issues = detect_performance_issues("orders", order_columns, [], 50 * 1024 * 1024)
        assert any("50.0 MB" in i for i in issues)
        assert any("Foreign key orders.user_id" in i for i in issues)
        assert any("full-text search" in i for i in issues)


class TestFunctionType:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("user_login", FunctionType.AUTH),
            ("hash_password", FunctionType.AUTH),
            ("create_orders", FunctionType.CRUD),
            ("list_products", FunctionType.CRUD),
            ("validate_email", FunctionType.UTILITY),
            ("send_welcome", FunctionType.UTILITY),
            ("archive_old_rows", FunctionType.CUSTOM),
        ],
    )
    def test_detect(self, name, expected):
        assert detect_function_type(name) == expected

    def test_auth_checked_before_crud(self):
        """'get_verify_token' contains an auth keyword, which takes precedence."""
        assert detect_function_type("get_verify_token") == FunctionType.AUTH


class TestViewSuggestions:
    def test_orders_suggestions(self, order_columns):
        """Rules accumulate: soft delete, foreign key and created_at each add a view."""
        by_name = {v.name: v for v in suggest_views("orders", order_columns)}
        assert set(by_name) == {"orders_active", "orders_details", "orders_daily_stats"}
        assert by_name["orders_active"].where == "deleted_at IS NULL"
        assert by_name["orders_details"].reason == "Foreign keys: user_id -> users"

    def test_joined_view_folds_reference_into_json(self, order_columns):
        view = next(v for v in suggest_views("orders", order_columns) if v.template == ViewTemplate.JOINED)
        assert view.columns == ("orders.*", "to_jsonb(user_ref) AS user_data")
        assert view.joins[0].condition == "orders.user_id = user_ref.id"

    def test_security_view_hides_sensitive_columns(self):
        columns = [Column("id", "UUID"), Column("email", "TEXT"), Column("password_hash", "TEXT")]
        view = suggest_views("accounts", columns)[0]
        assert view.template == ViewTemplate.SECURITY
        assert view.name == "accounts_public"
        assert view.columns == ("id", "email")
        assert view.reason == "Hides sensitive columns: password_hash"

    def test_is_active_flag_needs_boolean(self):
        assert suggest_views("plans", [Column("is_active", "TEXT")]) == []
        view = suggest_views("plans", [Column("is_active", "BOOLEAN")])[0]
        assert view.where == "is_active"

    def test_no_columns_no_suggestions(self):
        assert suggest_views("notes", [Column("body", "TEXT")]) == []

    def test_over_long_names_dropped(self):
        table = "t" * 60
        assert suggest_views(table, [Column("deleted_at", "TIMESTAMPTZ")]) == []
