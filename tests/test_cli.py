"""End-to-end CLI tests through click's CliRunner."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from pgforge.cli import cli
from pgforge.models import Column


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def offline(project, monkeypatch):
    """No database configured anywhere."""
    monkeypatch.setattr("pgforge.commands.common.open_introspector", lambda *args, **kwargs: None)
    return project


@pytest.fixture
def online(project, fake_db, monkeypatch):
    """Commands see the fake database."""
    monkeypatch.setattr("pgforge.commands.common.open_introspector", lambda *args, **kwargs: fake_db)
    return fake_db


def rls_file(table):
    return Path("sql") / "schemas" / table / "rls.sql"


class TestHelp:
    """Help output stays ASCII for CP1252 terminals."""

    @pytest.mark.parametrize(
        "args",
        [
            ["generate", "--help"],
            ["generate", "policy", "--help"],
            ["generate", "function", "--help"],
            ["features", "triggers", "--help"],
            ["features", "indexes", "add", "--help"],
            ["features", "views", "add", "--help"],
            ["setup", "roles", "--help"],
        ],
    )
    def test_help_ascii(self, runner, args):
        result = runner.invoke(cli, args)
        assert result.exit_code == 0
        try:
            result.output.encode("ascii")
        except UnicodeEncodeError as e:
            pytest.fail(f"Non-ASCII character in pgforge {' '.join(args)}: {e}")

    def test_root_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("setup", "generate", "features"):
            assert name in result.output


class TestGeneratePolicy:
    def test_offline_template(self, runner, offline):
        result = runner.invoke(cli, ["generate", "policy", "orders"])
        assert result.exit_code == 0, result.output
        text = rls_file("orders").read_text()
        assert '"orders_custom_access"' in text
        assert "-- pgforge: command: pgforge" in text

    def test_rerun_is_unchanged(self, runner, online):
        runner.invoke(cli, ["generate", "policy", "orders"])
        before = rls_file("orders").read_text()
        result = runner.invoke(cli, ["generate", "policy", "orders"])
        assert result.exit_code == 0
        assert "unchanged" in result.output
        assert rls_file("orders").read_text() == before

    def test_detected_owner(self, runner, online):
        result = runner.invoke(cli, ["generate", "policy", "orders"])
        assert result.exit_code == 0, result.output
        assert "user_id = auth.current_user_id()" in rls_file("orders").read_text()

    def test_dry_run_writes_nothing(self, runner, online):
        result = runner.invoke(cli, ["generate", "policy", "orders", "--dry-run"])
        assert result.exit_code == 0
        assert "DRY RUN" in result.output
        assert 'CREATE POLICY "orders_select_own"' in result.output
        assert not Path("sql").exists()

    def test_unknown_policy_name(self, runner, online):
        result = runner.invoke(cli, ["generate", "policy", "orders", "--policy", "orders_nope"])
        assert result.exit_code == 2
        assert "orders_select_own" in result.output
        assert not rls_file("orders").exists()

    def test_named_update(self, runner, online):
        runner.invoke(cli, ["generate", "policy", "orders"])
        result = runner.invoke(
            cli, ["generate", "policy", "orders", "--policy", "orders_select_own", "--owner-column", "created_by"]
        )
        assert result.exit_code == 0, result.output
        text = rls_file("orders").read_text()
        assert "created_by = auth.current_user_id()" in text
        assert text.count("CREATE POLICY") == 5

    def test_invalid_table_name(self, runner, offline):
        result = runner.invoke(cli, ["generate", "policy", "orders-2024"])
        assert result.exit_code == 3
        assert "Table name" in result.output

    def test_table_required(self, runner, offline):
        result = runner.invoke(cli, ["generate", "policy"])
        assert result.exit_code == 2
        assert "--all-tables" in result.output

    def test_all_tables(self, runner, online):
        result = runner.invoke(cli, ["generate", "policy", "--all-tables"])
        assert result.exit_code == 0, result.output
        for table in ("app_settings", "categories", "orders", "users"):
            assert rls_file(table).is_file()
        assert "_admin_only" in rls_file("app_settings").read_text()

    def test_all_tables_partial_failure(self, runner, online, monkeypatch):
        """One failing table exits 1; the others are still written."""
        analyze = online.analyze_table

        def flaky(table):
            if table == "users":
                raise RuntimeError("relation is locked")
            return analyze(table)

        monkeypatch.setattr(online, "analyze_table", flaky)
        result = runner.invoke(cli, ["generate", "policy", "--all-tables"])
        assert result.exit_code == 1
        assert "PARTIAL" in result.output
        assert rls_file("orders").is_file()
        assert not rls_file("users").exists()

    def test_all_tables_rejects_unusable_catalog_names(self, runner, online):
        """Catalog names that need quoting fail their own table only."""
        online.tables["order-items"] = [Column("id", "INTEGER", is_primary_key=True)]
        online.tables["Invoices"] = [Column("id", "INTEGER", is_primary_key=True)]
        result = runner.invoke(cli, ["generate", "policy", "--all-tables"])
        assert result.exit_code == 1
        assert "PARTIAL" in result.output
        assert not (Path("sql") / "schemas" / "order-items").exists()
        assert not (Path("sql") / "schemas" / "Invoices").exists()
        assert rls_file("orders").is_file()

        runner.invoke(cli, ["generate", "policy", "--all-tables"])
        assert rls_file("orders").read_text().count('CREATE POLICY "orders_select_own"') == 1

    def test_disable_rls_prompts(self, runner, offline):
        result = runner.invoke(cli, ["generate", "policy", "orders", "--disable-rls"], input="n\n")
        assert result.exit_code == 0
        assert not rls_file("orders").exists()

        result = runner.invoke(cli, ["generate", "policy", "orders", "--disable-rls", "--force"])
        assert result.exit_code == 0
        assert "DISABLE ROW LEVEL SECURITY" in rls_file("orders").read_text()


class TestGenerateFunction:
    def test_auth_helpers_are_schema_wide(self, runner, offline):
        result = runner.invoke(cli, ["generate", "function", "auth", "--type", "auth"])
        assert result.exit_code == 0, result.output
        assert "auth.current_user_id" in (Path("sql") / "schemas" / "functions.sql").read_text()

    def test_crud_from_name(self, runner, online):
        result = runner.invoke(cli, ["generate", "function", "create_orders"])
        assert result.exit_code == 0, result.output
        text = (Path("sql") / "schemas" / "orders" / "functions.sql").read_text()
        assert "api.delete_orders" in text

    def test_custom_params_validated(self, runner, offline):
        result = runner.invoke(cli, ["generate", "function", "archive_order", "--params", "p_id"])
        assert result.exit_code == 3


class TestFeatures:
    def test_triggers_add(self, runner, offline):
        result = runner.invoke(cli, ["features", "triggers", "add", "orders", "--type", "audit"])
        assert result.exit_code == 0, result.output
        text = (Path("sql") / "schemas" / "orders" / "triggers.sql").read_text()
        assert "CREATE TRIGGER audit_orders_changes" in text

    def test_triggers_add_all_folders_skips_bad_folder(self, runner, offline):
        """Table folders are checked like catalog names."""
        (Path("sql") / "schemas" / "orders").mkdir(parents=True)
        (Path("sql") / "schemas" / "order-items").mkdir()
        result = runner.invoke(cli, ["features", "triggers", "add", "--all-tables", "--type", "audit"])
        assert result.exit_code == 1
        assert (Path("sql") / "schemas" / "orders" / "triggers.sql").is_file()
        assert not (Path("sql") / "schemas" / "order-items" / "triggers.sql").exists()

    def test_triggers_suggest(self, runner, online):
        result = runner.invoke(cli, ["features", "triggers", "suggest", "orders", "--force"])
        assert result.exit_code == 0, result.output
        assert "TRIGGER SUGGESTIONS" in result.output
        text = (Path("sql") / "schemas" / "orders" / "triggers.sql").read_text()
        assert "SET deleted_at = NOW()" in text
        assert "CREATE TRIGGER update_orders_timestamp" not in text

    def test_triggers_analyze(self, runner, online):
        result = runner.invoke(cli, ["features", "triggers", "analyze", "orders"])
        assert result.exit_code == 0, result.output
        assert "RLS enabled, 1 policies" in result.output
        assert "present" in result.output
        assert "update_orders_timestamp" in result.output

    def test_indexes_add_columns(self, runner, offline):
        result = runner.invoke(cli, ["features", "indexes", "add", "orders", "--columns", "status,created_at"])
        assert result.exit_code == 0, result.output
        text = (Path("sql") / "schemas" / "orders" / "indexes.sql").read_text()
        assert "idx_orders_status_created_at" in text

    def test_indexes_add_prompts_for_columns(self, runner, offline):
        result = runner.invoke(cli, ["features", "indexes", "add", "orders"], input="user_id\n")
        assert result.exit_code == 0, result.output
        assert "idx_orders_user_id" in (Path("sql") / "schemas" / "orders" / "indexes.sql").read_text()

    def test_indexes_analyze(self, runner, online):
        result = runner.invoke(cli, ["features", "indexes", "analyze", "orders"])
        assert result.exit_code == 0, result.output
        assert (Path("sql") / "schemas" / "orders" / "analysis.sql").is_file()
        assert "idx_orders_user_id_created_at" in result.output

    def test_performance(self, runner, online):
        result = runner.invoke(cli, ["features", "indexes", "performance", "orders"])
        assert result.exit_code == 0, result.output
        assert "50.0 MB" in result.output

    def test_performance_needs_database(self, runner, offline):
        result = runner.invoke(cli, ["features", "indexes", "performance"])
        assert result.exit_code == 3
        assert "needs a database connection" in result.output

    def test_views_add_filtered(self, runner, offline):
        result = runner.invoke(
            cli, ["features", "views", "add", "orders", "--template", "filtered", "--where", "deleted_at IS NULL"]
        )
        assert result.exit_code == 0, result.output
        text = (Path("sql") / "schemas" / "orders" / "views.sql").read_text()
        assert "CREATE OR REPLACE VIEW api.orders_filtered" in text
        assert "WHERE deleted_at IS NULL;" in text

    def test_views_add_security_needs_database(self, runner, offline):
        result = runner.invoke(cli, ["features", "views", "add", "users", "--template", "security"])
        assert result.exit_code != 0
        assert not (Path("sql") / "schemas" / "users" / "views.sql").exists()

    def test_views_add_name_with_all_tables(self, runner, offline):
        result = runner.invoke(cli, ["features", "views", "add", "--all-tables", "--name", "v"])
        assert result.exit_code == 2

    def test_views_suggest(self, runner, online):
        result = runner.invoke(cli, ["features", "views", "suggest", "orders", "--force"])
        assert result.exit_code == 0, result.output
        assert "VIEW SUGGESTIONS" in result.output
        assert "orders_details" in result.output
        text = (Path("sql") / "schemas" / "orders" / "views.sql").read_text()
        assert "to_jsonb(user_ref) AS user_data" in text

    def test_views_common(self, runner, offline):
        result = runner.invoke(cli, ["features", "views", "common", "--schema", "public"])
        assert result.exit_code == 0, result.output
        text = (Path("sql") / "schemas" / "views.sql").read_text()
        assert "CREATE OR REPLACE VIEW public.table_sizes" in text


class TestSetup:
    def test_roles(self, runner, project):
        result = runner.invoke(cli, ["setup", "roles"])
        assert result.exit_code == 0, result.output
        text = (Path("sql") / "roles.sql").read_text()
        assert "CREATE ROLE authenticator LOGIN NOINHERIT" in text

    def test_schema_option(self, runner, project):
        result = runner.invoke(cli, ["setup", "roles", "--schema", "v1", "--no-authenticator"])
        assert result.exit_code == 0
        text = (Path("sql") / "roles.sql").read_text()
        assert "GRANT USAGE ON SCHEMA v1" in text
        assert "TO authenticator" not in text
        assert "CREATE ROLE authenticator" not in text
