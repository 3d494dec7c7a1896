"""Trigger, index and view features derived from schema analysis."""

import click
from rich.table import Table

from pgforge.models import IndexType, TriggerType, ViewTemplate
from pgforge.utils.error_handler import handle_exceptions

TRIGGER_CHOICES = [t.value for t in TriggerType]
INDEX_TYPE_CHOICES = [t.value for t in IndexType]
VIEW_TEMPLATE_CHOICES = [t.value for t in ViewTemplate]


@click.group()
@click.help_option("-h", "--help")
def features():
    """Add triggers, indexes and views to tables in sql/schemas/.

    Triggers go to sql/schemas/<table>/triggers.sql, indexes to
    indexes.sql, index diagnostics to analysis.sql and views to
    views.sql. Every subgroup works from templates without a database;
    --dynamic analyzes the live columns instead.

    \b
    SUBGROUPS:
      triggers: add, suggest, analyze
      indexes:  add, suggest, analyze, performance
      views:    add, suggest, common

    \b
    EXAMPLES:
      pgforge features triggers add orders --type audit --type timestamp
      pgforge features triggers add --all-tables --dynamic
      pgforge features indexes add orders --columns customer_id,created_at
      pgforge features indexes add orders --dynamic --performance-only
      pgforge features indexes performance
      pgforge features views add orders --template filtered --where "deleted_at IS NULL"
    """
    pass


def _type_list(values) -> list[TriggerType]:
    return [TriggerType(v) for v in values]


def _offer(question: str, force: bool, dry_run: bool) -> bool:
    """Whether suggest should go on to generate what it showed."""
    if force or dry_run:
        return True
    return click.confirm(question, default=False)


# ============================================================================
# TRIGGERS
# ============================================================================


@features.group()
@click.help_option("-h", "--help")
def triggers():
    """Timestamp, audit, validation, security and soft delete triggers.

    \b
    TYPES:
      timestamp:      keep updated_at current on UPDATE
      timestamp_full: set created_at on INSERT, updated_at on INSERT/UPDATE
      audit:          log every change to utils.audit_log (created if missing)
      validation:     check email, phone, URL and non-negative amount columns
      security:       log changes with a risk level to utils.security_log
      soft_delete:    turn DELETE into UPDATE ... SET deleted_at = NOW()
      basic:          empty BEFORE trigger to fill in by hand
    """
    pass


@triggers.command("add")
@click.argument("table", required=False)
@click.option("--type", "types", multiple=True, type=click.Choice(TRIGGER_CHOICES),
              help="Trigger type (repeatable; default: timestamp, or detected with --dynamic)")
@click.option("--dynamic", is_flag=True, help="Pick trigger types from the table's columns")
@click.option("--all-tables", is_flag=True, help="Add triggers to every table")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--replace/--merge", default=False, help="Replace triggers.sql wholesale or merge (default)")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def triggers_add(table, types, dynamic, all_tables, schema, replace, dry_run, force):
    """Add triggers to a table.

    Each trigger comes with its function; re-running replaces nothing and
    adds only triggers that are not in triggers.sql yet. With --dynamic
    and no database the command warns and falls back to --type (or
    timestamp).

    \b
    EXAMPLES:
      pgforge features triggers add orders
      pgforge features triggers add orders --type audit --type soft_delete
      pgforge features triggers add --all-tables --dynamic --dry-run
    """
    from pgforge.commands.common import build_env, run_tables, target_tables
    from pgforge.plans import TriggerOptions, TriggerPlan

    env = build_env(schema)
    tables = target_tables(env, table, all_tables)
    runner = env.runner()
    request = env.request(replace=replace, dry_run=dry_run, force=force)

    def run_one(name: str):
        options = TriggerOptions(table=name, schema=env.schema, types=_type_list(types), dynamic=dynamic)
        return runner.run(request, TriggerPlan(options, env.context))

    run_tables(env, tables, run_one, all_tables)


@triggers.command("suggest")
@click.argument("table", required=False)
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--dry-run", is_flag=True, help="Show the SQL without writing")
@click.option("--force", is_flag=True, help="Generate without asking")
@handle_exceptions
def triggers_suggest(table, schema, dry_run, force):
    """Suggest triggers from column names, then offer to generate them.

    Without TABLE every table in the schema is analyzed. Suggestions
    whose trigger already exists in the database are left out.

    \b
    EXAMPLES:
      pgforge features triggers suggest orders
      pgforge features triggers suggest --force
    """
    from pgforge.commands.common import build_env, require_database, run_tables, target_tables
    from pgforge.pipeline.ui import console, print_header
    from pgforge.plans import TriggerOptions, TriggerPlan

    env = build_env(schema)
    require_database(env, "Trigger suggestions")
    tables = target_tables(env, table, all_tables=table is None)
    runner = env.runner()
    request = env.request(dry_run=dry_run, force=force)

    def run_one(name: str):
        plan = TriggerPlan(TriggerOptions(table=name, schema=env.schema, dynamic=True), env.context)
        config = plan.detect()
        print_header(f"TRIGGER SUGGESTIONS: {env.schema}.{name}")
        if not config.suggestions:
            console.print("[dim]No triggers suggested[/dim]")
            return None
        grid = Table(show_header=True, header_style="bold", box=None, padding=(0, 2, 0, 0))
        grid.add_column("Trigger", style="object")
        grid.add_column("Type")
        grid.add_column("Reason", style="dim")
        for suggestion in config.suggestions:
            grid.add_row(suggestion.name, suggestion.type.value, suggestion.reason)
        console.print(grid)
        if not _offer(f"Generate these triggers for {name}?", force, dry_run):
            return None
        return runner.run(request, plan)

    run_tables(env, tables, run_one, table is None)


@triggers.command("analyze")
@click.argument("table", required=False)
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@handle_exceptions
def triggers_analyze(table, schema):
    """Compare a table's live triggers with the suggested set.

    Read-only; nothing is written. Needs a database connection.
    """
    from pgforge.commands.common import build_env, require_database, run_tables, target_tables
    from pgforge.detection import analyze_table_for_triggers, missing_trigger_suggestions
    from pgforge.pipeline.ui import console, print_header

    env = build_env(schema)
    require_database(env, "Trigger analysis")
    tables = target_tables(env, table, all_tables=table is None)

    def run_one(name: str):
        table_schema = env.context.table_schema(name, with_triggers=True)
        existing = table_schema.triggers
        missing = missing_trigger_suggestions(
            analyze_table_for_triggers(name, table_schema.columns), [t.name for t in existing], name
        )
        print_header(f"TRIGGERS: {table_schema.qualified_name}")
        rls = "enabled" if table_schema.rls_enabled else "disabled"
        console.print(f"[dim]  RLS {rls}, {len(table_schema.policies)} policies[/dim]")
        for trig in existing:
            console.print(
                f"  [success]present[/success] {trig.name} "
                f"[dim]{trig.timing} {' OR '.join(trig.events)} -> {trig.function or '?'}[/dim]"
            )
        for suggestion in missing:
            console.print(f"  [warning]missing[/warning] {suggestion.name} [dim]{suggestion.reason}[/dim]")
        if not existing and not missing:
            console.print("[dim]  No triggers present or suggested[/dim]")
        return None

    run_tables(env, tables, run_one, table is None)


# ============================================================================
# INDEXES
# ============================================================================


@features.group()
@click.help_option("-h", "--help")
def indexes():
    """Index recommendations, generation and diagnostics.

    \b
    RECOMMENDED (with --dynamic):
      foreign keys and user_id + created_at (HIGH)
      status/state/is_* flags, partial on booleans (MEDIUM)
      category/type/kind, created_at/updated_at (MEDIUM)
      full-text search on title/name/content/description (MEDIUM, GIN)
      email/slug/username lookups (LOW)
    """
    pass


@indexes.command("add")
@click.argument("table", required=False)
@click.option("--columns", help="Comma separated columns (prompted when omitted)")
@click.option("--type", "index_type", type=click.Choice(INDEX_TYPE_CHOICES), default="btree",
              help="Index method")
@click.option("--unique", is_flag=True, help="Create a UNIQUE index")
@click.option("--where", "where", help="Partial index condition")
@click.option("--name", help="Index name (default: idx_<table>_<columns>)")
@click.option("--dynamic", is_flag=True, help="Recommend indexes from the table's columns")
@click.option("--performance-only", is_flag=True, help="With --dynamic, keep HIGH and CRITICAL impact only")
@click.option("--all-tables", is_flag=True, help="Add indexes to every table (implies --dynamic)")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--replace/--merge", default=False, help="Replace indexes.sql wholesale or merge (default)")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def indexes_add(table, columns, index_type, unique, where, name, dynamic, performance_only,
                all_tables, schema, replace, dry_run, force):
    """Add indexes to a table.

    Explicit columns build one index; --dynamic recommends a set and
    skips indexes that already exist in the database.

    \b
    EXAMPLES:
      pgforge features indexes add orders --columns customer_id
      pgforge features indexes add users --columns email --unique
      pgforge features indexes add orders --columns status --where "deleted_at IS NULL"
      pgforge features indexes add --all-tables --performance-only
    """
    from pgforge.commands.common import build_env, run_tables, target_tables
    from pgforge.plans import IndexOptions, IndexPlan
    from pgforge.utils.validation import parse_column_list, validate_condition, validate_identifier

    dynamic = dynamic or all_tables
    if not dynamic and not columns:
        columns = click.prompt("Columns to index (comma separated)")
    column_list = parse_column_list(columns) if columns else []
    where = validate_condition(where) if where else None
    name = validate_identifier(name, "Index name") if name else None

    env = build_env(schema)
    tables = target_tables(env, table, all_tables)
    runner = env.runner()
    request = env.request(replace=replace, dry_run=dry_run, force=force)

    def run_one(table_name: str):
        options = IndexOptions(
            table=table_name,
            schema=env.schema,
            columns=column_list,
            index_type=IndexType(index_type),
            unique=unique,
            where=where,
            name=name,
            dynamic=dynamic,
            performance_only=performance_only,
        )
        return runner.run(request, IndexPlan(options, env.context))

    run_tables(env, tables, run_one, all_tables)


@indexes.command("suggest")
@click.argument("table", required=False)
@click.option("--performance-only", is_flag=True, help="Keep HIGH and CRITICAL impact only")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--dry-run", is_flag=True, help="Show the SQL without writing")
@click.option("--force", is_flag=True, help="Generate without asking")
@handle_exceptions
def indexes_suggest(table, performance_only, schema, dry_run, force):
    """Show index recommendations, then offer to generate them.

    Without TABLE every table in the schema is analyzed.
    """
    from pgforge.commands.common import build_env, require_database, run_tables, target_tables
    from pgforge.pipeline.ui import IMPACT_STYLES, console, print_header
    from pgforge.plans import IndexOptions, IndexPlan

    env = build_env(schema)
    require_database(env, "Index suggestions")
    tables = target_tables(env, table, all_tables=table is None)
    runner = env.runner()
    request = env.request(dry_run=dry_run, force=force)

    def run_one(name: str):
        options = IndexOptions(table=name, schema=env.schema, dynamic=True, performance_only=performance_only)
        plan = IndexPlan(options, env.context)
        config = plan.detect()
        print_header(f"INDEX RECOMMENDATIONS: {env.schema}.{name}")
        if not config.recommendations:
            console.print("[dim]No new indexes recommended[/dim]")
            return None
        grid = Table(show_header=True, header_style="bold", box=None, padding=(0, 2, 0, 0))
        grid.add_column("Impact", width=9)
        grid.add_column("Index", style="object")
        grid.add_column("Columns")
        grid.add_column("Reason", style="dim")
        for rec in config.recommendations:
            impact = rec.impact.value if rec.impact else "-"
            style = IMPACT_STYLES.get(impact, "dim")
            grid.add_row(f"[{style}]{impact}[/{style}]", rec.index_name, ", ".join(rec.columns), rec.reason)
        console.print(grid)
        if not _offer(f"Generate these indexes for {name}?", force, dry_run):
            return None
        return runner.run(request, plan)

    run_tables(env, tables, run_one, table is None)


@indexes.command("analyze")
@click.argument("table")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--replace/--merge", default=False, help="Replace analysis.sql wholesale or merge (default)")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def indexes_analyze(table, schema, replace, dry_run, force):
    """Write index diagnostic queries to analysis.sql.

    The queries report index sizes, scan counts, unused indexes and
    sequential scan ratios when you run them against the database. With a
    connection configured, redundant indexes (a strict column prefix of
    another index) are listed as well.
    """
    from pgforge.commands.common import build_env
    from pgforge.detection import find_redundant_indexes
    from pgforge.pipeline.ui import console, print_header
    from pgforge.plans import AnalysisPlan
    from pgforge.utils.validation import validate_table_name

    table = validate_table_name(table)
    env = build_env(schema)
    env.runner().run(
        env.request(replace=replace, dry_run=dry_run, force=force), AnalysisPlan(table, env.schema)
    )

    if not env.context.connected:
        return
    existing = env.context.optional("index", lambda: env.context.require().get_table_indexes(table))
    redundant = find_redundant_indexes(existing)
    if redundant:
        print_header(f"REDUNDANT INDEXES: {env.schema}.{table}")
        for item in redundant:
            console.print(
                f"  [warning]{item.index_name}[/warning] ({', '.join(item.columns)}) "
                f"is covered by [object]{item.covered_by}[/object]"
            )


@indexes.command("performance")
@click.argument("table", required=False)
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@handle_exceptions
def indexes_performance(table, schema):
    """Report large tables, unindexed foreign keys and missing search indexes.

    Read-only. Without TABLE every table in the schema is checked. Needs
    a database connection.
    """
    from pgforge.commands.common import build_env, require_database, run_tables, target_tables
    from pgforge.detection import detect_performance_issues
    from pgforge.errors import PartialAnalysisFailure
    from pgforge.pipeline.ui import console, print_header

    env = build_env(schema)
    introspector = require_database(env, "Performance analysis")
    tables = target_tables(env, table, all_tables=table is None)

    def run_one(name: str):
        table_schema = env.context.table_schema(name, with_indexes=True)
        try:
            size = introspector.get_table_size(name)
        except PartialAnalysisFailure as e:
            env.reporter.on_warning(f"{e}; size check omitted", name)
            size = None
        issues = detect_performance_issues(name, table_schema.columns, table_schema.indexes, size)
        print_header(f"PERFORMANCE: {env.schema}.{name}")
        if not issues:
            console.print("[success]  No issues found[/success]")
        for issue in issues:
            console.print(f"  [warning]-[/warning] {issue}")
        return None

    run_tables(env, tables, run_one, table is None)


# ============================================================================
# VIEWS
# ============================================================================


@features.group()
@click.help_option("-h", "--help")
def views():
    """Views over tables, plus common catalog views for the schema.

    Plain views use security_invoker, so the base table's RLS policies
    still apply to whoever queries the view (PostgreSQL 15+).

    \b
    SUGGESTED (with --dynamic):
      <table>_public        every column except password/secret/token-like ones
      <table>_active        rows with deleted_at IS NULL, or is_active
      <table>_details       foreign-key rows folded into JSON columns
      <table>_daily_stats   row counts per day of created_at
    """
    pass


@views.command("add")
@click.argument("table", required=False)
@click.option("--template", type=click.Choice(VIEW_TEMPLATE_CHOICES),
              help="View shape; security and joined need a database")
@click.option("--name", help="View name (default: <table>_<template>)")
@click.option("--columns", help="Comma separated columns (default: all)")
@click.option("--where", "where", help="Row filter for a filtered view")
@click.option("--group-by", help="Comma separated grouping columns for an aggregated view")
@click.option("--materialized", is_flag=True, help="Create a materialized view with a refresh function")
@click.option("--dynamic", is_flag=True, help="Suggest views from the table's columns")
@click.option("--all-tables", is_flag=True, help="Add views to every table (implies --dynamic)")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--replace/--merge", default=False, help="Replace views.sql wholesale or merge (default)")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def views_add(table, template, name, columns, where, group_by, materialized, dynamic,
              all_tables, schema, replace, dry_run, force):
    """Add views for a table to sql/schemas/<table>/views.sql.

    Without --dynamic the flags describe one view. With --dynamic the
    columns are analyzed and every matching suggestion is written;
    --template then keeps one kind of suggestion.

    \b
    EXAMPLES:
      pgforge features views add orders --columns id,status,created_at
      pgforge features views add orders --template filtered --where "deleted_at IS NULL"
      pgforge features views add orders --template aggregated --group-by status --materialized
      pgforge features views add users --template security
      pgforge features views add --all-tables --dry-run
    """
    from pgforge.commands.common import build_env, run_tables, target_tables
    from pgforge.plans import ViewOptions, ViewPlan
    from pgforge.utils.validation import parse_column_list, validate_condition, validate_identifier

    column_list = parse_column_list(columns) if columns else []
    group_list = parse_column_list(group_by) if group_by else []
    where = validate_condition(where) if where else None
    name = validate_identifier(name, "View name") if name else None
    if name and all_tables:
        raise click.UsageError("--name applies to one view; it cannot be combined with --all-tables")

    env = build_env(schema)
    tables = target_tables(env, table, all_tables)
    runner = env.runner()
    request = env.request(replace=replace, dry_run=dry_run, force=force)

    def run_one(table_name: str):
        options = ViewOptions(
            table=table_name,
            schema=env.schema,
            template=ViewTemplate(template) if template else None,
            name=name,
            columns=column_list,
            where=where,
            group_by=group_list,
            materialized=materialized,
            dynamic=dynamic or all_tables,
        )
        return runner.run(request, ViewPlan(options, env.context))

    run_tables(env, tables, run_one, all_tables)


@views.command("suggest")
@click.argument("table", required=False)
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--dry-run", is_flag=True, help="Show the SQL without writing")
@click.option("--force", is_flag=True, help="Generate without asking")
@handle_exceptions
def views_suggest(table, schema, dry_run, force):
    """Show view suggestions, then offer to generate them.

    Without TABLE every table in the schema is analyzed.
    """
    from pgforge.commands.common import build_env, require_database, run_tables, target_tables
    from pgforge.pipeline.ui import console, print_header
    from pgforge.plans import ViewOptions, ViewPlan

    env = build_env(schema)
    require_database(env, "View suggestions")
    tables = target_tables(env, table, all_tables=table is None)
    runner = env.runner()
    request = env.request(dry_run=dry_run, force=force)

    def run_one(name: str):
        plan = ViewPlan(ViewOptions(table=name, schema=env.schema, dynamic=True), env.context)
        config = plan.detect()
        print_header(f"VIEW SUGGESTIONS: {env.schema}.{name}")
        if not config.views:
            console.print("[dim]No views suggested[/dim]")
            return None
        grid = Table(show_header=True, header_style="bold", box=None, padding=(0, 2, 0, 0))
        grid.add_column("View", style="object")
        grid.add_column("Template")
        grid.add_column("Reason", style="dim")
        for view in config.views:
            grid.add_row(view.name, view.template.value, view.reason)
        console.print(grid)
        if not _offer(f"Generate these views for {name}?", force, dry_run):
            return None
        return runner.run(request, plan)

    run_tables(env, tables, run_one, table is None)


@views.command("common")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--replace/--merge", default=False, help="Replace views.sql wholesale or merge (default)")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def views_common(schema, replace, dry_run, force):
    """Write the common catalog views to sql/schemas/views.sql.

    table_info, column_info, table_relationships and table_sizes describe
    the exposed schema. Needs no database connection.
    """
    from pgforge.commands.common import build_env
    from pgforge.plans import CommonViewsPlan

    env = build_env(schema, connect=False)
    plan = CommonViewsPlan(env.schema, env.context)
    env.runner().run(env.request(replace=replace, dry_run=dry_run, force=force), plan)
