"""RLS policy and function generation."""

import click

from pgforge.models import FunctionType, PatternDecision, PatternKind
from pgforge.utils.error_handler import handle_exceptions


@click.group()
@click.help_option("-h", "--help")
def generate():
    """Generate RLS policies and PostgreSQL functions into sql/schemas/.

    Group command for the two artifact kinds that define who can see what:
    row level security policies (rls.sql) and database functions
    (functions.sql). Output is merged into existing files by default, so
    re-running a command never duplicates a policy or function.

    \b
    SUBCOMMANDS:
      policy:   RLS policies from the table's access pattern
      function: auth helpers, CRUD sets, utility templates, custom skeletons

    \b
    ACCESS PATTERNS:
      user_specific: rows belong to the user in an ownership column
      public_read:   everyone reads, authenticated users write
      admin_only:    only the admin role has access
      custom:        rows filtered by your own --condition

    \b
    EXAMPLES:
      pgforge generate policy orders
      pgforge generate policy orders --pattern user_specific --owner-column author_id
      pgforge generate policy orders --policy orders_select_own
      pgforge generate policy --all-tables --dry-run
      pgforge generate function auth --type auth
      pgforge generate function create_orders
    """
    pass


def _customize_policy(decision):
    """Interactive review of a detected pattern (--interactive)."""
    kind = PatternKind(
        click.prompt(
            "Access pattern",
            type=click.Choice([k.value for k in PatternKind]),
            default=decision.kind.value,
        )
    )
    owner, condition = decision.owner_column, decision.condition
    if kind == PatternKind.USER_SPECIFIC:
        owner = click.prompt("Ownership column", default=owner or "user_id")
    elif kind == PatternKind.CUSTOM:
        condition = click.prompt("Row filter condition", default=condition or "", show_default=False) or None
    if (kind, owner, condition) == (decision.kind, decision.owner_column, decision.condition):
        return decision

    from pgforge.utils.validation import validate_column_name, validate_condition

    return PatternDecision(
        kind=kind,
        reason="Customized by user",
        owner_column=validate_column_name(owner) if kind == PatternKind.USER_SPECIFIC else None,
        condition=validate_condition(condition) if condition else None,
    )


@generate.command("policy")
@click.argument("table", required=False)
@click.option(
    "--pattern",
    type=click.Choice([k.value for k in PatternKind]),
    help="Access pattern (default: detected from columns and table name)",
)
@click.option("--owner-column", help="Ownership column for user_specific (implies that pattern)")
@click.option("--condition", help="Row filter for custom or public_read patterns")
@click.option("--policy", "policy_name", help="Regenerate only this named policy")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--all-tables", is_flag=True, help="Generate for every table in the schema")
@click.option("--replace/--merge", default=False, help="Replace rls.sql wholesale or merge (default)")
@click.option("--enable-rls", "rls_toggle", flag_value="enable", help="Only enable row level security")
@click.option("--disable-rls", "rls_toggle", flag_value="disable", help="Only disable row level security")
@click.option("--interactive", "-i", is_flag=True, help="Review and adjust the detected pattern")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def policy(table, pattern, owner_column, condition, policy_name, schema, all_tables, replace,
           rls_toggle, interactive, dry_run, force):
    """Generate row level security policies for a table.

    Detects the table's access pattern, renders the matching policy set
    and merges it into sql/schemas/<table>/rls.sql.

    \b
    DETECTION ORDER:
      1. --pattern / --owner-column
      2. ownership columns that are foreign keys (whole-schema analysis)
      3. user_id, owner_id, created_by, author_id with a UUID/integer type
      4. table names containing admin, config, setting, system -> admin_only
      5. table names containing category, tag, type, status, country,
         currency -> public_read
      6. otherwise user_specific without an owner column: a deny-all
         policy is written until you supply a condition

    Without a database connection the pattern comes from the table name
    and options alone.

    \b
    NAMED UPDATE:
      --policy NAME regenerates exactly one policy and leaves the rest of
      rls.sql alone. Unknown names fail with exit code 2 and list the
      policies that do exist; the file is not touched.

    \b
    EXAMPLES:
      pgforge generate policy orders
      pgforge generate policy settings --pattern admin_only --replace --force
      pgforge generate policy orders --policy orders_update_own
      pgforge generate policy orders --disable-rls --force
    """
    from pgforge.commands.common import build_env, run_tables, target_tables
    from pgforge.plans import PolicyOptions, PolicyPlan
    from pgforge.utils.validation import (
        validate_column_name,
        validate_condition,
        validate_identifier,
    )

    if policy_name and all_tables:
        raise click.UsageError("--policy updates one table; it cannot be combined with --all-tables")

    owner_column = validate_column_name(owner_column) if owner_column else None
    condition = validate_condition(condition) if condition else None
    policy_name = validate_identifier(policy_name, "Policy name") if policy_name else None

    env = build_env(schema)
    tables = target_tables(env, table, all_tables)
    runner = env.runner(customize=_customize_policy if interactive else None)

    def run_one(name: str):
        options = PolicyOptions(
            table=name,
            schema=env.schema,
            pattern=PatternKind(pattern) if pattern else None,
            owner_column=owner_column,
            condition=condition,
            enable_rls=None if rls_toggle is None else rls_toggle == "enable",
        )
        plan = PolicyPlan(options, env.context)
        request = env.request(
            replace=replace,
            dry_run=dry_run,
            force=force,
            object_name=policy_name,
            known_names=plan.known_names() if policy_name else (),
        )
        return runner.run(request, plan)

    run_tables(env, tables, run_one, all_tables)


@generate.command("function")
@click.argument("name")
@click.option(
    "--type",
    "function_type",
    type=click.Choice([t.value for t in FunctionType]),
    help="Function kind (default: detected from the name)",
)
@click.option("--table", help="Table for CRUD/search functions (CRUD default: from the name)")
@click.option("--params", default="", help="Parameters for custom functions, e.g. 'p_id UUID, p_limit INTEGER'")
@click.option("--returns", default="VOID", help="Return type for custom functions")
@click.option("--language", type=click.Choice(["plpgsql", "sql"]), default="plpgsql", help="Function language")
@click.option("--security-definer", is_flag=True, help="Run with the owner's privileges")
@click.option("--schema", help="Schema name (default: postgrest.conf db-schemas or 'api')")
@click.option("--replace/--merge", default=False, help="Replace functions.sql wholesale or merge (default)")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def function(name, function_type, table, params, returns, language, security_definer, schema,
             replace, dry_run, force):
    """Generate a PostgreSQL function.

    \b
    TYPES (detected from NAME when --type is omitted):
      auth:    login, register, authenticate, verify, hash_password,
               check_password -> the auth.* helper set used by policies
      crud:    create_, update_, delete_, get_, find_, list_ prefixes ->
               create/get/update/delete functions for the table
      utility: validate, format, calculate, convert, generate, send_ ->
               email/phone/slug/random id/day bound/search templates
      custom:  anything else -> a skeleton to fill in

    Auth helpers go to sql/schemas/functions.sql; functions tied to a
    table go to sql/schemas/<table>/functions.sql.

    \b
    EXAMPLES:
      pgforge generate function auth --type auth
      pgforge generate function create_orders
      pgforge generate function format_slug
      pgforge generate function archive_order --params "p_id UUID" --returns BOOLEAN
    """
    from pgforge.commands.common import build_env
    from pgforge.plans import FunctionOptions, FunctionPlan
    from pgforge.utils.validation import (
        validate_data_type,
        validate_function_name,
        validate_params,
        validate_table_name,
    )

    env = build_env(schema)
    options = FunctionOptions(
        name=validate_function_name(name),
        schema=env.schema,
        function_type=FunctionType(function_type) if function_type else None,
        table=validate_table_name(table) if table else None,
        params=validate_params(params),
        returns=validate_data_type(returns),
        language=language,
        security_definer=security_definer,
    )
    plan = FunctionPlan(options, env.context)
    env.runner().run(env.request(replace=replace, dry_run=dry_run, force=force), plan)
