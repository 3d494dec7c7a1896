"""Project setup: PostgREST roles and schema grants."""

import click

from pgforge.utils.error_handler import handle_exceptions


@click.group()
@click.help_option("-h", "--help")
def setup():
    """Create the database roles PostgREST switches between.

    Run once per project before generating policies; the policies refer
    to these roles by name. Role names come from postgrest.conf
    (db-anon-role) and .pgforge/config.json, or the defaults below.

    \b
    DEFAULT ROLES:
      web_anon:      requests without a JWT
      authenticated: requests with a valid JWT
      admin:         full access, inherits authenticated
      authenticator: LOGIN role PostgREST connects as (NOINHERIT)
    """
    pass


@setup.command("roles")
@click.option("--no-authenticator", is_flag=True, help="Skip the LOGIN authenticator role")
@click.option("--schema", help="Schema to grant USAGE on (default: postgrest.conf db-schemas or 'api')")
@click.option("--replace/--merge", default=False, help="Replace roles.sql wholesale or merge (default)")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Skip confirmation prompts")
@handle_exceptions
def roles(no_authenticator, schema, replace, dry_run, force):
    """Write sql/roles.sql with the anon, authenticated and admin roles.

    Every CREATE ROLE is wrapped in an existence check, so the file can be
    applied to a database that already has some of the roles.

    \b
    EXAMPLES:
      pgforge setup roles
      pgforge setup roles --schema public --dry-run
      pgforge setup roles --no-authenticator
    """
    from pgforge.commands.common import build_env
    from pgforge.plans import RoleOptions, RolePlan

    env = build_env(schema, connect=False)
    options = RoleOptions(schema=env.schema, include_authenticator=not no_authenticator)
    env.runner().run(env.request(replace=replace, dry_run=dry_run, force=force), RolePlan(options, env.context))
