"""pgforge CLI - Main entry point and command registration hub."""
# ruff: noqa: E402 - Intentional lazy loading: commands imported after cli group definition

import click
from rich.table import Table

from pgforge import __version__
from pgforge.pipeline.ui import console


class VerboseGroup(click.Group):
    """Categorized help generated from the registered commands."""

    def format_commands(self, ctx, formatter):
        """Override to suppress default command listing (we use categorized format in format_help)."""
        pass

    COMMAND_CATEGORIES = {
        "PROJECT_SETUP": {
            "title": "PROJECT SETUP",
            "description": "Database roles and schema grants PostgREST needs",
            "commands": ["setup"],
            "command_meta": {
                "setup": {
                    "run_when": "Once per project, before generating policies",
                },
            },
        },
        "GENERATION": {
            "title": "GENERATION",
            "description": "Row level security policies and PostgreSQL functions",
            "commands": ["generate"],
            "command_meta": {
                "generate": {
                    "use_when": "Need RLS policies or auth/CRUD/utility functions",
                },
            },
        },
        "FEATURES": {
            "title": "FEATURES",
            "description": "Triggers, indexes and views from schema analysis",
            "commands": ["features"],
            "command_meta": {
                "features": {
                    "use_when": "Need timestamp/audit triggers, index recommendations or views",
                },
            },
        },
    }

    def format_help(self, ctx, formatter):
        """Generate Rich-styled categorized help."""
        super().format_help(ctx, formatter)

        registered = {
            name: cmd
            for name, cmd in self.commands.items()
            if not name.startswith("_") and not getattr(cmd, "hidden", False)
        }

        console.print()
        console.rule("[bold]COMMANDS[/bold]")

        for _category_id, category_data in self.COMMAND_CATEGORIES.items():
            console.print(f"\n[bold cyan]{category_data['title']}[/bold cyan]")
            console.print(f"[dim]{category_data['description']}[/dim]")

            table = Table(show_header=False, box=None, padding=(0, 2, 0, 0))
            table.add_column("Command", style="command", width=18)
            table.add_column("Description", style="white")
            table.add_column("When", style="dim", width=40)

            for cmd_name in category_data["commands"]:
                if cmd_name not in registered:
                    continue
                cmd = registered[cmd_name]

                first_line = (cmd.help or "").split("\n")[0].strip()
                period_idx = first_line.find(".")
                short_help = first_line[:period_idx] if period_idx > 0 else first_line
                if len(short_help) > 45:
                    short_help = short_help[:45].rsplit(" ", 1)[0] + "..."

                cmd_meta = category_data.get("command_meta", {}).get(cmd_name, {})
                hint = ""
                if "use_when" in cmd_meta:
                    hint = f"USE: {cmd_meta['use_when']}"
                elif "run_when" in cmd_meta:
                    hint = f"RUN: {cmd_meta['run_when']}"

                table.add_row(cmd_name, short_help, hint)

            console.print(table)

        console.print()
        console.rule()
        console.print("For detailed options: [command]pgforge <command> --help[/command]")


@click.group(cls=VerboseGroup)
@click.version_option(version=__version__, prog_name="pgforge")
@click.help_option("-h", "--help")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging (same as PGFORGE_LOG_LEVEL=DEBUG)")
@click.option(
    "--database-url",
    envvar="PGFORGE_DATABASE_URL",
    help="PostgreSQL URL; overrides postgrest.conf, docker-compose.yml and .env discovery",
)
@click.pass_context
def cli(ctx, verbose, database_url):
    """pgforge - PostgREST database artifact generator

    Generates RLS policies, triggers, indexes, views, functions and roles as SQL
    under sql/schemas/<table>/. Re-running a command merges into the
    existing files without duplicating objects.

    \b
    QUICK START:
      pgforge setup roles                      # anon/authenticated/admin roles
      pgforge generate function auth --type auth
      pgforge generate policy orders           # detect pattern from columns
      pgforge features triggers add orders --dynamic
      pgforge features indexes add orders --dynamic
      pgforge features views add orders --dynamic

    \b
    Works without a database: detection falls back to templates."""
    if verbose:
        from pgforge.utils.logging import set_log_level

        set_log_level("DEBUG")
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


from pgforge.commands.features import features
from pgforge.commands.generate import generate
from pgforge.commands.setup import setup

cli.add_command(setup)
cli.add_command(generate)
cli.add_command(features)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
