"""Wiring shared by the command modules: config, database, store, runner."""

import sys
from dataclasses import dataclass

import click

from pgforge.config_runtime import PostgrestSettings, load_runtime_config
from pgforge.errors import ConnectionUnavailable, PartialAnalysisFailure
from pgforge.introspect import open_introspector
from pgforge.merge import MergeMode
from pgforge.pipeline.reporter import ConsoleReporter
from pgforge.plans import SchemaContext
from pgforge.runner import ArtifactRunner, BatchReport, GenerationRequest, run_batch
from pgforge.store import TableFolderStore
from pgforge.utils.error_handler import CommandFailed
from pgforge.utils.validation import (
    validate_catalog_table_name,
    validate_schema_name,
    validate_table_name,
)

ROOT = "."


@dataclass
class CommandEnv:
    """Everything one command invocation needs, built once."""

    config: dict
    settings: PostgrestSettings
    context: SchemaContext
    store: TableFolderStore
    reporter: ConsoleReporter

    @property
    def schema(self) -> str:
        return self.settings.schema

    def runner(self, customize=None) -> ArtifactRunner:
        return ArtifactRunner(self.store, self.reporter, confirm=confirm_prompt, customize=customize)

    def request(
        self,
        replace: bool = False,
        dry_run: bool = False,
        force: bool = False,
        object_name: str | None = None,
        known_names: tuple[str, ...] = (),
    ) -> GenerationRequest:
        return GenerationRequest(
            mode=MergeMode.REPLACE if replace else MergeMode.MERGE,
            dry_run=dry_run,
            force=force,
            object_name=object_name,
            known_names=known_names,
            command=command_string(),
            header=self.config["output"]["header"],
        )


def command_string() -> str:
    return " ".join(["pgforge"] + sys.argv[1:])


def confirm_prompt(question: str) -> bool:
    return click.confirm(question, default=False)


def build_env(schema: str | None = None, connect: bool = True) -> CommandEnv:
    """Load configuration and open the optional database for one command."""
    config = load_runtime_config(ROOT)
    if schema:
        config["postgrest"]["schema"] = validate_schema_name(schema)
    settings = PostgrestSettings.from_config(config)
    reporter = ConsoleReporter()

    introspector = None
    if connect:
        ctx = click.get_current_context(silent=True)
        database_url = None
        if ctx is not None and ctx.find_root().obj:
            database_url = ctx.find_root().obj.get("database_url")
        introspector = open_introspector(
            ROOT,
            schema=settings.schema,
            database_url=database_url,
            connect_timeout=config["database"]["connect_timeout"],
        )

    return CommandEnv(
        config=config,
        settings=settings,
        context=SchemaContext(settings, introspector, warn=reporter.on_warning),
        store=TableFolderStore(ROOT, config["output"]["sql_dir"]),
        reporter=reporter,
    )


def finish_batch(env: CommandEnv, report: BatchReport) -> None:
    env.reporter.batch_summary(report)
    if report.failed:
        sys.exit(report.exit_code)


def all_tables_list(env: CommandEnv) -> list[str]:
    """Tables for --all-tables: the live schema, else existing table folders."""
    if env.context.connected:
        try:
            return env.context.require().list_tables()
        except (ConnectionUnavailable, PartialAnalysisFailure) as e:
            env.reporter.on_warning(f"{e}. Using existing table folders.")
    tables = env.store.list_table_folders()
    if not tables:
        raise click.UsageError("No tables found: configure a database connection or pass a table name")
    return tables


def require_database(env: CommandEnv, purpose: str):
    """Introspector for commands that only make sense against a live schema."""
    if not env.context.connected:
        raise CommandFailed(
            f"{purpose} needs a database connection. Pass --database-url or configure "
            "postgrest.conf, docker-compose.yml or .env"
        )
    return env.context.require()


def target_tables(env: CommandEnv, table: str | None, all_tables: bool) -> list[str]:
    """Resolve the TABLE argument / --all-tables pair into a table list."""
    if table and all_tables:
        raise click.UsageError("Pass either TABLE or --all-tables, not both")
    if table:
        return [validate_table_name(table)]
    if not all_tables:
        raise click.UsageError("TABLE is required unless --all-tables is given")
    return all_tables_list(env)


def run_tables(env: CommandEnv, tables: list[str], run_one, batch: bool) -> None:
    """Single table: errors propagate. Batch: isolated per table.

    Batch names come from the catalog or the table folders, so each is checked
    before it reaches a generator; a bad one fails that table only.
    """
    if not batch:
        run_one(tables[0])
        return

    def checked(name: str):
        return run_one(validate_catalog_table_name(name))

    finish_batch(env, run_batch(tables, checked, env.reporter))
