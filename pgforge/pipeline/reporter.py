"""Rich console observer for generation runs."""

from pgforge.runner import BatchReport, RunOutcome, RunState
from pgforge.utils.logging import logger

from .ui import console, print_error, print_sql, print_status_panel, print_success, print_warning


class ConsoleReporter:
    """Default observer for CLI commands.

    Prints detection results, warnings and write summaries. State
    transitions only go to the debug log.
    """

    def __init__(self, quiet: bool = False, show_sql: bool = True):
        self.quiet = quiet
        self.show_sql = show_sql

    @staticmethod
    def _label(table: str | None) -> str:
        return f"[path]{table}[/path]: " if table else ""

    def on_state(self, table: str | None, state: RunState) -> None:
        logger.debug(f"{table or 'schema'} -> {state.value}")

    def on_detected(self, table: str | None, message: str) -> None:
        if not self.quiet:
            console.print(f"{self._label(table)}{message}", highlight=False)

    def on_warning(self, message: str, table: str | None = None) -> None:
        print_warning(f"{table}: {message}" if table else message)

    def on_preview(self, outcome: RunOutcome) -> None:
        merge = outcome.merge
        print_status_panel(
            "DRY RUN",
            f"Would write {outcome.path}" if merge and merge.changed else f"{outcome.path} is already up to date",
            merge.summary() if merge else "nothing generated",
            level="preview",
        )
        if self.show_sql and outcome.artifact:
            print_sql(outcome.artifact.text)

    def on_written(self, outcome: RunOutcome) -> None:
        if self.quiet:
            return
        if outcome.written:
            print_success(f"{outcome.path} ({outcome.merge.summary()})")
        elif outcome.merge is not None:
            console.print(f"[dim]{outcome.path} unchanged[/dim]")

    def on_table_failed(self, table: str, error: Exception) -> None:
        print_error(f"{table}: {error}")

    def batch_summary(self, report: BatchReport) -> None:
        level = "partial" if report.failed else "done"
        status = "PARTIAL" if report.failed else "DONE"
        detail = f"{report.added} objects added, {report.replaced} replaced, {report.written} files written"
        if report.failed:
            detail += "\nFailed: " + ", ".join(table for table, _ in report.failed)
        print_status_panel(
            status,
            f"{len(report.processed)} of {len(report.processed) + len(report.failed)} tables processed",
            detail,
            level=level,
        )
