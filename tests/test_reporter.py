"""Tests for the console reporter and its themed output helpers."""

from pgforge.pipeline import ConsoleReporter, console, print_sql, print_status_panel
from pgforge.pipeline.ui import IMPACT_STYLES, PANEL_STYLES, PGFORGE_THEME
from pgforge.runner import BatchReport


def test_batch_summary_partial():
    report = BatchReport()
    report.record("orders", None)
    report.failed.append(("order-items", ValueError("bad name")))
    with console.capture() as capture:
        ConsoleReporter().batch_summary(report)
    output = capture.get()
    assert "PARTIAL" in output
    assert "1 of 2 tables processed" in output
    assert "Failed: order-items" in output


def test_batch_summary_done():
    report = BatchReport()
    report.record("orders", None)
    with console.capture() as capture:
        ConsoleReporter().batch_summary(report)
    assert "DONE" in capture.get()


def test_panel_without_detail():
    with console.capture() as capture:
        print_status_panel("DRY RUN", "sql/schemas/orders/rls.sql is already up to date", "")
    assert "already up to date" in capture.get()


def test_sql_printed_verbatim_off_terminal():
    sql = "CREATE POLICY \"Orders [own]\" ON api.orders;"
    with console.capture() as capture:
        print_sql(sql)
    if not console.is_terminal:
        assert sql in capture.get()


def test_every_style_is_themed():
    styles = set(IMPACT_STYLES.values())
    assert styles <= set(PGFORGE_THEME.styles)
    assert set(PANEL_STYLES) == {"preview", "done", "partial", "failed"}
