"""Console presentation for commands."""
from .reporter import ConsoleReporter
from .ui import console, print_error, print_header, print_sql, print_status_panel, print_success, print_warning

__all__ = [
    "ConsoleReporter",
    "console", "print_header", "print_error", "print_warning", "print_success",
    "print_sql", "print_status_panel",
]
