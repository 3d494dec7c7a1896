"""Console output for pgforge commands.

Every command prints through the one themed ``console`` below so that
object names, artifact paths and impact levels look the same everywhere.
SQL previews are syntax highlighted on a terminal and printed verbatim
otherwise, so redirected output can be fed straight to psql.
"""

import sys

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text
from rich.theme import Theme

PGFORGE_THEME = Theme({
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "success": "bold green",
    "impact.critical": "bold red",
    "impact.high": "bold yellow",
    "impact.medium": "bold blue",
    "impact.low": "cyan",
    "object": "bold magenta",
    "command": "bold magenta",
    "path": "bold cyan",
    "dim": "dim white",
})

console = Console(
    theme=PGFORGE_THEME,
    force_terminal=sys.stdout.isatty()
)

# Index recommendation impact -> theme style
IMPACT_STYLES = {
    "CRITICAL": "impact.critical",
    "HIGH": "impact.high",
    "MEDIUM": "impact.medium",
    "LOW": "impact.low",
}

# Run outcome panel level -> (label style, border style)
PANEL_STYLES = {
    "preview": ("bold cyan", "cyan"),
    "done": ("bold green", "green"),
    "partial": ("bold yellow", "yellow"),
    "failed": ("bold red", "red"),
}


def print_header(title: str) -> None:
    console.rule(f"[bold]{title}[/bold]")


def print_error(msg: str) -> None:
    console.print(f"[error]ERROR:[/error] {msg}")


def print_warning(msg: str) -> None:
    console.print(f"[warning]WARNING:[/warning] {msg}")


def print_success(msg: str) -> None:
    console.print(f"[success]OK:[/success] {msg}")


def print_sql(sql: str) -> None:
    """Print generated SQL, highlighted only when attached to a terminal."""
    if console.is_terminal:
        console.print(Syntax(sql, "sql", theme="ansi_dark", word_wrap=True))
    else:
        console.print(sql, markup=False, highlight=False)


def print_status_panel(status: str, message: str, detail: str, level: str = "preview") -> None:
    """Boxed summary of a dry run or a batch over several tables.

    ``level`` is a key of PANEL_STYLES; unknown levels print unstyled.
    """
    label_style, border_style = PANEL_STYLES.get(level, ("white", "white"))
    body = Text.assemble(
        (f"{status}\n", label_style),
        (message, border_style),
    )
    if detail:
        body.append(f"\n{detail}", style="dim")
    console.print(Panel(body, border_style=border_style, expand=False))
