"""Observer interface for generation runs.

Decouples detection, merging and orchestration from presentation. The core
never prints; it reports through an injected observer.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pgforge.runner import RunOutcome, RunState


class GenerationObserver(Protocol):
    """Observer interface for artifact generation events."""

    def on_state(self, table: str | None, state: "RunState") -> None:
        """Called on every state-machine transition."""
        ...

    def on_detected(self, table: str | None, message: str) -> None:
        """Called with a human summary of what detection decided."""
        ...

    def on_warning(self, message: str, table: str | None = None) -> None:
        """Called for recoverable problems (fallbacks, degraded merges)."""
        ...

    def on_preview(self, outcome: "RunOutcome") -> None:
        """Called instead of a write when running with --dry-run."""
        ...

    def on_written(self, outcome: "RunOutcome") -> None:
        """Called after the Write/Report states, whether or not the file changed."""
        ...

    def on_table_failed(self, table: str, error: Exception) -> None:
        """Called when one table of a batch fails; the batch continues."""
        ...


class NullObserver:
    """Observer that ignores everything. Default for library use and tests."""

    def on_state(self, table, state) -> None:
        pass

    def on_detected(self, table, message) -> None:
        pass

    def on_warning(self, message, table=None) -> None:
        pass

    def on_preview(self, outcome) -> None:
        pass

    def on_written(self, outcome) -> None:
        pass

    def on_table_failed(self, table, error) -> None:
        pass


class RecordingObserver(NullObserver):
    """Observer that keeps every event in memory, in arrival order."""

    def __init__(self):
        self.events: list[tuple[str, object]] = []

    def on_state(self, table, state) -> None:
        self.events.append(("state", (table, state)))

    def on_detected(self, table, message) -> None:
        self.events.append(("detected", (table, message)))

    def on_warning(self, message, table=None) -> None:
        self.events.append(("warning", (table, message)))

    def on_preview(self, outcome) -> None:
        self.events.append(("preview", outcome))

    def on_written(self, outcome) -> None:
        self.events.append(("written", outcome))

    def on_table_failed(self, table, error) -> None:
        self.events.append(("failed", (table, error)))

    @property
    def warnings(self) -> list[str]:
        return [payload[1] for kind, payload in self.events if kind == "warning"]

    @property
    def states(self) -> list["RunState"]:
        return [payload[1] for kind, payload in self.events if kind == "state"]
