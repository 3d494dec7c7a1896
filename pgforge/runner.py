"""Per-artifact generation state machine.

    Detect -> (Preview) -> Confirm -> (Customize) -> Generate -> Merge -> Write -> Report

Detect falls back to the plan's offline template when the database is
unavailable or analysis fails. Preview is terminal: dry runs compute the
merge but never write. A named-object update that cannot find its target
raises ObjectNotFoundError before Write, leaving the file untouched.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from pgforge.errors import ConnectionUnavailable, ObjectNotFoundError, PartialAnalysisFailure
from pgforge.events import GenerationObserver, NullObserver
from pgforge.merge import MergeEngine, MergeMode, MergeOutcome, provenance_header
from pgforge.models import GeneratedArtifact, ObjectKind, SQLFileState
from pgforge.store import ArtifactKind, TableFolderStore
from pgforge.utils.exit_codes import ExitCodes
from pgforge.utils.logging import logger


class RunState(Enum):
    DETECT = "detect"
    TEMPLATE = "template"
    PREVIEW = "preview"
    CONFIRM = "confirm"
    CUSTOMIZE = "customize"
    GENERATE = "generate"
    MERGE = "merge"
    WRITE = "write"
    REPORT = "report"
    ABORTED = "aborted"


class ArtifactPlan(Protocol):
    """What a command contributes to a run: detection, fallback and rendering."""

    kind: ArtifactKind
    table: str | None

    def detect(self) -> Any:
        """Configuration from live analysis; may raise ConnectionUnavailable."""
        ...

    def template(self) -> Any:
        """Configuration without a database."""
        ...

    def describe(self, config: Any) -> str:
        ...

    def generate(self, config: Any) -> GeneratedArtifact:
        ...

    def confirmation(self, config: Any) -> str | None:
        """Question to ask before a destructive change, or None."""
        ...


@dataclass
class GenerationRequest:
    """Typed run options, validated at the command boundary."""

    mode: MergeMode = MergeMode.MERGE
    dry_run: bool = False
    force: bool = False
    object_name: str | None = None
    object_kind: str = ObjectKind.POLICY
    known_names: tuple[str, ...] = ()
    command: str = "pgforge"
    header: bool = True


@dataclass
class RunOutcome:
    table: str | None
    kind: ArtifactKind
    path: Path
    states: list[RunState] = field(default_factory=list)
    config: Any = None
    artifact: GeneratedArtifact | None = None
    merge: MergeOutcome | None = None
    used_template: bool = False
    written: bool = False
    aborted: bool = False

    @property
    def dry_run(self) -> bool:
        return RunState.PREVIEW in self.states

    @property
    def changed(self) -> bool:
        return bool(self.merge and self.merge.changed)

    @property
    def added(self) -> int:
        return len(self.merge.added) if self.merge else 0

    @property
    def replaced(self) -> int:
        return len(self.merge.replaced) if self.merge else 0


class ArtifactRunner:
    """Drive one plan through the state machine against a TableFolderStore."""

    def __init__(
        self,
        store: TableFolderStore,
        observer: GenerationObserver | None = None,
        confirm: Callable[[str], bool] | None = None,
        customize: Callable[[Any], Any] | None = None,
    ):
        self.store = store
        self.observer = observer or NullObserver()
        self.confirm = confirm
        self.customize = customize
        self.engine = MergeEngine(self.observer)

    def _enter(self, outcome: RunOutcome, state: RunState) -> None:
        outcome.states.append(state)
        self.observer.on_state(outcome.table, state)

    def run(self, request: GenerationRequest, plan: ArtifactPlan) -> RunOutcome:
        outcome = RunOutcome(
            table=plan.table, kind=plan.kind, path=self.store.path_for(plan.kind, plan.table)
        )

        self._enter(outcome, RunState.DETECT)
        try:
            config = plan.detect()
        except (ConnectionUnavailable, PartialAnalysisFailure) as e:
            self.observer.on_warning(f"{e}. Using template generation.", plan.table)
            self._enter(outcome, RunState.TEMPLATE)
            config = plan.template()
            outcome.used_template = True
        outcome.config = config
        self.observer.on_detected(plan.table, plan.describe(config))

        state = self.store.read(outcome.path)

        if request.dry_run:
            self._enter(outcome, RunState.PREVIEW)
            outcome.artifact = plan.generate(config)
            outcome.merge = self._merge(request, state, outcome.artifact)
            self.observer.on_preview(outcome)
            return outcome

        self._enter(outcome, RunState.CONFIRM)
        question = plan.confirmation(config)
        if question is None and request.mode == MergeMode.REPLACE and state.exists and state.existing_text.strip():
            question = f"Replace all of {outcome.path}? Hand-written objects in it will be lost."
        if question and not request.force:
            if self.confirm is None or not self.confirm(question):
                self._enter(outcome, RunState.ABORTED)
                outcome.aborted = True
                self.observer.on_warning("Cancelled; nothing written.", plan.table)
                return outcome

        if self.customize is not None:
            self._enter(outcome, RunState.CUSTOMIZE)
            config = self.customize(config)
            outcome.config = config

        self._enter(outcome, RunState.GENERATE)
        outcome.artifact = plan.generate(config)
        if not outcome.artifact:
            self.observer.on_warning("Nothing to generate.", plan.table)
            outcome.merge = MergeOutcome(text=state.existing_text or "", original=state.existing_text)
            self._enter(outcome, RunState.REPORT)
            self.observer.on_written(outcome)
            return outcome

        self._enter(outcome, RunState.MERGE)
        try:
            outcome.merge = self._merge(request, state, outcome.artifact)
        except ObjectNotFoundError:
            self._enter(outcome, RunState.ABORTED)
            outcome.aborted = True
            raise

        self._enter(outcome, RunState.WRITE)
        if outcome.merge.changed:
            self.store.write(outcome.path, outcome.merge.text)
            outcome.written = True
        else:
            logger.debug(f"{outcome.path} already up to date")

        self._enter(outcome, RunState.REPORT)
        self.observer.on_written(outcome)
        return outcome

    def _merge(
        self, request: GenerationRequest, state: SQLFileState, artifact: GeneratedArtifact
    ) -> MergeOutcome:
        header = provenance_header(request.command) if request.header else None
        if request.object_name:
            return self.engine.replace_object(
                state.existing_text,
                artifact,
                request.object_name,
                kind=request.object_kind,
                known=request.known_names,
                header=header,
            )
        return self.engine.merge(state.existing_text, artifact, request.mode, header=header)


# ============================================================================
# BATCHES
# ============================================================================


@dataclass
class BatchReport:
    """Accumulated result of an --all-tables run."""

    processed: list[str] = field(default_factory=list)
    failed: list[tuple[str, Exception]] = field(default_factory=list)
    outcomes: list[RunOutcome] = field(default_factory=list)

    @property
    def added(self) -> int:
        return sum(o.added for o in self.outcomes)

    @property
    def replaced(self) -> int:
        return sum(o.replaced for o in self.outcomes)

    @property
    def written(self) -> int:
        return sum(1 for o in self.outcomes if o.written)

    @property
    def exit_code(self) -> int:
        return ExitCodes.PARTIAL_FAILURE if self.failed else ExitCodes.SUCCESS

    def record(self, table: str, result: RunOutcome | list[RunOutcome] | None) -> None:
        self.processed.append(table)
        if result is None:
            return
        if isinstance(result, RunOutcome):
            result = [result]
        self.outcomes.extend(result)


def run_batch(
    tables: Iterable[str],
    fn: Callable[[str], RunOutcome | list[RunOutcome] | None],
    observer: GenerationObserver | None = None,
) -> BatchReport:
    """Run ``fn`` per table; one table's failure never stops the next."""
    observer = observer or NullObserver()
    report = BatchReport()
    for table in tables:
        try:
            report.record(table, fn(table))
        except Exception as e:
            logger.opt(exception=True).debug(f"Table {table} failed")
            report.failed.append((table, e))
            observer.on_table_failed(table, e)
    return report
