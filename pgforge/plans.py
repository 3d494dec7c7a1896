"""Per-command option structs and the artifact plans the runner executes.

Options are validated once at the command boundary; plans never see raw
click values.
"""

from collections.abc import Callable
from dataclasses import dataclass, field, replace

from pgforge.config_runtime import PostgrestSettings
from pgforge.detection import (
    analyze_table_for_triggers,
    detect_function_type,
    detect_policy_pattern,
    drop_existing,
    filter_performance_only,
    index_name_for,
    missing_trigger_suggestions,
    recommend_indexes,
    suggest_views,
)
from pgforge.detection.functions import CRUD_PREFIXES
from pgforge.errors import ConnectionUnavailable, PartialAnalysisFailure, ValidationError
from pgforge.generators import (
    FunctionGenerator,
    IndexGenerator,
    PolicyGenerator,
    RoleGenerator,
    TriggerGenerator,
    ViewGenerator,
    analysis_queries,
)
from pgforge.introspect import SchemaIntrospector
from pgforge.models import (
    Column,
    FunctionType,
    GeneratedArtifact,
    IndexRecommendation,
    IndexType,
    PatternDecision,
    PatternKind,
    TableSchema,
    TriggerSuggestion,
    TriggerType,
    ViewDefinition,
    ViewTemplate,
)
from pgforge.store import ArtifactKind
from pgforge.utils.logging import logger
from pgforge.utils.validation import validate_table_name


class SchemaContext:
    """Shared per-command access to settings and the (optional) database.

    The whole-schema ownership analysis is computed at most once per command
    and reused by every table of a batch.
    """

    def __init__(
        self,
        settings: PostgrestSettings,
        introspector: SchemaIntrospector | None = None,
        warn: Callable[[str], None] | None = None,
    ):
        self.settings = settings
        self.introspector = introspector
        self.warn = warn or logger.warning
        self._ownership: dict[str, str] | None = None
        self._ownership_loaded = False

    @property
    def connected(self) -> bool:
        return self.introspector is not None

    def require(self) -> SchemaIntrospector:
        if self.introspector is None:
            raise ConnectionUnavailable("No database connection configured")
        return self.introspector

    def columns(self, table: str) -> list[Column]:
        columns = self.require().analyze_table(table)
        if not columns:
            raise PartialAnalysisFailure("column", f"table {self.introspector.schema}.{table} not found")
        return columns

    def ownership_map(self) -> dict[str, str] | None:
        if not self._ownership_loaded:
            self._ownership_loaded = True
            try:
                self._ownership = self.require().detect_user_ownership_patterns()
            except (ConnectionUnavailable, PartialAnalysisFailure) as e:
                self.warn(f"Ownership analysis skipped: {e}")
        return self._ownership

    def optional(self, category: str, fn: Callable[[], list]) -> list:
        """Run one optional analysis step; a failure omits that category."""
        try:
            return fn()
        except PartialAnalysisFailure as e:
            self.warn(f"{e}; {category} results omitted")
            return []

    def table_schema(self, table: str, with_indexes: bool = False, with_triggers: bool = False) -> TableSchema:
        """Columns plus existing policies and RLS state, optionally indexes and triggers.

        Columns are required. Every other category is independent: a failing
        one is reported through ``warn`` and left empty.
        """
        db = self.require()
        result = TableSchema(name=table, schema=db.schema, columns=self.columns(table))
        result.policies = self.optional("policy", lambda: db.get_table_policies(table))
        try:
            result.rls_enabled = db.check_rls_status().get(table, False)
        except PartialAnalysisFailure as e:
            self.warn(f"{e}; rls results omitted")
        if with_indexes:
            result.indexes = self.optional("index", lambda: db.get_table_indexes(table))
        if with_triggers:
            result.triggers = self.optional("trigger", lambda: db.get_table_triggers(table))
        return result


# ============================================================================
# POLICIES
# ============================================================================


@dataclass
class PolicyOptions:
    table: str
    schema: str
    pattern: PatternKind | None = None
    owner_column: str | None = None
    condition: str | None = None
    enable_rls: bool | None = None

    def __post_init__(self):
        # An owner column on its own means "this table is user specific"
        if self.pattern is None and self.owner_column:
            self.pattern = PatternKind.USER_SPECIFIC


class PolicyPlan:
    kind = ArtifactKind.RLS

    def __init__(self, options: PolicyOptions, context: SchemaContext):
        self.options = options
        self.context = context
        self.table = options.table
        self.generator = PolicyGenerator(context.settings)

    def detect(self) -> PatternDecision:
        o = self.options
        if o.enable_rls is not None:
            return self.template()
        columns = self.context.columns(o.table)
        ownership = None if o.pattern else self.context.ownership_map()
        return detect_policy_pattern(
            o.table, columns, ownership, explicit=o.pattern, owner_column=o.owner_column, condition=o.condition
        )

    def template(self) -> PatternDecision:
        o = self.options
        return detect_policy_pattern(
            o.table, [], explicit=o.pattern, owner_column=o.owner_column, condition=o.condition
        )

    def describe(self, decision: PatternDecision) -> str:
        if self.options.enable_rls is not None:
            return f"Row level security will be {'enabled' if self.options.enable_rls else 'disabled'}"
        text = f"Pattern {decision.kind.value} ({decision.reason})"
        if decision.owner_column:
            text += f", owner column {decision.owner_column}"
        if decision.requires_manual_condition:
            text += "; no row filter available, access is denied until a condition is added"
        return text

    def generate(self, decision: PatternDecision) -> GeneratedArtifact:
        o = self.options
        if o.enable_rls is not None:
            return self.generator.rls_toggle_artifact(o.table, o.enable_rls, o.schema)
        return self.generator.generate(o.table, decision, o.schema)

    def confirmation(self, decision: PatternDecision) -> str | None:
        if self.options.enable_rls is False:
            return (
                f"Disable row level security on {self.options.schema}.{self.table}? "
                "Every role with table privileges will see all rows."
            )
        return None

    def known_names(self) -> tuple[str, ...]:
        """Policy names that exist in the live database."""
        if not self.context.connected:
            return ()
        try:
            return tuple(p.name for p in self.context.require().get_table_policies(self.table))
        except (ConnectionUnavailable, PartialAnalysisFailure) as e:
            self.context.warn(f"Could not list live policies: {e}")
            return ()


# ============================================================================
# TRIGGERS
# ============================================================================


@dataclass
class TriggerOptions:
    table: str
    schema: str
    types: list[TriggerType] = field(default_factory=list)
    dynamic: bool = False


@dataclass
class TriggerConfig:
    types: list[TriggerType]
    columns: list[Column] = field(default_factory=list)
    suggestions: list[TriggerSuggestion] = field(default_factory=list)


class TriggerPlan:
    kind = ArtifactKind.TRIGGERS

    def __init__(self, options: TriggerOptions, context: SchemaContext):
        self.options = options
        self.context = context
        self.table = options.table
        self.generator = TriggerGenerator(context.settings)

    def detect(self) -> TriggerConfig:
        if not self.options.dynamic:
            return self.template()
        columns = self.context.columns(self.table)
        suggestions = analyze_table_for_triggers(self.table, columns)
        existing = self.context.optional(
            "trigger", lambda: [t.name for t in self.context.require().get_table_triggers(self.table)]
        )
        suggestions = missing_trigger_suggestions(suggestions, existing, self.table)
        types = list(self.options.types) or [s.type for s in suggestions]
        return TriggerConfig(types=types, columns=columns, suggestions=suggestions)

    def template(self) -> TriggerConfig:
        return TriggerConfig(types=list(self.options.types) or [TriggerType.TIMESTAMP])

    def describe(self, config: TriggerConfig) -> str:
        if not config.types:
            return "No triggers needed"
        return "Triggers: " + ", ".join(t.value for t in config.types)

    def generate(self, config: TriggerConfig) -> GeneratedArtifact:
        return self.generator.generate(self.table, config.types, config.columns, self.options.schema)

    def confirmation(self, config: TriggerConfig) -> str | None:
        return None


# ============================================================================
# INDEXES
# ============================================================================


@dataclass
class IndexOptions:
    table: str
    schema: str
    columns: list[str] = field(default_factory=list)
    index_type: IndexType = IndexType.BTREE
    unique: bool = False
    where: str | None = None
    name: str | None = None
    dynamic: bool = False
    performance_only: bool = False

    def recommendation(self) -> IndexRecommendation:
        suffix = "unique" if self.unique else ""
        return IndexRecommendation(
            index_name=self.name or index_name_for(self.table, self.columns, suffix),
            columns=tuple(self.columns),
            index_type=self.index_type,
            unique=self.unique,
            partial_condition=self.where,
            reason="Requested index",
        )


@dataclass
class IndexConfig:
    recommendations: list[IndexRecommendation]


class IndexPlan:
    kind = ArtifactKind.INDEXES

    def __init__(self, options: IndexOptions, context: SchemaContext):
        self.options = options
        self.context = context
        self.table = options.table
        self.generator = IndexGenerator(context.settings)

    def detect(self) -> IndexConfig:
        if not self.options.dynamic:
            return self.template()
        columns = self.context.columns(self.table)
        recs = recommend_indexes(self.table, columns)
        existing = self.context.optional(
            "index", lambda: self.context.require().get_table_indexes(self.table)
        )
        recs = drop_existing(recs, existing)
        if self.options.performance_only:
            recs = filter_performance_only(recs)
        return IndexConfig(recommendations=recs)

    def template(self) -> IndexConfig:
        if not self.options.columns:
            return IndexConfig(recommendations=[])
        return IndexConfig(recommendations=[self.options.recommendation()])

    def describe(self, config: IndexConfig) -> str:
        if not config.recommendations:
            return "No index recommendations"
        return f"{len(config.recommendations)} index(es): " + ", ".join(
            r.index_name for r in config.recommendations
        )

    def generate(self, config: IndexConfig) -> GeneratedArtifact:
        return self.generator.generate(self.table, config.recommendations, self.options.schema)

    def confirmation(self, config: IndexConfig) -> str | None:
        return None


class AnalysisPlan:
    """Index diagnostics for ``analysis.sql``; needs no database."""

    kind = ArtifactKind.ANALYSIS

    def __init__(self, table: str, schema: str):
        self.table = table
        self.schema = schema

    def detect(self) -> None:
        return None

    def template(self) -> None:
        return None

    def describe(self, config) -> str:
        return f"Index analysis queries for {self.schema}.{self.table}"

    def generate(self, config) -> GeneratedArtifact:
        return analysis_queries(self.table, self.schema)

    def confirmation(self, config) -> str | None:
        return None


# ============================================================================
# FUNCTIONS
# ============================================================================


@dataclass
class FunctionOptions:
    name: str
    schema: str
    function_type: FunctionType | None = None
    table: str | None = None
    params: str = ""
    returns: str = "VOID"
    language: str = "plpgsql"
    security_definer: bool = False

    def __post_init__(self):
        if self.function_type is None:
            self.function_type = detect_function_type(self.name)
        if self.function_type == FunctionType.CRUD and self.table is None:
            self.table = crud_table_for(self.name)


def crud_table_for(name: str) -> str:
    """Table a CRUD function name refers to: ``create_orders`` -> ``orders``."""
    lowered = name.lower()
    for prefix in CRUD_PREFIXES:
        if lowered.startswith(prefix) and len(lowered) > len(prefix):
            return validate_table_name(lowered[len(prefix):])
    raise ValidationError(f"Cannot tell which table '{name}' manages; pass --table")


@dataclass
class FunctionConfig:
    function_type: FunctionType
    primary_key: Column | None = None
    columns: list[Column] = field(default_factory=list)


class FunctionPlan:
    kind = ArtifactKind.FUNCTIONS

    def __init__(self, options: FunctionOptions, context: SchemaContext):
        self.options = options
        self.context = context
        # Auth helpers are schema-wide; everything else follows --table
        self.table = None if options.function_type == FunctionType.AUTH else options.table
        self.generator = FunctionGenerator(context.settings)

    def detect(self) -> FunctionConfig:
        o = self.options
        if o.table is None or o.function_type in (FunctionType.AUTH, FunctionType.CUSTOM):
            return self.template()
        table_schema = TableSchema(name=o.table, schema=o.schema, columns=self.context.columns(o.table))
        return FunctionConfig(o.function_type, table_schema.primary_key, table_schema.columns)

    def template(self) -> FunctionConfig:
        return FunctionConfig(self.options.function_type)

    def describe(self, config: FunctionConfig) -> str:
        text = f"Function type {config.function_type.value}"
        if config.primary_key:
            text += f", primary key {config.primary_key.name} {config.primary_key.type}"
        return text

    def generate(self, config: FunctionConfig) -> GeneratedArtifact:
        o = self.options
        if config.function_type == FunctionType.AUTH:
            return self.generator.auth_functions()
        if config.function_type == FunctionType.CRUD:
            return self.generator.crud_functions(o.table, config.primary_key, o.schema)
        if config.function_type == FunctionType.UTILITY:
            return self.generator.utility_function(o.name, o.table, config.columns, o.schema)
        return self.generator.custom_function(
            o.name, o.params, o.returns, o.language, o.security_definer, o.schema
        )

    def confirmation(self, config: FunctionConfig) -> str | None:
        return None


# ============================================================================
# ROLES
# ============================================================================


@dataclass
class RoleOptions:
    schema: str
    include_authenticator: bool = True


class RolePlan:
    kind = ArtifactKind.ROLES
    table = None

    def __init__(self, options: RoleOptions, context: SchemaContext):
        self.options = options
        self.generator = RoleGenerator(context.settings)

    def detect(self) -> RoleOptions:
        return self.options

    def template(self) -> RoleOptions:
        return self.options

    def describe(self, config: RoleOptions) -> str:
        s = self.generator.settings
        roles = [s.anon_role, s.authenticated_role, s.admin_role]
        if config.include_authenticator:
            roles.append(s.authenticator_role)
        return "Roles: " + ", ".join(roles)

    def generate(self, config: RoleOptions) -> GeneratedArtifact:
        return self.generator.generate(config.include_authenticator, config.schema)

    def confirmation(self, config: RoleOptions) -> str | None:
        return None


# ============================================================================
# VIEWS
# ============================================================================


VIEW_NAME_SUFFIXES = {
    ViewTemplate.SIMPLE: "view",
    ViewTemplate.FILTERED: "filtered",
    ViewTemplate.AGGREGATED: "summary",
}


@dataclass
class ViewOptions:
    table: str
    schema: str
    template: ViewTemplate | None = None
    name: str | None = None
    columns: list[str] = field(default_factory=list)
    where: str | None = None
    group_by: list[str] = field(default_factory=list)
    materialized: bool = False
    dynamic: bool = False

    def __post_init__(self):
        # Security and joined views are derived from column metadata
        if self.template in (ViewTemplate.SECURITY, ViewTemplate.JOINED):
            self.dynamic = True

    def definition(self) -> ViewDefinition:
        """The one view the flags describe, without looking at the database."""
        template = self.template or ViewTemplate.SIMPLE
        if template not in VIEW_NAME_SUFFIXES:
            raise ValidationError(
                f"{template.value} views are derived from column metadata and need a database connection"
            )
        if template == ViewTemplate.FILTERED and not self.where:
            raise ValidationError("A filtered view needs --where")
        if template == ViewTemplate.AGGREGATED and not self.group_by:
            raise ValidationError("An aggregated view needs --group-by")

        columns = tuple(self.columns) or ("*",)
        group_by: tuple[str, ...] = ()
        if template == ViewTemplate.AGGREGATED:
            group_by = tuple(self.group_by)
            columns = group_by + ("count(*) AS total",)
        return ViewDefinition(
            name=self.name or f"{self.table}_{VIEW_NAME_SUFFIXES[template]}",
            base_table=self.table,
            template=template,
            columns=columns,
            where=self.where,
            group_by=group_by,
            materialized=self.materialized,
            reason="Requested view",
        )


@dataclass
class ViewConfig:
    views: list[ViewDefinition]


class ViewPlan:
    kind = ArtifactKind.VIEWS

    def __init__(self, options: ViewOptions, context: SchemaContext):
        self.options = options
        self.context = context
        self.table = options.table
        self.generator = ViewGenerator(context.settings)

    def detect(self) -> ViewConfig:
        o = self.options
        if not o.dynamic:
            return self.template()
        views = suggest_views(self.table, self.context.columns(self.table))
        if o.template is not None:
            views = [v for v in views if v.template == o.template]
        if o.materialized:
            views = [replace(v, materialized=True) for v in views]
        if o.name and len(views) == 1:
            views = [replace(views[0], name=o.name)]
        return ViewConfig(views=views)

    def template(self) -> ViewConfig:
        return ViewConfig(views=[self.options.definition()])

    def describe(self, config: ViewConfig) -> str:
        if not config.views:
            return "No views suggested"
        return f"{len(config.views)} view(s): " + ", ".join(v.name for v in config.views)

    def generate(self, config: ViewConfig) -> GeneratedArtifact:
        return self.generator.generate(self.table, config.views, self.options.schema)

    def confirmation(self, config: ViewConfig) -> str | None:
        return None


class CommonViewsPlan:
    """Catalog views for the schema-wide ``views.sql``; needs no database."""

    kind = ArtifactKind.VIEWS
    table = None

    def __init__(self, schema: str, context: SchemaContext):
        self.schema = schema
        self.generator = ViewGenerator(context.settings)

    def detect(self) -> None:
        return None

    def template(self) -> None:
        return None

    def describe(self, config) -> str:
        return f"Common catalog views for schema {self.schema}"

    def generate(self, config) -> GeneratedArtifact:
        return self.generator.common_views(self.schema)

    def confirmation(self, config) -> str | None:
        return None
