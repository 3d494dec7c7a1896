"""Data contracts shared by detection, generation and merging."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import NamedTuple


# ============================================================================
# SCHEMA METADATA
# ============================================================================


@dataclass
class Column:
    """One table column as reported by the introspector."""

    name: str
    type: str
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_unique: bool = False
    references_table: str | None = None
    references_column: str | None = None
    default: str | None = None
    max_length: int | None = None


@dataclass
class ExistingPolicy:
    name: str
    command: str
    using: str | None = None
    with_check: str | None = None
    roles: list[str] = field(default_factory=list)


@dataclass
class ExistingIndex:
    name: str
    columns: list[str]
    index_type: str = "btree"
    unique: bool = False
    primary: bool = False


@dataclass
class ExistingTrigger:
    name: str
    timing: str
    events: list[str]
    function: str | None = None


@dataclass
class TableSchema:
    """Everything known about one table. Read-only to the detectors."""

    name: str
    schema: str = "api"
    columns: list[Column] = field(default_factory=list)
    policies: list[ExistingPolicy] = field(default_factory=list)
    rls_enabled: bool = False
    indexes: list[ExistingIndex] = field(default_factory=list)
    triggers: list[ExistingTrigger] = field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    @property
    def primary_key(self) -> Column | None:
        for col in self.columns:
            if col.is_primary_key:
                return col
        return None


# ============================================================================
# DETECTION RESULTS
# ============================================================================


class PatternKind(Enum):
    """Access-control pattern for a table's RLS policies."""

    USER_SPECIFIC = "user_specific"
    PUBLIC_READ = "public_read"
    ADMIN_ONLY = "admin_only"
    CUSTOM = "custom"


@dataclass(frozen=True)
class PatternDecision:
    kind: PatternKind
    reason: str
    owner_column: str | None = None
    condition: str | None = None

    @property
    def requires_manual_condition(self) -> bool:
        """True when the decision cannot filter rows without a hand-written condition."""
        if self.kind == PatternKind.USER_SPECIFIC:
            return self.owner_column is None
        if self.kind == PatternKind.CUSTOM:
            return self.condition is None
        return False


class TriggerType(Enum):
    TIMESTAMP = "timestamp"
    TIMESTAMP_FULL = "timestamp_full"
    AUDIT = "audit"
    VALIDATION = "validation"
    SECURITY = "security"
    SOFT_DELETE = "soft_delete"
    BASIC = "basic"


@dataclass(frozen=True)
class TriggerSuggestion:
    name: str
    type: TriggerType
    description: str
    reason: str


class IndexType(Enum):
    BTREE = "btree"
    GIN = "gin"
    GIST = "gist"
    HASH = "hash"


class Impact(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class IndexRecommendation:
    index_name: str
    columns: tuple[str, ...]
    index_type: IndexType = IndexType.BTREE
    unique: bool = False
    partial_condition: str | None = None
    reason: str = ""
    impact: Impact | None = None


@dataclass(frozen=True)
class RedundantIndex:
    """An index whose columns are a strict prefix of another index."""

    index_name: str
    covered_by: str
    columns: tuple[str, ...]


class FunctionType(Enum):
    AUTH = "auth"
    CRUD = "crud"
    UTILITY = "utility"
    CUSTOM = "custom"


class ViewTemplate(Enum):
    SIMPLE = "simple"
    FILTERED = "filtered"
    AGGREGATED = "aggregated"
    SECURITY = "security"
    JOINED = "joined"


@dataclass(frozen=True)
class ViewJoin:
    table: str
    alias: str
    condition: str
    join_type: str = "LEFT"


@dataclass(frozen=True)
class ViewDefinition:
    """One view over a base table; every expression is already validated."""

    name: str
    base_table: str
    template: ViewTemplate = ViewTemplate.SIMPLE
    columns: tuple[str, ...] = ("*",)
    joins: tuple[ViewJoin, ...] = ()
    where: str | None = None
    group_by: tuple[str, ...] = ()
    order_by: str | None = None
    materialized: bool = False
    reason: str = ""


# ============================================================================
# ARTIFACTS
# ============================================================================


class ObjectKind:
    """Identity key kinds. Plain strings so keys stay cheap to compare and print."""

    POLICY = "policy"
    INDEX = "index"
    TRIGGER = "trigger"
    FUNCTION = "function"
    VIEW = "view"
    TABLE = "table"
    ROLE = "role"
    RLS = "rls"

    ALL = (POLICY, INDEX, TRIGGER, FUNCTION, VIEW, TABLE, ROLE, RLS)


class IdentityKey(NamedTuple):
    """Unique name of a database object within one artifact file."""

    kind: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.name}"


@dataclass(frozen=True)
class SQLFragment:
    """A single statement plus its leading descriptive comment.

    key set, attached False -> declares the object
    key set, attached True  -> companion statement (DROP / COMMENT ON / GRANT EXECUTE)
    key None                -> ancillary statement (ALTER TABLE, GRANT ON TABLE, ...)
    """

    text: str
    key: IdentityKey | None = None
    attached: bool = False

    @property
    def declares(self) -> bool:
        return self.key is not None and not self.attached


@dataclass
class GeneratedArtifact:
    """Structured output of a generator: ordered fragments with their identities."""

    kind: str
    fragments: list[SQLFragment] = field(default_factory=list)
    title: str | None = None

    @property
    def text(self) -> str:
        parts = []
        if self.title:
            parts.append(f"-- {self.title}\n")
        parts.extend(fragment.text.rstrip("\n") + "\n" for fragment in self.fragments)
        return "\n".join(parts)

    @property
    def identity_keys(self) -> list[IdentityKey]:
        """Declared keys in generation order, without repeats."""
        seen: list[IdentityKey] = []
        for fragment in self.fragments:
            if fragment.declares and fragment.key not in seen:
                seen.append(fragment.key)
        return seen

    def names(self, kind: str | None = None) -> list[str]:
        return [k.name for k in self.identity_keys if kind is None or k.kind == kind]

    def extend(self, other: "GeneratedArtifact") -> None:
        self.fragments.extend(other.fragments)

    def select(self, key: IdentityKey) -> "GeneratedArtifact":
        """Sub-artifact holding only the fragments that belong to one key."""
        return GeneratedArtifact(
            kind=self.kind,
            fragments=[f for f in self.fragments if f.key == key],
        )

    def __bool__(self) -> bool:
        return bool(self.fragments)


@dataclass
class SQLFileState:
    """Snapshot of an artifact file before merging."""

    path: Path
    existing_text: str | None = None
    existing_identity_keys: list[IdentityKey] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.existing_text is not None
