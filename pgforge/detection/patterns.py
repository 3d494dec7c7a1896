"""Access-control pattern classification for RLS policy generation."""

from dataclasses import dataclass

from pgforge.models import Column, PatternDecision, PatternKind


@dataclass(frozen=True)
class AccessPatterns:
    """Finite name sets driving classification - checked in order."""

    OWNERSHIP_COLUMNS: tuple = ("user_id", "owner_id", "created_by", "author_id")

    OWNERSHIP_TYPES: frozenset = frozenset(
        ["uuid", "integer", "int", "int4", "int8", "bigint", "smallint"]
    )

    ADMIN_TABLE_HINTS: tuple = ("admin", "config", "setting", "system")

    LOOKUP_TABLE_HINTS: tuple = ("category", "tag", "type", "status", "country", "currency")


PATTERNS = AccessPatterns()


def is_ownership_type(type_name: str) -> bool:
    """UUID or integer family, compared case-insensitively."""
    lowered = type_name.lower()
    if lowered in PATTERNS.OWNERSHIP_TYPES:
        return True
    return "uuid" in lowered or "integer" in lowered


def find_ownership_column(columns: list[Column]) -> Column | None:
    """First column, in table order, named like an owner reference with a UUID/integer type."""
    for col in columns:
        if col.name in PATTERNS.OWNERSHIP_COLUMNS and is_ownership_type(col.type):
            return col
    return None


def detect_policy_pattern(
    table: str,
    columns: list[Column],
    ownership_map: dict[str, str] | None = None,
    explicit: PatternKind | None = None,
    owner_column: str | None = None,
    condition: str | None = None,
) -> PatternDecision:
    """Classify a table into an access-control pattern.

    Order of precedence:
    1. explicit pattern from the caller
    2. whole-schema ownership analysis
    3. ownership column scan
    4. administrative table name
    5. lookup table name
    6. default user-data pattern (no owner column)
    """
    if explicit is not None:
        owner = owner_column
        if explicit == PatternKind.USER_SPECIFIC and owner is None:
            found = find_ownership_column(columns)
            owner = found.name if found else (ownership_map or {}).get(table)
        return PatternDecision(
            kind=explicit,
            reason="Explicitly specified by user",
            owner_column=owner,
            condition=condition,
        )

    if ownership_map and table in ownership_map:
        column = ownership_map[table]
        return PatternDecision(
            kind=PatternKind.USER_SPECIFIC,
            reason=f"Detected ownership column: {column}",
            owner_column=column,
        )

    found = find_ownership_column(columns)
    if found is not None:
        return PatternDecision(
            kind=PatternKind.USER_SPECIFIC,
            reason=f"Found ownership column: {found.name}",
            owner_column=found.name,
        )

    lowered = table.lower()
    if any(hint in lowered for hint in PATTERNS.ADMIN_TABLE_HINTS):
        return PatternDecision(
            kind=PatternKind.ADMIN_ONLY,
            reason="Administrative/configuration table detected",
        )

    if any(hint in lowered for hint in PATTERNS.LOOKUP_TABLE_HINTS):
        return PatternDecision(
            kind=PatternKind.PUBLIC_READ,
            reason="Reference/lookup table detected",
        )

    return PatternDecision(
        kind=PatternKind.USER_SPECIFIC,
        reason="Default pattern for user data tables",
    )
