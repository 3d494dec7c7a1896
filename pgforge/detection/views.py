"""View suggestions from a table's columns."""

from dataclasses import dataclass

from pgforge.models import Column, ViewDefinition, ViewJoin, ViewTemplate
from pgforge.utils.constants import MAX_IDENTIFIER_LENGTH


@dataclass(frozen=True)
class ViewPatterns:
    """Column names that make a view worth suggesting."""

    SENSITIVE_COLUMN_HINTS: tuple = ("password", "secret", "token", "ssn", "credit_card", "api_key", "salt")

    SOFT_DELETE_COLUMN: str = "deleted_at"

    ACTIVE_FLAG_COLUMN: str = "is_active"

    CREATED_COLUMN: str = "created_at"


PATTERNS = ViewPatterns()


def is_sensitive_column(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in PATTERNS.SENSITIVE_COLUMN_HINTS)


def _reference_stem(column: str) -> str:
    return column[:-3] if column.endswith("_id") and len(column) > 3 else column


def security_view(table: str, columns: list[Column]) -> ViewDefinition | None:
    """Every column except the sensitive ones, or None when nothing is hidden."""
    hidden = [c.name for c in columns if is_sensitive_column(c.name)]
    visible = [c.name for c in columns if not is_sensitive_column(c.name)]
    if not hidden or not visible:
        return None
    return ViewDefinition(
        name=f"{table}_public",
        base_table=table,
        template=ViewTemplate.SECURITY,
        columns=tuple(visible),
        reason=f"Hides sensitive columns: {', '.join(hidden)}",
    )


def joined_view(table: str, columns: list[Column]) -> ViewDefinition | None:
    """The table with each referenced row folded into a JSON column."""
    foreign_keys = [c for c in columns if c.is_foreign_key and c.references_table]
    if not foreign_keys:
        return None
    joins = []
    selected = [f"{table}.*"]
    for col in foreign_keys:
        alias = f"{_reference_stem(col.name)}_ref"
        joins.append(
            ViewJoin(
                table=col.references_table,
                alias=alias,
                condition=f"{table}.{col.name} = {alias}.{col.references_column or 'id'}",
            )
        )
        selected.append(f"to_jsonb({alias}) AS {_reference_stem(col.name)}_data")
    return ViewDefinition(
        name=f"{table}_details",
        base_table=table,
        template=ViewTemplate.JOINED,
        columns=tuple(selected),
        joins=tuple(joins),
        reason="Foreign keys: " + ", ".join(f"{c.name} -> {c.references_table}" for c in foreign_keys),
    )


def suggest_views(table: str, columns: list[Column]) -> list[ViewDefinition]:
    """Evaluate every rule independently and return all matches, in rule order.

    Suggestions whose derived name would exceed the identifier limit are
    dropped rather than truncated.
    """
    by_name = {c.name: c for c in columns}
    active = by_name.get(PATTERNS.ACTIVE_FLAG_COLUMN)
    suggestions: list[ViewDefinition] = []

    secure = security_view(table, columns)
    if secure is not None:
        suggestions.append(secure)

    if PATTERNS.SOFT_DELETE_COLUMN in by_name:
        suggestions.append(
            ViewDefinition(
                name=f"{table}_active",
                base_table=table,
                template=ViewTemplate.FILTERED,
                where=f"{PATTERNS.SOFT_DELETE_COLUMN} IS NULL",
                reason="Found deleted_at column (soft delete pattern)",
            )
        )
    elif active is not None and "BOOL" in active.type.upper():
        suggestions.append(
            ViewDefinition(
                name=f"{table}_active",
                base_table=table,
                template=ViewTemplate.FILTERED,
                where=PATTERNS.ACTIVE_FLAG_COLUMN,
                reason="Found is_active flag",
            )
        )

    joined = joined_view(table, columns)
    if joined is not None:
        suggestions.append(joined)

    created = by_name.get(PATTERNS.CREATED_COLUMN)
    if created is not None and "TIMESTAMP" in created.type.upper():
        day = f"date_trunc('day', {created.name})"
        suggestions.append(
            ViewDefinition(
                name=f"{table}_daily_stats",
                base_table=table,
                template=ViewTemplate.AGGREGATED,
                columns=(f"{day} AS day", "count(*) AS total"),
                group_by=(day,),
                order_by="day DESC",
                reason="Found created_at column",
            )
        )

    return [s for s in suggestions if len(s.name) <= MAX_IDENTIFIER_LENGTH]
