"""Index recommendations, filtering and redundancy checks.

Recommendations come from column metadata (foreign keys, status flags, time
columns, searchable text). Live statistics only add performance issues on
top; they never remove a recommendation.
"""

import re
from dataclasses import dataclass

from pgforge.models import (
    Column,
    ExistingIndex,
    Impact,
    IndexRecommendation,
    IndexType,
    RedundantIndex,
)
from pgforge.utils.constants import LARGE_TABLE_BYTES, MAX_IDENTIFIER_LENGTH


@dataclass(frozen=True)
class IndexPatterns:
    """Column name sets that usually end up in WHERE / ORDER BY clauses."""

    STATUS_COLUMNS: tuple = (
        "status",
        "state",
        "is_active",
        "is_published",
        "is_public",
        "is_deleted",
        "published",
    )

    CATEGORY_COLUMNS: tuple = ("category", "type", "kind", "classification")

    TIME_COLUMNS: tuple = ("created_at", "updated_at")

    SEARCH_COLUMN_HINTS: tuple = ("title", "name", "content", "description")

    UNIQUE_LOOKUP_COLUMNS: tuple = ("email", "slug", "username")


PATTERNS = IndexPatterns()

PERFORMANCE_IMPACTS = frozenset([Impact.HIGH, Impact.CRITICAL])

_SANITIZE_RE = re.compile(r"[^a-z0-9_]+")


def index_name_for(table: str, columns: list[str] | tuple[str, ...], suffix: str = "") -> str:
    """idx_<table>_<col>_<col>[_suffix], lower-case and truncated to 63 chars."""
    parts = [_SANITIZE_RE.sub("_", c.lower()).strip("_") for c in columns]
    name = f"idx_{table.lower()}_{'_'.join(p for p in parts if p)}"
    if suffix:
        name = f"{name}_{suffix}"
    return name[:MAX_IDENTIFIER_LENGTH]


def _is_text_type(col: Column) -> bool:
    lowered = col.type.lower()
    return "text" in lowered or "varchar" in lowered or "character" in lowered


def _is_boolean(col: Column) -> bool:
    return col.type.upper() in ("BOOLEAN", "BOOL")


def recommend_indexes(table: str, columns: list[Column]) -> list[IndexRecommendation]:
    """Column-driven recommendations, in priority order, without repeats."""
    recs: list[IndexRecommendation] = []
    by_name = {c.name: c for c in columns}

    for col in columns:
        if col.is_foreign_key and not col.is_primary_key:
            target = f" referencing {col.references_table}" if col.references_table else ""
            recs.append(
                IndexRecommendation(
                    index_name=index_name_for(table, [col.name]),
                    columns=(col.name,),
                    reason=f"Foreign key column{target} used in joins",
                    impact=Impact.HIGH,
                )
            )

    if "user_id" in by_name and "created_at" in by_name:
        recs.append(
            IndexRecommendation(
                index_name=index_name_for(table, ["user_id", "created_at"]),
                columns=("user_id", "created_at"),
                reason="Per-user listings ordered by creation time",
                impact=Impact.HIGH,
            )
        )

    for col in columns:
        if col.name not in PATTERNS.STATUS_COLUMNS:
            continue
        if _is_boolean(col):
            recs.append(
                IndexRecommendation(
                    index_name=index_name_for(table, [col.name], "true"),
                    columns=(col.name,),
                    partial_condition=f"{col.name} = true",
                    reason=f"Filtering on {col.name}; partial index keeps it small",
                    impact=Impact.MEDIUM,
                )
            )
        else:
            recs.append(
                IndexRecommendation(
                    index_name=index_name_for(table, [col.name]),
                    columns=(col.name,),
                    reason=f"Status filtering on {col.name}",
                    impact=Impact.MEDIUM,
                )
            )

    for col in columns:
        if col.name in PATTERNS.CATEGORY_COLUMNS:
            recs.append(
                IndexRecommendation(
                    index_name=index_name_for(table, [col.name]),
                    columns=(col.name,),
                    reason=f"Category filtering on {col.name}",
                    impact=Impact.MEDIUM,
                )
            )

    for name in PATTERNS.TIME_COLUMNS:
        if name in by_name:
            recs.append(
                IndexRecommendation(
                    index_name=index_name_for(table, [name]),
                    columns=(name,),
                    reason=f"Sorting and range queries on {name}",
                    impact=Impact.MEDIUM,
                )
            )

    for col in columns:
        if _is_text_type(col) and any(h in col.name.lower() for h in PATTERNS.SEARCH_COLUMN_HINTS):
            recs.append(
                IndexRecommendation(
                    index_name=index_name_for(table, [col.name], "search"),
                    columns=(f"to_tsvector('english', {col.name})",),
                    index_type=IndexType.GIN,
                    reason=f"Full-text search on {col.name}",
                    impact=Impact.MEDIUM,
                )
            )

    for col in columns:
        if col.name in PATTERNS.UNIQUE_LOOKUP_COLUMNS and not col.is_unique and not col.is_primary_key:
            recs.append(
                IndexRecommendation(
                    index_name=index_name_for(table, [col.name]),
                    columns=(col.name,),
                    reason=f"Point lookups by {col.name}",
                    impact=Impact.LOW,
                )
            )

    return _dedupe_by_name(recs)


def _dedupe_by_name(recs: list[IndexRecommendation]) -> list[IndexRecommendation]:
    seen: set[str] = set()
    result = []
    for rec in recs:
        if rec.index_name in seen:
            continue
        seen.add(rec.index_name)
        result.append(rec)
    return result


def filter_performance_only(recs: list[IndexRecommendation]) -> list[IndexRecommendation]:
    """Keep only HIGH and CRITICAL impact recommendations."""
    return [r for r in recs if r.impact in PERFORMANCE_IMPACTS]


def drop_existing(
    recs: list[IndexRecommendation], existing: list[ExistingIndex]
) -> list[IndexRecommendation]:
    """Remove recommendations already satisfied by an index of the same name or columns."""
    names = {idx.name.lower() for idx in existing}
    column_sets = {tuple(c.lower() for c in idx.columns) for idx in existing}
    result = []
    for rec in recs:
        if rec.index_name.lower() in names:
            continue
        if rec.partial_condition is None and tuple(c.lower() for c in rec.columns) in column_sets:
            continue
        result.append(rec)
    return result


def find_redundant_indexes(existing: list[ExistingIndex]) -> list[RedundantIndex]:
    """Non-unique indexes whose column list is a strict prefix of another index."""
    redundant = []
    for idx in existing:
        if idx.unique or idx.primary or not idx.columns:
            continue
        for other in existing:
            if other.name == idx.name or len(other.columns) <= len(idx.columns):
                continue
            if other.index_type != idx.index_type:
                continue
            if list(other.columns[: len(idx.columns)]) == list(idx.columns):
                redundant.append(
                    RedundantIndex(
                        index_name=idx.name,
                        covered_by=other.name,
                        columns=tuple(idx.columns),
                    )
                )
                break
    return redundant


def detect_performance_issues(
    table: str,
    columns: list[Column],
    existing: list[ExistingIndex],
    table_bytes: int | None = None,
) -> list[str]:
    """Plain-language issues for the performance report."""
    issues = []
    if table_bytes is not None and table_bytes > LARGE_TABLE_BYTES:
        size_mb = table_bytes / (1024 * 1024)
        issues.append(f"Table {table} is {size_mb:.1f} MB; make sure frequent filters are indexed")

    leading = {idx.columns[0].lower() for idx in existing if idx.columns}
    for col in columns:
        if col.is_foreign_key and col.name.lower() not in leading:
            issues.append(f"Foreign key {table}.{col.name} has no index (slow joins and cascades)")

    for col in columns:
        if _is_text_type(col) and any(h in col.name.lower() for h in PATTERNS.SEARCH_COLUMN_HINTS):
            search_name = index_name_for(table, [col.name], "search")
            if not any(idx.name.lower() == search_name for idx in existing):
                issues.append(f"Text column {table}.{col.name} has no full-text search index")
    return issues
