"""Trigger recommendations from column names and table naming."""

from dataclasses import dataclass

from pgforge.generators.triggers import trigger_name_for
from pgforge.models import Column, TriggerSuggestion, TriggerType


@dataclass(frozen=True)
class TriggerPatterns:
    """Name fragments that make a trigger worth suggesting."""

    SENSITIVE_COLUMN_HINTS: tuple = ("password", "email", "phone", "ssn", "credit_card")

    USER_TABLE_HINTS: tuple = ("user", "account")

    VALIDATABLE_COLUMN_HINTS: tuple = ("email", "phone", "amount", "price", "cost", "balance")

    SECURITY_TABLE_HINTS: tuple = ("admin", "config", "setting")


PATTERNS = TriggerPatterns()


def _has_timestamp_type(col: Column) -> bool:
    return "TIMESTAMP" in col.type.upper()


def analyze_table_for_triggers(table: str, columns: list[Column]) -> list[TriggerSuggestion]:
    """Evaluate every rule independently and return all matches.

    Rules are not exclusive: a users table with timestamps and an email
    column gets timestamp, audit and validation suggestions together.
    """
    suggestions: list[TriggerSuggestion] = []
    by_name = {c.name: c for c in columns}
    lowered_table = table.lower()

    updated_at = by_name.get("updated_at")
    if updated_at is not None and _has_timestamp_type(updated_at):
        suggestions.append(
            TriggerSuggestion(
                name="auto_update_timestamp",
                type=TriggerType.TIMESTAMP,
                description="Automatically update updated_at on every UPDATE",
                reason="Found updated_at column",
            )
        )

    if "created_at" in by_name and "updated_at" in by_name:
        suggestions.append(
            TriggerSuggestion(
                name="timestamp_management",
                type=TriggerType.TIMESTAMP_FULL,
                description="Manage created_at and updated_at automatically",
                reason="Found created_at and updated_at columns",
            )
        )

    has_sensitive = any(
        hint in col.name.lower() for col in columns for hint in PATTERNS.SENSITIVE_COLUMN_HINTS
    )
    user_table = any(hint in lowered_table for hint in PATTERNS.USER_TABLE_HINTS)
    if "user_id" in by_name or has_sensitive or user_table:
        suggestions.append(
            TriggerSuggestion(
                name="audit_trail",
                type=TriggerType.AUDIT,
                description="Record INSERT, UPDATE and DELETE operations in utils.audit_log",
                reason="Contains sensitive data" if has_sensitive else "User-related table",
            )
        )

    validatable = [
        col.name
        for col in columns
        if any(hint in col.name.lower() for hint in PATTERNS.VALIDATABLE_COLUMN_HINTS)
    ]
    if validatable:
        suggestions.append(
            TriggerSuggestion(
                name="data_validation",
                type=TriggerType.VALIDATION,
                description="Validate field formats and value ranges before write",
                reason=f"Contains validatable fields: {', '.join(validatable)}",
            )
        )

    if any(hint in lowered_table for hint in PATTERNS.SECURITY_TABLE_HINTS):
        suggestions.append(
            TriggerSuggestion(
                name="security_log",
                type=TriggerType.SECURITY,
                description="Log every change to utils.security_log",
                reason="Administrative/configuration table",
            )
        )

    if "deleted_at" in by_name:
        suggestions.append(
            TriggerSuggestion(
                name="soft_delete_protection",
                type=TriggerType.SOFT_DELETE,
                description="Convert DELETE into setting deleted_at",
                reason="Found deleted_at column (soft delete pattern)",
            )
        )

    return suggestions


def missing_trigger_suggestions(
    suggestions: list[TriggerSuggestion], existing_trigger_names: list[str], table: str
) -> list[TriggerSuggestion]:
    """Drop suggestions whose generated trigger already exists on the table."""
    existing = {name.lower() for name in existing_trigger_names}
    return [s for s in suggestions if trigger_name_for(s.type, table) not in existing]
