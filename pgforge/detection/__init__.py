"""Pure detection rules: access patterns, triggers, indexes, views, function types."""

from .functions import detect_function_type
from .indexes import (
    detect_performance_issues,
    drop_existing,
    filter_performance_only,
    find_redundant_indexes,
    index_name_for,
    recommend_indexes,
)
from .patterns import detect_policy_pattern, find_ownership_column
from .triggers import analyze_table_for_triggers, missing_trigger_suggestions
from .views import is_sensitive_column, suggest_views

__all__ = [
    "analyze_table_for_triggers",
    "detect_function_type",
    "detect_performance_issues",
    "detect_policy_pattern",
    "drop_existing",
    "filter_performance_only",
    "find_ownership_column",
    "find_redundant_indexes",
    "index_name_for",
    "is_sensitive_column",
    "missing_trigger_suggestions",
    "recommend_indexes",
    "suggest_views",
]
