"""SQL artifact generators. Each returns a structured GeneratedArtifact."""

from .functions import FunctionGenerator, FunctionSpec
from .indexes import IndexGenerator, analysis_queries
from .policies import PolicyGenerator, policy_key
from .roles import RoleGenerator
from .triggers import TriggerGenerator, function_name_for, resolve_trigger_types, trigger_name_for
from .views import ViewGenerator, select_sql

__all__ = [
    "FunctionGenerator",
    "FunctionSpec",
    "IndexGenerator",
    "PolicyGenerator",
    "RoleGenerator",
    "TriggerGenerator",
    "ViewGenerator",
    "analysis_queries",
    "function_name_for",
    "policy_key",
    "resolve_trigger_types",
    "select_sql",
    "trigger_name_for",
]
