"""Input validation for identifiers, SQL conditions and data types.

Everything interpolated into generated SQL passes through here first, once,
at the command boundary.
"""

import re

from pgforge.errors import ValidationError
from pgforge.utils.logging import logger

from .constants import MAX_IDENTIFIER_LENGTH

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

RESERVED_WORDS = frozenset(
    [
        "ALL", "ANALYSE", "ANALYZE", "AND", "ANY", "ARRAY", "AS", "ASC", "ASYMMETRIC",
        "BOTH", "CASE", "CAST", "CHECK", "COLLATE", "COLUMN", "CONSTRAINT", "CREATE",
        "CURRENT_CATALOG", "CURRENT_DATE", "CURRENT_ROLE", "CURRENT_TIME",
        "CURRENT_TIMESTAMP", "CURRENT_USER", "DEFAULT", "DEFERRABLE", "DESC",
        "DISTINCT", "DO", "ELSE", "END", "EXCEPT", "FALSE", "FETCH", "FOR",
        "FOREIGN", "FROM", "GRANT", "GROUP", "HAVING", "IN", "INITIALLY",
        "INTERSECT", "INTO", "LEADING", "LIMIT", "LOCALTIME", "LOCALTIMESTAMP",
        "NOT", "NULL", "OFFSET", "ON", "ONLY", "OR", "ORDER", "PLACING",
        "PRIMARY", "REFERENCES", "RETURNING", "SELECT", "SESSION_USER", "SOME",
        "SYMMETRIC", "TABLE", "THEN", "TO", "TRAILING", "TRUE", "UNION",
        "UNIQUE", "USER", "USING", "VARIADIC", "WHEN", "WHERE", "WINDOW", "WITH",
    ]
)

# Fragments that never belong in a policy or index condition
DANGEROUS_CONDITION_PATTERNS = (
    re.compile(r";"),
    re.compile(r"--"),
    re.compile(r"/\*"),
    re.compile(r"\bunion\s+(?:all\s+)?select\b", re.IGNORECASE),
    re.compile(r"\b(?:drop|truncate|alter|grant|revoke)\s+", re.IGNORECASE),
    re.compile(r"\bexec(?:ute)?\s*\(", re.IGNORECASE),
    re.compile(r"\bpg_sleep\s*\(", re.IGNORECASE),
)

KNOWN_BASE_TYPES = frozenset(
    [
        "SMALLINT", "INTEGER", "INT", "BIGINT", "DECIMAL", "NUMERIC", "REAL",
        "DOUBLE PRECISION", "SMALLSERIAL", "SERIAL", "BIGSERIAL", "MONEY",
        "VARCHAR", "CHAR", "CHARACTER", "CHARACTER VARYING", "TEXT", "BYTEA",
        "TIMESTAMP", "TIMESTAMPTZ", "TIMESTAMP WITH TIME ZONE",
        "TIMESTAMP WITHOUT TIME ZONE", "DATE", "TIME", "TIMETZ", "INTERVAL",
        "BOOLEAN", "BOOL", "UUID", "JSON", "JSONB", "XML", "INET", "CIDR",
        "MACADDR", "TSVECTOR", "TSQUERY", "VOID", "TRIGGER", "SETOF", "TABLE",
        "RECORD", "INT4RANGE", "INT8RANGE", "NUMRANGE", "TSRANGE", "TSTZRANGE",
        "DATERANGE",
    ]
)


def is_reserved_word(word: str) -> bool:
    return word.upper() in RESERVED_WORDS


def validate_identifier(name: str, label: str = "Identifier") -> str:
    """Validate a PostgreSQL identifier and return it folded to lower case.

    Raises ValidationError for empty, malformed or over-long names. Reserved
    words are accepted with a warning, since quoting makes them legal.
    Folding matches what PostgreSQL does with unquoted names and keeps
    generated object names stable across runs.
    """
    if not name or not isinstance(name, str):
        raise ValidationError(f"{label} must be a non-empty string")
    if not IDENTIFIER_RE.match(name):
        raise ValidationError(
            f"{label} '{name}' must start with a letter or underscore and contain "
            "only letters, numbers, and underscores"
        )
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(f"{label} '{name}' must be {MAX_IDENTIFIER_LENGTH} characters or less")
    if is_reserved_word(name):
        logger.warning(f'"{name}" is a PostgreSQL reserved word. Consider using a different name.')
    return name.lower()


def validate_table_name(name: str) -> str:
    return validate_identifier(name, "Table name")


def validate_catalog_table_name(name: str) -> str:
    """Validate a table name read from the database or a table folder.

    These names are exact rather than typed by a user, so they are not folded.
    A table created with a quoted mixed-case name cannot be addressed by the
    unquoted SQL pgforge writes and is rejected.
    """
    folded = validate_identifier(name, "Table name")
    if folded != name:
        raise ValidationError(
            f"Table name '{name}' is case-sensitive (created quoted); "
            "pgforge only generates SQL for lower-case table names"
        )
    return name


def validate_column_name(name: str) -> str:
    return validate_identifier(name, "Column name")


def validate_schema_name(name: str) -> str:
    return validate_identifier(name, "Schema name")


def validate_function_name(name: str) -> str:
    return validate_identifier(name, "Function name")


def validate_condition(condition: str) -> str:
    """Reject SQL conditions carrying statement separators or DDL."""
    if not condition or not condition.strip():
        raise ValidationError("SQL condition must be a non-empty string")
    for pattern in DANGEROUS_CONDITION_PATTERNS:
        if pattern.search(condition):
            raise ValidationError(f"SQL condition contains a disallowed construct: {condition!r}")
    if condition.count("(") != condition.count(")"):
        raise ValidationError(f"SQL condition has unbalanced parentheses: {condition!r}")
    return condition.strip()


def validate_data_type(type_name: str) -> str:
    """Validate a return/parameter type; unknown base types only warn."""
    if not type_name or not type_name.strip():
        raise ValidationError("Data type must be a non-empty string")
    if ";" in type_name:
        raise ValidationError(f"Data type contains a disallowed construct: {type_name!r}")
    base = type_name.upper().split("(")[0].replace("[]", "").strip()
    if base.startswith("SETOF "):
        base = base[len("SETOF "):].strip()
    if base not in KNOWN_BASE_TYPES and not IDENTIFIER_RE.match(base.split(".")[-1].lower()):
        logger.warning(f'"{type_name}" might not be a standard PostgreSQL data type')
    return type_name.strip()


def parse_column_list(value: str) -> list[str]:
    """Split a comma separated column option and validate each name."""
    columns = [c.strip() for c in value.split(",") if c.strip()]
    if not columns:
        raise ValidationError("At least one column is required")
    return [validate_column_name(c) for c in columns]


def validate_params(params: str) -> str:
    """Validate a ``name type, name type DEFAULT x`` parameter list."""
    if not params or not params.strip():
        return ""
    if ";" in params or "--" in params:
        raise ValidationError(f"Parameter list contains a disallowed construct: {params!r}")
    cleaned = []
    for param in params.split(","):
        words = param.split()
        if len(words) < 2:
            raise ValidationError(f"Parameter '{param.strip()}' must be written as 'name type'")
        name = validate_identifier(words[0], "Parameter name")
        validate_data_type(" ".join(words[1:]))
        cleaned.append(" ".join([name] + words[1:]))
    return ", ".join(cleaned)
