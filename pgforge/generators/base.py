"""Helpers shared by the SQL generators."""

from pgforge.models import IdentityKey, SQLFragment
from pgforge.sqlblocks import extract_identity, normalize_identifier


def sql_literal(value: str) -> str:
    """Quote a string as a SQL literal."""
    return "'" + value.replace("'", "''") + "'"


def fragment(
    comment: str | list[str] | None,
    statement: str,
    key: IdentityKey | None = None,
    attached: bool = False,
) -> SQLFragment:
    """Build one fragment: ``-- comment`` lines directly above a single statement.

    The key is read back from the statement when it declares an object of the
    same kind, so it folds case exactly as a later parse of the file will.
    """
    if isinstance(comment, str):
        comment = [comment]
    lines = [f"-- {line}" for line in (comment or []) if line]
    body = statement.strip()
    if not body.endswith(";"):
        body += ";"
    if key is not None:
        parsed, _ = extract_identity(body)
        if parsed is not None and parsed.kind == key.kind:
            key = parsed
        else:
            key = IdentityKey(key.kind, normalize_identifier(key.name))
    return SQLFragment(text="\n".join(lines + [body]) + "\n", key=key, attached=attached)


def qualified(schema: str, name: str) -> str:
    return f"{schema}.{name}"
