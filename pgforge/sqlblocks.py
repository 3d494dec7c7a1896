"""Lossless splitting of SQL files into statement blocks.

A statement block is the run of ``--`` comment lines directly above a
statement, the statement itself through its terminating semicolon, and the
rest of that line. Everything else (blank lines, detached comments, file
headers) is kept as trivia so that joining all block texts reproduces the
input exactly.

Lexing is sqlparse's. Its tokens are mapped back onto offsets in the raw
text; object identities come from anchored patterns over the normalized
statement.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass
from functools import cached_property

import sqlparse
from sqlparse import tokens as T
from sqlparse.exceptions import SQLParseError

from pgforge.errors import MergeParseError
from pgforge.models import IdentityKey, ObjectKind

_WS_RE = re.compile(r"\s+")

_UNTERMINATED = {
    "'": "Unterminated string literal",
    '"': "Unterminated quoted identifier",
    "$": "Unterminated dollar-quoted body",
}


def _is_significant(token) -> bool:
    return not token.is_whitespace and token.ttype not in T.Comment


def _lex(text: str) -> Iterator[tuple[object, int]]:
    """Yield (token, offset) leaf tokens of sqlparse's parse, covering the text.

    Raises MergeParseError for error tokens (unterminated strings, quoted
    identifiers, dollar quotes) and unterminated block comments.
    """
    try:
        statements = sqlparse.parse(text)
    except SQLParseError as exc:
        raise MergeParseError(f"SQL could not be parsed: {exc}", 0) from exc

    offset = 0
    for statement in statements:
        for token in statement.flatten():
            value = token.value
            if not text.startswith(value, offset):
                raise MergeParseError("Lexer output does not line up with the input", offset)
            if token.ttype in T.Error:
                message = _UNTERMINATED.get(value, f"Unexpected character {value!r}")
                raise MergeParseError(message, offset)
            if _is_significant(token) and value.startswith("/") and text.startswith("/*", offset):
                # A closed comment lexes as one Comment token
                raise MergeParseError("Unterminated block comment", offset)
            yield token, offset
            offset += len(value)
    # sqlparse drops a whitespace-only tail
    if text[offset:].strip():
        raise MergeParseError("Lexer stopped before the end of the input", offset)


def normalize_statement(statement: str) -> str:
    """Strip comments and collapse whitespace.

    Two statements that differ only in comments or layout normalize equal.
    Whitespace inside strings and dollar bodies is collapsed too, which is
    good enough for comparing generated text against a previous run.
    """
    parts = [token.value if _is_significant(token) else " " for token, _ in _lex(statement)]
    return _WS_RE.sub(" ", "".join(parts)).strip()



# ============================================================================
# IDENTITY EXTRACTION
# ============================================================================

_NAME = r'(?:"(?:[^"]|"")+"|[A-Za-z_][A-Za-z0-9_$]*)'
_QNAME = rf"{_NAME}(?:\s*\.\s*{_NAME})?"
_NAME_PART_RE = re.compile(_NAME)

# Kinds keyed by bare object name (scoped to one table or cluster-wide)
_BARE_KINDS = frozenset([ObjectKind.POLICY, ObjectKind.INDEX, ObjectKind.TRIGGER, ObjectKind.ROLE])

_DECLARATIONS = (
    (ObjectKind.POLICY, re.compile(rf"^CREATE\s+POLICY\s+(?P<name>{_NAME})", re.I)),
    (
        ObjectKind.INDEX,
        re.compile(
            rf"^CREATE\s+(?:UNIQUE\s+)?INDEX\s+(?:CONCURRENTLY\s+)?(?:IF\s+NOT\s+EXISTS\s+)?"
            rf"(?P<name>{_QNAME})\s+ON\b",
            re.I,
        ),
    ),
    (
        ObjectKind.TRIGGER,
        re.compile(
            rf"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:CONSTRAINT\s+)?TRIGGER\s+(?P<name>{_NAME})", re.I
        ),
    ),
    (
        ObjectKind.FUNCTION,
        re.compile(
            rf"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:FUNCTION|PROCEDURE)\s+(?P<name>{_QNAME})\s*\(", re.I
        ),
    ),
    (
        ObjectKind.VIEW,
        re.compile(
            r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:TEMP|TEMPORARY)\s+)?(?:RECURSIVE\s+)?"
            rf"(?:MATERIALIZED\s+)?VIEW\s+(?:IF\s+NOT\s+EXISTS\s+)?(?P<name>{_QNAME})",
            re.I,
        ),
    ),
    (
        ObjectKind.TABLE,
        re.compile(
            r"^CREATE\s+(?:(?:TEMP|TEMPORARY|UNLOGGED)\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?"
            rf"(?P<name>{_QNAME})",
            re.I,
        ),
    ),
    (ObjectKind.ROLE, re.compile(rf"^CREATE\s+ROLE\s+(?P<name>{_NAME})", re.I)),
    (
        ObjectKind.RLS,
        re.compile(
            rf"^ALTER\s+TABLE\s+(?:IF\s+EXISTS\s+)?(?:ONLY\s+)?(?P<name>{_QNAME})\s+"
            r"(?:ENABLE|DISABLE)\s+ROW\s+LEVEL\s+SECURITY\s*;?$",
            re.I,
        ),
    ),
)

_DO_BLOCK_RE = re.compile(r"^DO\s+(?:LANGUAGE\s+\w+\s+)?\$", re.I)
_DO_CREATE_ROLE_RE = re.compile(rf"\bCREATE\s+ROLE\s+(?P<name>{_NAME})", re.I)

_COMPANION_KIND = r"(?P<kind>POLICY|INDEX|TRIGGER|FUNCTION|PROCEDURE|MATERIALIZED\s+VIEW|VIEW|TABLE)"
_COMPANIONS = (
    re.compile(
        rf"^DROP\s+{_COMPANION_KIND}\s+(?:CONCURRENTLY\s+)?(?:IF\s+EXISTS\s+)?(?P<name>{_QNAME})", re.I
    ),
    re.compile(rf"^COMMENT\s+ON\s+{_COMPANION_KIND}\s+(?P<name>{_QNAME})", re.I),
    re.compile(
        rf"^(?:GRANT|REVOKE)\s+EXECUTE\s+ON\s+(?P<kind>FUNCTION|PROCEDURE)\s+(?P<name>{_QNAME})", re.I
    ),
)

_KIND_WORDS = {
    "POLICY": ObjectKind.POLICY,
    "INDEX": ObjectKind.INDEX,
    "TRIGGER": ObjectKind.TRIGGER,
    "FUNCTION": ObjectKind.FUNCTION,
    "PROCEDURE": ObjectKind.FUNCTION,
    "VIEW": ObjectKind.VIEW,
    "MATERIALIZED VIEW": ObjectKind.VIEW,
    "TABLE": ObjectKind.TABLE,
}


def normalize_identifier(part: str) -> str:
    """Fold unquoted identifiers to lower case; keep quoted ones verbatim."""
    if part.startswith('"') and part.endswith('"') and len(part) >= 2:
        return part[1:-1].replace('""', '"')
    return part.lower()


def _make_key(kind: str, raw_name: str) -> IdentityKey:
    parts = [normalize_identifier(p) for p in _NAME_PART_RE.findall(raw_name)]
    if kind in _BARE_KINDS:
        return IdentityKey(kind, parts[-1])
    return IdentityKey(kind, ".".join(parts))


def extract_identity(statement: str) -> tuple[IdentityKey | None, bool]:
    """Return (key, attached) for one statement.

    attached is True for companion statements (DROP, COMMENT ON, GRANT
    EXECUTE) that belong to another statement's object.
    """
    normalized = normalize_statement(statement)
    for kind, pattern in _DECLARATIONS:
        match = pattern.match(normalized)
        if match:
            return _make_key(kind, match.group("name")), False

    if _DO_BLOCK_RE.match(normalized):
        match = _DO_CREATE_ROLE_RE.search(normalized)
        if match:
            return _make_key(ObjectKind.ROLE, match.group("name")), False
        return None, False

    for pattern in _COMPANIONS:
        match = pattern.match(normalized)
        if match:
            kind_word = re.sub(r"\s+", " ", match.group("kind").upper())
            return _make_key(_KIND_WORDS[kind_word], match.group("name")), True

    return None, False


# ============================================================================
# BLOCKS
# ============================================================================


@dataclass
class SQLBlock:
    """One lossless span of a SQL file."""

    text: str
    statement: str | None = None
    key: IdentityKey | None = None
    attached: bool = False

    @property
    def is_statement(self) -> bool:
        return self.statement is not None

    @property
    def declares(self) -> bool:
        return self.key is not None and not self.attached

    @cached_property
    def normalized(self) -> str:
        return normalize_statement(self.statement) if self.statement is not None else ""


def _statement_spans(text: str) -> list[tuple[int, int]]:
    spans = []
    stmt_start = None
    for token, offset in _lex(text):
        if not _is_significant(token):
            continue
        is_semi = token.ttype in T.Punctuation and token.value == ";"
        if stmt_start is None:
            if is_semi:
                # Stray semicolon: an empty statement, kept as trivia
                continue
            stmt_start = offset
        if is_semi:
            spans.append((stmt_start, offset + 1))
            stmt_start = None
    if stmt_start is not None:
        raise MergeParseError("Unterminated statement (missing ';')", stmt_start)
    return spans


def _line_start(text: str, pos: int) -> int:
    return text.rfind("\n", 0, pos) + 1


def _attached_comment_start(text: str, stmt_start: int, floor: int) -> int:
    """Walk upward from a statement over directly adjacent ``--`` lines."""
    line_start = _line_start(text, stmt_start)
    if line_start < floor or text[line_start:stmt_start].strip():
        return stmt_start

    block_start = line_start
    while block_start > floor:
        prev_start = _line_start(text, block_start - 1)
        if prev_start < floor:
            break
        line = text[prev_start:block_start - 1].strip()
        if not line.startswith("--"):
            break
        block_start = prev_start
    return block_start


def _consume_line_end(text: str, pos: int) -> int:
    j = pos
    n = len(text)
    while j < n and text[j] in " \t":
        j += 1
    if text.startswith("\r\n", j):
        return j + 2
    if j < n and text[j] == "\n":
        return j + 1
    if j >= n:
        return n
    return pos


def split_blocks(text: str) -> list[SQLBlock]:
    """Split SQL text into statement and trivia blocks.

    Raises MergeParseError when the text cannot be tokenized or ends inside a
    statement.
    """
    blocks: list[SQLBlock] = []
    cursor = 0
    for stmt_start, stmt_end in _statement_spans(text):
        block_start = _attached_comment_start(text, stmt_start, cursor)
        if block_start > cursor:
            blocks.append(SQLBlock(text=text[cursor:block_start]))
        block_end = _consume_line_end(text, stmt_end)
        statement = text[stmt_start:stmt_end]
        key, attached = extract_identity(statement)
        blocks.append(
            SQLBlock(
                text=text[block_start:block_end],
                statement=statement,
                key=key,
                attached=attached,
            )
        )
        cursor = block_end
    if cursor < len(text):
        blocks.append(SQLBlock(text=text[cursor:]))
    return blocks


def declared_keys(blocks: list[SQLBlock]) -> list[IdentityKey]:
    """Declared identity keys in file order, repeats included."""
    return [b.key for b in blocks if b.declares]


def identity_keys(text: str) -> list[IdentityKey]:
    """Declared identity keys of a SQL text, repeats included."""
    return declared_keys(split_blocks(text))
