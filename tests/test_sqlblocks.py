"""Tests for lossless SQL block splitting and identity extraction."""

import pytest

from pgforge.errors import MergeParseError
from pgforge.models import IdentityKey, ObjectKind
from pgforge.sqlblocks import (
    extract_identity,
    identity_keys,
    normalize_statement,
    split_blocks,
)

SAMPLE = """-- pgforge: generated by pgforge 0.1.0

-- Row level security enabled for orders
ALTER TABLE api.orders ENABLE ROW LEVEL SECURITY;

-- SELECT policy: users can view their own orders
CREATE POLICY "orders_select_own" ON api.orders
    FOR SELECT
    USING (user_id = auth.current_user_id());

/* hand-written note */
CREATE OR REPLACE FUNCTION api.touch() RETURNS TRIGGER AS $$
BEGIN
    -- a ; inside the body is not a terminator
    NEW.note = 'it''s; fine';
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
COMMENT ON FUNCTION api.touch() IS 'Touch; rows';
GRANT ALL ON api.orders TO authenticated;
"""


class TestSplitBlocks:
    """Splitting must reproduce the input exactly."""

    def test_roundtrip_is_lossless(self):
        """Joining block texts gives back the original file."""
        blocks = split_blocks(SAMPLE)
        assert "".join(b.text for b in blocks) == SAMPLE

    def test_statement_count(self):
        """Semicolons in strings, comments and dollar bodies do not split statements."""
        statements = [b for b in split_blocks(SAMPLE) if b.is_statement]
        assert len(statements) == 5

    def test_leading_comment_attaches_to_statement(self):
        """Directly adjacent -- lines belong to the statement below them."""
        policy = next(b for b in split_blocks(SAMPLE) if b.key == IdentityKey(ObjectKind.POLICY, "orders_select_own"))
        assert policy.text.startswith("-- SELECT policy")

    def test_header_is_trivia(self):
        """A comment separated by a blank line stays outside the statement."""
        first = split_blocks(SAMPLE)[0]
        assert not first.is_statement
        assert first.text.startswith("-- pgforge:")

    def test_unterminated_statement_raises(self):
        """A trailing statement without a semicolon is a parse error."""
        with pytest.raises(MergeParseError):
            split_blocks("CREATE INDEX idx_a ON t (a)")

    def test_unterminated_dollar_quote_raises(self):
        """An open dollar body cannot be split."""
        with pytest.raises(MergeParseError):
            split_blocks("CREATE FUNCTION f() RETURNS void AS $$ BEGIN")

    @pytest.mark.parametrize(
        "text",
        [
            "COMMENT ON INDEX idx_a IS 'open;\n",
            'CREATE INDEX "idx_a ON t (a);\n',
        ],
    )
    def test_unterminated_quote_raises(self, text):
        with pytest.raises(MergeParseError):
            split_blocks(text)

    def test_unterminated_block_comment_raises(self):
        with pytest.raises(MergeParseError, match="Unterminated block comment"):
            split_blocks("/* open\nCREATE INDEX idx_a ON t (a);\n")

    def test_stray_semicolon_is_trivia(self):
        blocks = split_blocks(";\nCREATE INDEX idx_a ON t (a);\n")
        assert [b.is_statement for b in blocks] == [False, True]

    def test_crlf_line_endings_preserved(self):
        """Windows line endings survive a split/join cycle."""
        text = "-- a\r\nCREATE INDEX idx_a ON t (a);\r\n\r\nCREATE INDEX idx_b ON t (b);\r\n"
        assert "".join(b.text for b in split_blocks(text)) == text

    def test_tagged_dollar_quote_holds_plain_one(self):
        """A $body$ quote may contain $$ and semicolons."""
        text = (
            "CREATE FUNCTION f() RETURNS text AS $body$\n"
            "SELECT '$$;';\n"
            "$body$ LANGUAGE sql;\n"
            "CREATE INDEX idx_a ON t (a);\n"
        )
        assert [b.key.kind for b in split_blocks(text) if b.is_statement] == [ObjectKind.FUNCTION, ObjectKind.INDEX]


class TestIdentity:
    """Anchored identity extraction over normalized statements."""

    @pytest.mark.parametrize(
        "statement,expected",
        [
            ('CREATE POLICY "Orders_Own" ON api.orders USING (true);', IdentityKey("policy", "Orders_Own")),
            ("create policy orders_own on api.orders using (true);", IdentityKey("policy", "orders_own")),
            ("CREATE UNIQUE INDEX CONCURRENTLY IF NOT EXISTS idx_a ON api.t (a);", IdentityKey("index", "idx_a")),
            ("CREATE TRIGGER trg BEFORE UPDATE ON api.t FOR EACH ROW EXECUTE FUNCTION f();",
             IdentityKey("trigger", "trg")),
            ("CREATE OR REPLACE FUNCTION Api.Do_It(a int) RETURNS int AS $$ SELECT 1 $$ LANGUAGE sql;",
             IdentityKey("function", "api.do_it")),
            ("CREATE MATERIALIZED VIEW IF NOT EXISTS api.v AS SELECT 1;", IdentityKey("view", "api.v")),
            ("CREATE TABLE IF NOT EXISTS utils.audit_log (id int);", IdentityKey("table", "utils.audit_log")),
            ("ALTER TABLE api.orders ENABLE ROW LEVEL SECURITY;", IdentityKey("rls", "api.orders")),
        ],
    )
    def test_declarations(self, statement, expected):
        """Each declaring statement maps to its kind and normalized name."""
        assert extract_identity(statement) == (expected, False)

    def test_do_block_role(self):
        """A DO block wrapping CREATE ROLE declares that role."""
        statement = (
            "DO $$\nBEGIN\n  IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'web_anon') THEN\n"
            "    CREATE ROLE web_anon NOLOGIN;\n  END IF;\nEND\n$$;"
        )
        assert extract_identity(statement) == (IdentityKey("role", "web_anon"), False)

    @pytest.mark.parametrize(
        "statement,expected",
        [
            ("DROP TRIGGER IF EXISTS trg ON api.t;", IdentityKey("trigger", "trg")),
            ("COMMENT ON INDEX api.idx_a IS 'x';", IdentityKey("index", "idx_a")),
            ("GRANT EXECUTE ON FUNCTION api.f(uuid) TO authenticated;", IdentityKey("function", "api.f")),
        ],
    )
    def test_companions_are_attached(self, statement, expected):
        """DROP, COMMENT ON and GRANT EXECUTE attach to another object's key."""
        assert extract_identity(statement) == (expected, True)

    def test_ancillary_has_no_key(self):
        """Plain grants carry no identity."""
        assert extract_identity("GRANT SELECT ON api.orders TO web_anon;") == (None, False)

    def test_comments_do_not_hide_identity(self):
        """Comments inside a statement are ignored when matching."""
        key, _ = extract_identity("CREATE /* x */ POLICY -- y\n p ON t USING (true);")
        assert key == IdentityKey("policy", "p")

    def test_identity_keys_keep_repeats(self):
        """Duplicate declarations are reported, not collapsed."""
        text = "CREATE INDEX a ON t (x);\nCREATE INDEX a ON t (y);\n"
        assert identity_keys(text) == [IdentityKey("index", "a"), IdentityKey("index", "a")]


class TestNormalize:
    def test_layout_and_comments_ignored(self):
        """Whitespace and comment differences normalize away."""
        a = "CREATE POLICY p ON t\n    USING (true);"
        b = "-- note\nCREATE  POLICY p ON t USING (true);"
        assert normalize_statement(a) == normalize_statement(b)

    def test_content_differences_kept(self):
        """A changed expression is a different statement."""
        assert normalize_statement("USING (a = 1);") != normalize_statement("USING (a = 2);")
