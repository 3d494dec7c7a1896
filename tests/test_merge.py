"""Tests for the idempotent merge engine."""

import pytest

from pgforge.errors import MergeParseDegradation, ObjectNotFoundError
from pgforge.events import RecordingObserver
from pgforge.generators.base import fragment
from pgforge.merge import MergeEngine, MergeMode, provenance_header, strip_provenance
from pgforge.models import GeneratedArtifact, IdentityKey, ObjectKind
from pgforge.sqlblocks import identity_keys


def policy(name, using="true"):
    return fragment(
        f"policy {name}",
        f'CREATE POLICY "{name}" ON api.orders FOR SELECT USING ({using})',
        key=IdentityKey(ObjectKind.POLICY, name),
    )


def artifact(*fragments):
    return GeneratedArtifact(kind="rls", fragments=list(fragments), title="RLS policies for api.orders")


GRANT = fragment("grant", "GRANT ALL ON api.orders TO authenticated")


class TestMergeIdempotence:
    """Merging the same artifact twice changes nothing the second time."""

    def test_second_merge_is_byte_identical(self):
        engine = MergeEngine()
        art = artifact(policy("a"), policy("b"), GRANT)
        first = engine.merge(None, art)
        second = engine.merge(first.text, art)
        assert second.text == first.text
        assert not second.changed
        assert second.summary() == "no changes"

    def test_idempotent_with_header(self):
        """A fresh provenance timestamp does not make the file dirty."""
        engine = MergeEngine()
        art = artifact(policy("a"))
        first = engine.merge(None, art, header=provenance_header("pgforge generate policy orders"))
        second = engine.merge(first.text, art, header=provenance_header("pgforge generate policy orders"))
        assert not second.changed

    def test_replace_mode_idempotent_ignores_header(self):
        """Replace of identical content keeps the old header untouched."""
        engine = MergeEngine()
        art = artifact(policy("a"))
        first = engine.merge(None, art, MergeMode.REPLACE, header=provenance_header("x"))
        second = engine.merge(first.text, art, MergeMode.REPLACE, header=provenance_header("y"))
        assert second.text == first.text

    def test_ancillary_statements_not_duplicated(self):
        """Keyless statements are appended only when missing."""
        engine = MergeEngine()
        first = engine.merge(None, artifact(policy("a"), GRANT))
        second = engine.merge(first.text, artifact(policy("b"), GRANT))
        assert second.text.count("GRANT ALL ON api.orders") == 1


class TestMergeUnion:
    """Merge mode keeps old objects and adds or replaces new ones."""

    def test_union_of_keys(self):
        engine = MergeEngine()
        first = engine.merge(None, artifact(policy("a"), policy("b")))
        second = engine.merge(first.text, artifact(policy("b"), policy("c")))
        names = {k.name for k in identity_keys(second.text)}
        assert names == {"a", "b", "c"}
        assert [k.name for k in second.added] == ["c"]
        assert [k.name for k in second.unchanged] == ["b"]

    def test_new_definition_wins(self):
        engine = MergeEngine()
        first = engine.merge(None, artifact(policy("a", "true")))
        second = engine.merge(first.text, artifact(policy("a", "false")))
        assert "USING (false)" in second.text
        assert "USING (true)" not in second.text
        assert [k.name for k in second.replaced] == ["a"]

    def test_hand_written_objects_survive(self):
        existing = (
            "-- my own policy\n"
            'CREATE POLICY "orders_support" ON api.orders FOR SELECT USING (is_support());\n'
        )
        result = MergeEngine().merge(existing, artifact(policy("a")))
        assert 'CREATE POLICY "orders_support"' in result.text
        assert "-- my own policy" in result.text

    def test_duplicate_declarations_collapsed(self):
        """Earlier duplicates in the existing file are removed; the last one wins."""
        existing = (
            'CREATE POLICY "a" ON api.orders FOR SELECT USING (1 = 1);\n\n'
            'CREATE POLICY "a" ON api.orders FOR SELECT USING (2 = 2);\n'
        )
        result = MergeEngine().merge(existing, artifact(policy("b")))
        keys = identity_keys(result.text)
        assert keys.count(IdentityKey("policy", "a")) == 1
        assert "2 = 2" in result.text
        assert result.deduplicated == [IdentityKey("policy", "a")]

    def test_companions_replaced_with_owner(self):
        """A DROP/COMMENT attached to a replaced object is regenerated with it."""
        key = IdentityKey(ObjectKind.INDEX, "idx_a")
        old = GeneratedArtifact(kind="indexes", fragments=[
            fragment(None, "CREATE INDEX idx_a ON api.t (a)", key=key),
            fragment(None, "COMMENT ON INDEX api.idx_a IS 'old'", key=key, attached=True),
        ])
        new = GeneratedArtifact(kind="indexes", fragments=[
            fragment(None, "CREATE INDEX idx_a ON api.t (a)", key=key),
            fragment(None, "COMMENT ON INDEX api.idx_a IS 'new'", key=key, attached=True),
        ])
        engine = MergeEngine()
        result = engine.merge(engine.merge(None, old).text, new)
        assert "'new'" in result.text
        assert "'old'" not in result.text


class TestReplaceMode:
    def test_replace_yields_exactly_new_keys(self):
        engine = MergeEngine()
        first = engine.merge(None, artifact(policy("a"), policy("b")))
        result = engine.merge(first.text, artifact(policy("c")), MergeMode.REPLACE)
        assert identity_keys(result.text) == [IdentityKey("policy", "c")]
        assert {k.name for k in result.discarded} == {"a", "b"}

    def test_header_written_on_new_file(self):
        result = MergeEngine().merge(None, artifact(policy("a")), header=provenance_header("pgforge x"))
        assert result.text.startswith("-- pgforge: generated by pgforge")
        assert "-- pgforge: command: pgforge x" in result.text

    def test_strip_provenance(self):
        text = provenance_header("cmd") + "CREATE INDEX a ON t (x);\n"
        assert strip_provenance(text) == "CREATE INDEX a ON t (x);\n"


class TestNamedReplacement:
    """replace_object regenerates exactly one object."""

    def test_only_named_object_changes(self):
        engine = MergeEngine()
        first = engine.merge(None, artifact(policy("a", "1 = 1"), policy("b", "2 = 2")))
        result = engine.replace_object(first.text, artifact(policy("a", "3 = 3"), policy("b", "4 = 4")), "a")
        assert "3 = 3" in result.text
        assert "2 = 2" in result.text
        assert "4 = 4" not in result.text

    def test_unknown_name_raises_with_known_list(self):
        engine = MergeEngine()
        first = engine.merge(None, artifact(policy("a")))
        with pytest.raises(ObjectNotFoundError) as exc_info:
            engine.replace_object(first.text, artifact(policy("a")), "missing", known=["live_only"])
        assert exc_info.value.known == ["a", "live_only"]
        assert "Known objects: a, live_only" in str(exc_info.value)

    def test_known_name_not_generated_raises(self):
        """A live-only policy that the current pattern does not produce is not found."""
        with pytest.raises(ObjectNotFoundError, match="not produced"):
            MergeEngine().replace_object(None, artifact(policy("a")), "live_only", known=["live_only"])


class TestDegradation:
    """Unparsable files are appended to, with a warning."""

    def test_opaque_append_warns(self):
        observer = RecordingObserver()
        existing = "CREATE POLICY broken ON t USING ('unterminated);\n"
        result = MergeEngine(observer).merge(existing, artifact(policy("a")))
        assert result.degraded
        assert isinstance(result.degradation, MergeParseDegradation)
        assert result.text.startswith(existing.rstrip())
        assert 'CREATE POLICY "a"' in result.text
        assert len(observer.warnings) == 1
        assert "could not be parsed" in observer.warnings[0]

    def test_replace_mode_does_not_degrade(self):
        """Replace discards the unparsable text without a warning."""
        observer = RecordingObserver()
        result = MergeEngine(observer).merge("CREATE $$ oops", artifact(policy("a")), MergeMode.REPLACE)
        assert not result.degraded
        assert observer.warnings == []
        assert "oops" not in result.text

    def test_named_update_on_unparsable_file_appends_with_warning(self):
        observer = RecordingObserver()
        existing = "CREATE POLICY broken ON t USING ('unterminated);\n"
        result = MergeEngine(observer).replace_object(existing, artifact(policy("a"), policy("b")), "a")
        assert result.degraded
        assert result.text.startswith(existing.rstrip())
        assert 'CREATE POLICY "a"' in result.text
        assert 'CREATE POLICY "b"' not in result.text
        assert len(observer.warnings) == 1
        assert "could not be parsed" in observer.warnings[0]

    def test_named_update_on_unparsable_file_names_parse_failure(self):
        """A name the artifact does not produce reports the parse failure too."""
        observer = RecordingObserver()
        with pytest.raises(ObjectNotFoundError, match="could not be parsed"):
            MergeEngine(observer).replace_object("CREATE $$ oops", artifact(policy("a")), "missing")
        assert observer.warnings == []
