"""Idempotent merging of generated SQL into existing artifact files.

The engine is a pure string transformation: callers read the file, hand the
text and a GeneratedArtifact over, and write whatever comes back.

Guarantees:
- every declared identity key appears at most once in the result
- replace mode yields exactly the new artifact's keys
- merge mode yields the union of old and new keys, new definitions winning
- merging the same artifact twice returns the first result unchanged
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pgforge import __version__
from pgforge.errors import MergeParseDegradation, MergeParseError, ObjectNotFoundError
from pgforge.events import GenerationObserver, NullObserver
from pgforge.models import GeneratedArtifact, IdentityKey, ObjectKind, SQLFragment
from pgforge.sqlblocks import SQLBlock, normalize_statement, split_blocks
from pgforge.utils.logging import logger

PROVENANCE_PREFIX = "-- pgforge:"


class MergeMode(Enum):
    MERGE = "merge"
    REPLACE = "replace"


@dataclass
class MergeOutcome:
    """Result of one merge: the final text plus what happened to each key."""

    text: str
    original: str | None = None
    added: list[IdentityKey] = field(default_factory=list)
    replaced: list[IdentityKey] = field(default_factory=list)
    unchanged: list[IdentityKey] = field(default_factory=list)
    discarded: list[IdentityKey] = field(default_factory=list)
    deduplicated: list[IdentityKey] = field(default_factory=list)
    degradation: MergeParseDegradation | None = None

    @property
    def changed(self) -> bool:
        return self.text != (self.original or "")

    @property
    def degraded(self) -> bool:
        return self.degradation is not None

    def summary(self) -> str:
        if not self.changed:
            return "no changes"
        parts = [f"{len(self.added)} added", f"{len(self.replaced)} replaced"]
        if self.discarded:
            parts.append(f"{len(self.discarded)} discarded")
        if self.deduplicated:
            parts.append(f"{len(self.deduplicated)} duplicates removed")
        if self.degraded:
            parts.append("unparsed file appended to")
        return ", ".join(parts)


def provenance_header(command: str, now: datetime | None = None) -> str:
    """Comment block recording which command wrote a file and when."""
    now = now or datetime.now(timezone.utc)
    return (
        f"{PROVENANCE_PREFIX} generated by pgforge {__version__}\n"
        f"{PROVENANCE_PREFIX} command: {command}\n"
        f"{PROVENANCE_PREFIX} generated at: {now.strftime('%Y-%m-%dT%H:%M:%SZ')}\n"
        "\n"
    )


def strip_provenance(text: str) -> str:
    lines = text.splitlines(keepends=True)
    idx = 0
    while idx < len(lines) and lines[idx].startswith(PROVENANCE_PREFIX):
        idx += 1
    if idx and idx < len(lines) and not lines[idx].strip():
        idx += 1
    return "".join(lines[idx:])


def _render_fragments(fragments: list[SQLFragment]) -> str:
    return "\n".join(fragment.text.rstrip("\n") + "\n" for fragment in fragments)


def _statement_list(text: str) -> list[str] | None:
    try:
        return [b.normalized for b in split_blocks(text) if b.is_statement]
    except MergeParseError:
        return None


def _dedupe_keys(keys: list[IdentityKey]) -> list[IdentityKey]:
    seen: list[IdentityKey] = []
    for key in keys:
        if key not in seen:
            seen.append(key)
    return seen


class MergeEngine:
    """Combine a GeneratedArtifact with a file's current text."""

    def __init__(self, observer: GenerationObserver | None = None):
        self.observer = observer or NullObserver()

    def merge(
        self,
        existing_text: str | None,
        artifact: GeneratedArtifact,
        mode: MergeMode = MergeMode.MERGE,
        header: str | None = None,
    ) -> MergeOutcome:
        """Return the final file content for ``artifact`` written over ``existing_text``."""
        if mode == MergeMode.REPLACE or not (existing_text and existing_text.strip()):
            return self._replace(existing_text, artifact, header)

        try:
            blocks = split_blocks(existing_text)
        except MergeParseError as e:
            return self._opaque_append(existing_text, artifact, e)
        return self._merge_blocks(existing_text, blocks, artifact)

    def replace_object(
        self,
        existing_text: str | None,
        artifact: GeneratedArtifact,
        name: str,
        kind: str = ObjectKind.POLICY,
        known: list[str] | tuple[str, ...] = (),
        header: str | None = None,
    ) -> MergeOutcome:
        """Regenerate exactly one named object, leaving every other block alone.

        ``known`` adds names the file does not hold (e.g. objects that exist
        only in the live database). Raises ObjectNotFoundError when the name
        is neither in the file nor known, or when the artifact does not
        produce it. A file that cannot be parsed gets the object appended
        through the same degradation path as a merge.
        """
        file_names: list[str] = []
        parse_error: MergeParseError | None = None
        if existing_text and existing_text.strip():
            try:
                file_names = [
                    b.key.name for b in split_blocks(existing_text) if b.declares and b.key.kind == kind
                ]
            except MergeParseError as e:
                parse_error = e

        known_names = set(file_names) | set(known)
        if parse_error is None and name not in known_names:
            raise ObjectNotFoundError(name, sorted(known_names))

        subset = artifact.select(IdentityKey(kind, name))
        if not subset:
            detail = f"Object '{name}' is not produced by the current configuration"
            if parse_error is not None:
                detail += f", and the existing file could not be parsed ({parse_error})"
            raise ObjectNotFoundError(name, artifact.names(kind), detail=detail)
        if parse_error is not None:
            return self._opaque_append(existing_text, subset, parse_error)
        return self.merge(existing_text, subset, MergeMode.MERGE, header=header)

    # ------------------------------------------------------------------
    # replace / opaque paths
    # ------------------------------------------------------------------

    def _replace(
        self, existing_text: str | None, artifact: GeneratedArtifact, header: str | None
    ) -> MergeOutcome:
        new_keys = artifact.identity_keys
        old_keys: list[IdentityKey] = []
        if existing_text and existing_text.strip():
            old_statements = _statement_list(strip_provenance(existing_text))
            if old_statements is not None:
                if old_statements == _statement_list(artifact.text):
                    return MergeOutcome(
                        text=existing_text, original=existing_text, unchanged=list(new_keys)
                    )
                old_keys = _dedupe_keys(
                    [b.key for b in split_blocks(existing_text) if b.declares]
                )

        return MergeOutcome(
            text=(header or "") + artifact.text,
            original=existing_text,
            added=[k for k in new_keys if k not in old_keys],
            replaced=[k for k in new_keys if k in old_keys],
            discarded=[k for k in old_keys if k not in new_keys],
        )

    def _opaque_append(
        self, existing_text: str, artifact: GeneratedArtifact, error: MergeParseError
    ) -> MergeOutcome:
        warning = MergeParseDegradation(
            f"Existing SQL could not be parsed ({error}); new objects were appended "
            "without de-duplication. Review the file for duplicate definitions."
        )
        self.observer.on_warning(str(warning))
        logger.debug(str(warning))
        text = existing_text.rstrip() + "\n\n" + _render_fragments(artifact.fragments)
        return MergeOutcome(
            text=text,
            original=existing_text,
            added=list(artifact.identity_keys),
            degradation=warning,
        )

    # ------------------------------------------------------------------
    # keyed merge
    # ------------------------------------------------------------------

    def _merge_blocks(
        self, existing_text: str, blocks: list[SQLBlock], artifact: GeneratedArtifact
    ) -> MergeOutcome:
        outcome = MergeOutcome(text=existing_text, original=existing_text)

        declaring: dict[IdentityKey, list[int]] = {}
        companions: dict[IdentityKey, list[int]] = {}
        for idx, block in enumerate(blocks):
            if block.key is None:
                continue
            target = companions if block.attached else declaring
            target.setdefault(block.key, []).append(idx)

        removed: set[int] = set()

        # Earlier duplicate declarations lose to the last one
        for key, indices in declaring.items():
            if len(indices) > 1:
                removed.update(indices[:-1])
                outcome.deduplicated.append(key)

        new_groups: dict[IdentityKey, list[SQLFragment]] = {}
        for fragment in artifact.fragments:
            if fragment.key is not None:
                new_groups.setdefault(fragment.key, []).append(fragment)

        write_keys: set[IdentityKey] = set()
        for key, fragments in new_groups.items():
            old_indices = declaring.get(key, [])[-1:] + companions.get(key, [])
            old_group = sorted(blocks[i].normalized for i in old_indices)
            new_group = sorted(normalize_statement(f.text) for f in fragments)
            if old_group == new_group:
                if any(f.declares for f in fragments):
                    outcome.unchanged.append(key)
                continue

            write_keys.add(key)
            removed.update(declaring.get(key, []))
            removed.update(companions.get(key, []))
            if not any(f.declares for f in fragments):
                continue
            if key in declaring:
                outcome.replaced.append(key)
            else:
                outcome.added.append(key)

        present = {
            blocks[i].normalized
            for i in range(len(blocks))
            if blocks[i].is_statement and blocks[i].key is None and i not in removed
        }
        to_append: list[SQLFragment] = []
        for fragment in artifact.fragments:
            if fragment.key is None:
                normalized = normalize_statement(fragment.text)
                if normalized in present:
                    continue
                present.add(normalized)
                to_append.append(fragment)
            elif fragment.key in write_keys:
                to_append.append(fragment)

        if not removed and not to_append:
            return outcome

        kept: list[str] = []
        previous_removed = False
        for idx, block in enumerate(blocks):
            if idx in removed:
                previous_removed = True
                continue
            if previous_removed and not block.is_statement and not block.text.strip():
                previous_removed = False
                continue
            previous_removed = False
            kept.append(block.text)

        base = "".join(kept)
        if to_append:
            appended = _render_fragments(to_append)
            base = base.rstrip() + "\n\n" + appended if base.strip() else appended
        outcome.text = base
        return outcome
