"""Error taxonomy for artifact generation.

Database and parse problems are recoverable: commands catch them and finish in a
degraded mode. Only validation errors raised before analysis starts abort a
table's generation.
"""


class PgforgeError(Exception):
    """Base class for all pgforge errors."""


class ConnectionUnavailable(PgforgeError):
    """No reachable database; callers fall back to template generation."""


class ValidationError(PgforgeError):
    """Invalid schema, table or identifier name supplied by the user."""


class GenerationError(PgforgeError):
    """A generator was asked for an artifact it cannot build from its inputs."""


class ObjectNotFoundError(PgforgeError):
    """A named-object update referenced an object that does not exist."""

    def __init__(self, name: str, known: list[str] | tuple[str, ...] = (), detail: str | None = None):
        self.name = name
        self.known = sorted(set(known))
        message = detail or f"Object '{name}' not found"
        if self.known:
            message += f". Known objects: {', '.join(self.known)}"
        else:
            message += ". No objects are currently known for this target"
        super().__init__(message)


class PartialAnalysisFailure(PgforgeError):
    """One analysis sub-step failed while the others succeeded."""

    def __init__(self, category: str, cause: Exception | str):
        self.category = category
        self.cause = cause
        super().__init__(f"{category} analysis failed: {cause}")


class MergeParseError(PgforgeError):
    """Existing SQL text could not be split into statement blocks."""

    def __init__(self, message: str, offset: int | None = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)


class MergeParseDegradation(UserWarning):
    """Existing file was appended to opaquely because it could not be parsed."""
