"""Centralized exit codes for the pgforge CLI."""


class ExitCodes:
    """Standard exit codes for pgforge commands."""

    SUCCESS = 0

    # Batch finished but at least one table failed
    PARTIAL_FAILURE = 1
    OBJECT_NOT_FOUND = 2

    TASK_INCOMPLETE = 3
