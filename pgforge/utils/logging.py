"""Centralized logging configuration using Loguru.

Human-readable output goes to stderr by default so it never mixes with SQL
previews printed to stdout. NDJSON output follows the Pino record layout so the
logs can be merged with the PostgREST tooling that usually runs beside this CLI.

Usage:
    from pgforge.utils.logging import logger
    logger.info("Message")
    logger.debug("Debug message")  # Only shows if PGFORGE_LOG_LEVEL=DEBUG

Environment Variables:
    PGFORGE_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
    PGFORGE_LOG_JSON: 0|1 (default: 0, human-readable)
    PGFORGE_LOG_FILE: path to an NDJSON log file (optional)
"""

import json
import os
import sys

from loguru import logger

from .constants import ENV_LOG_FILE, ENV_LOG_JSON, ENV_LOG_LEVEL

# Remove default handler
logger.remove()

# Pino-compatible numeric levels
PINO_LEVELS = {
    "TRACE": 10,
    "DEBUG": 20,
    "INFO": 30,
    "SUCCESS": 30,
    "WARNING": 40,
    "ERROR": 50,
    "CRITICAL": 60,
}

_log_level = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()
_json_mode = os.environ.get(ENV_LOG_JSON, "0") == "1"
_log_file = os.environ.get(ENV_LOG_FILE)


def _pino_record(record) -> dict:
    """Build a Pino-shaped dict from a loguru record."""
    pino_log = {
        "level": PINO_LEVELS.get(record["level"].name, 30),
        "time": int(record["time"].timestamp() * 1000),
        "msg": record["message"],
        "pid": record["process"].id,
        "name": "pgforge",
    }
    for key, value in record["extra"].items():
        pino_log[key] = value if isinstance(value, (str, int, float, bool)) else str(value)

    if record["exception"]:
        pino_log["err"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else "Error",
            "message": str(record["exception"].value) if record["exception"].value else "",
        }
    return pino_log


def pino_compatible_sink(message):
    """Write log records as NDJSON to stderr.

    CRITICAL: Never call logger.* inside a sink - causes infinite recursion
    """
    sys.stderr.write(json.dumps(_pino_record(message.record)) + "\n")
    sys.stderr.flush()


def _file_pino_sink(message):
    """Append Pino-format JSON to the configured log file."""
    with open(_log_file, "a", encoding="utf-8") as f:
        f.write(json.dumps(_pino_record(message.record)) + "\n")


# No emojis - output must stay ASCII for Windows consoles
_human_format = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}:{function}:{line}</cyan> - "
    "<level>{message}</level>"
)

logger.level("DEBUG", color="<blue>")
logger.level("INFO", color="<white>")
logger.level("WARNING", color="<yellow>")
logger.level("ERROR", color="<red>")
logger.level("CRITICAL", color="<red><bold>")

_console_handler_id: int | None = None


def _add_console_handler(level: str) -> int:
    if _json_mode:
        return logger.add(pino_compatible_sink, level=level, colorize=False)
    return logger.add(
        sys.stderr,
        level=level,
        format=_human_format,
        colorize=None,  # Auto-detect: colors if TTY, plain if piped
    )


_console_handler_id = _add_console_handler(_log_level)

if _log_file:
    logger.add(_file_pino_sink, level="DEBUG")


def set_log_level(level: str) -> None:
    """Re-create the console handler at a new level (e.g. for --verbose)."""
    global _console_handler_id, _log_level

    _log_level = level.upper()
    if _console_handler_id is not None:
        try:
            logger.remove(_console_handler_id)
        except ValueError:
            pass  # Already removed
    _console_handler_id = _add_console_handler(_log_level)


def get_log_level() -> str:
    """Current console log level name."""
    return _log_level


__all__ = [
    "logger",
    "set_log_level",
    "get_log_level",
]
