"""pgforge utilities package."""

from .logging import logger
from .constants import ERROR_LOG_FILE, STATE_DIR
from .error_handler import CommandFailed, handle_exceptions
from .exit_codes import ExitCodes

__all__ = [
    "STATE_DIR",
    "ERROR_LOG_FILE",
    "CommandFailed",
    "handle_exceptions",
    "ExitCodes",
    "logger",
]
