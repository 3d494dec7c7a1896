"""Centralized error handler for pgforge commands."""

import traceback
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import Any

import click

from pgforge.errors import ObjectNotFoundError, ValidationError
from pgforge.utils.logging import logger

from .constants import ERROR_LOG_FILE, STATE_DIR
from .exit_codes import ExitCodes


class CommandFailed(click.ClickException):
    """ClickException carrying one of the ExitCodes values."""

    def __init__(self, message: str, exit_code: int = ExitCodes.TASK_INCOMPLETE):
        super().__init__(message)
        self.exit_code = exit_code


def _append_error_log(command: str, error: Exception) -> None:
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    with open(ERROR_LOG_FILE, "a", encoding="utf-8") as f:
        f.write("\n" + "=" * 80 + "\n")
        f.write(f"[{datetime.now().isoformat()}] Error in command: {command}\n")
        f.write("=" * 80 + "\n")
        f.write(f"{type(error).__name__}: {error}\n\n")
        f.write(traceback.format_exc())
        f.write("=" * 80 + "\n\n")


def handle_exceptions(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator that turns unexpected errors into logged ClickExceptions.

    User errors (validation, unknown object names) are reported without a
    traceback. Anything else is logged with its traceback and appended to
    .pgforge/error.log.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        """Inner wrapper that implements the try-except logic."""
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except ObjectNotFoundError as e:
            raise CommandFailed(str(e), ExitCodes.OBJECT_NOT_FOUND) from e
        except ValidationError as e:
            raise CommandFailed(str(e), ExitCodes.TASK_INCOMPLETE) from e
        except Exception as e:
            logger.opt(exception=True).error(
                "Command '{cmd}' failed: {err}",
                cmd=func.__name__,
                err=str(e),
            )
            _append_error_log(func.__name__, e)

            user_message = (
                f"{type(e).__name__}: {e}\n\n"
                f"Full traceback logged to: {ERROR_LOG_FILE}"
            )
            raise CommandFailed(user_message) from e

    return wrapper
