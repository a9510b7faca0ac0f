"""Tagged errors raised by the settlement and reporting operations."""

import functools

from loguru import logger


class LedgerError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidInput(LedgerError):
    code = "invalid_input"
    status_code = 400


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404


class SettlementInProgress(LedgerError):
    """Another run holds the game's settlement claim; retry later."""
    code = "in_progress"
    status_code = 409


class Internal(LedgerError):
    code = "internal"
    status_code = 500


def tagged_errors(operation: str):
    """Let LedgerErrors through and turn anything else into Internal."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except LedgerError:
                raise
            except Exception as e:
                logger.exception(f"Error during {operation}: {e}")
                raise Internal(f"Internal error during {operation}") from e

        return wrapper

    return decorator
