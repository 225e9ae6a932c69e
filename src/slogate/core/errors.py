"""
Unified error handling for slogate.

Domain errors raised by the recorder, calculator and deploy gate, plus the
exit-code mapping used by CLI commands.

Exit Codes:
- 0: Success / deploy allowed
- 1: Blocked (deploy gate refused the deployment)
- 2: Warning (deploy allowed with warning)
- 10: Configuration error
- 11: Storage error (database or cache unavailable)
- 12: Validation error
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands, as consumed by CI/CD."""

    SUCCESS = 0
    BLOCKED = 1
    WARNING = 2
    CONFIG_ERROR = 10
    STORAGE_ERROR = 11
    VALIDATION_ERROR = 12
    UNKNOWN_ERROR = 127


class SloGateError(Exception):
    """Base exception for slogate errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SloGateError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class StorageError(SloGateError):
    """Raised when the indicator store or cache cannot be reached."""

    exit_code = ExitCode.STORAGE_ERROR


class ValidationError(SloGateError):
    """Raised for validation failures."""

    exit_code = ExitCode.VALIDATION_ERROR


class UnknownIndicatorError(ValidationError):
    """Raised when an SLI slug is not registered."""

    def __init__(self, sli_slug: str):
        super().__init__(f"Unknown indicator: {sli_slug}", {"sli_slug": sli_slug})
        self.sli_slug = sli_slug


class InvalidCountError(ValidationError):
    """Raised for negative or non-numeric counts and latency values."""


class WrongIndicatorKindError(ValidationError):
    """Raised when recording ratio data on a threshold SLI or vice versa."""

    def __init__(self, sli_slug: str, kind: str, expected: str):
        super().__init__(
            f"Indicator {sli_slug} is {kind}, expected {expected}",
            {"sli_slug": sli_slug, "kind": kind, "expected": expected},
        )


class NoActiveSloError(ValidationError):
    """Raised when a budget is requested for an indicator or SLO with no active SLO."""


class InvalidDeployTypeError(ValidationError):
    """Raised for deploy types the gate has no policy for."""


class UnknownDecisionError(ValidationError):
    """Raised when a deploy decision id does not exist."""

    def __init__(self, decision_id: str):
        super().__init__(f"Unknown deploy decision: {decision_id}", {"decision_id": decision_id})


class NotBlockedError(ValidationError):
    """Raised when overriding a decision that is not BLOCKED."""


class UnauthorizedRoleError(ValidationError):
    """Raised when the authorizing role may not override the decision's severity tier."""


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Exit codes:
        - SloGateError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except SloGateError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: SloGateError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
