"""Core modules for slogate - centralized definitions and utilities."""

from slogate.core.errors import (
    ConfigurationError,
    ExitCode,
    InvalidCountError,
    InvalidDeployTypeError,
    NoActiveSloError,
    NotBlockedError,
    SloGateError,
    StorageError,
    UnauthorizedRoleError,
    UnknownDecisionError,
    UnknownIndicatorError,
    ValidationError,
    WrongIndicatorKindError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "SloGateError",
    "ConfigurationError",
    "StorageError",
    "ValidationError",
    "UnknownIndicatorError",
    "InvalidCountError",
    "WrongIndicatorKindError",
    "NoActiveSloError",
    "InvalidDeployTypeError",
    "UnknownDecisionError",
    "NotBlockedError",
    "UnauthorizedRoleError",
    "main_with_error_handling",
    "format_error_message",
]
