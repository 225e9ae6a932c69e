"""Tests for error types and CLI exit code mapping."""

import pytest
from slogate.core.errors import (
    ConfigurationError,
    ExitCode,
    InvalidCountError,
    NotBlockedError,
    StorageError,
    UnknownIndicatorError,
    ValidationError,
    WrongIndicatorKindError,
    format_error_message,
    main_with_error_handling,
)


class TestExitCodes:
    @pytest.mark.parametrize(
        "exc,expected",
        [
            (ConfigurationError("bad config"), ExitCode.CONFIG_ERROR),
            (StorageError("db down"), ExitCode.STORAGE_ERROR),
            (ValidationError("bad input"), ExitCode.VALIDATION_ERROR),
            (UnknownIndicatorError("checkout"), ExitCode.VALIDATION_ERROR),
            (InvalidCountError("negative"), ExitCode.VALIDATION_ERROR),
            (NotBlockedError("already allowed"), ExitCode.VALIDATION_ERROR),
        ],
    )
    def test_domain_errors(self, exc, expected):
        @main_with_error_handling(log_errors=False)
        def command():
            raise exc

        assert command() == expected

    def test_success_passes_through(self):
        @main_with_error_handling()
        def command():
            return ExitCode.WARNING

        assert command() == 2

    def test_keyboard_interrupt(self):
        @main_with_error_handling()
        def command():
            raise KeyboardInterrupt

        assert command() == 130

    def test_unexpected_error(self):
        @main_with_error_handling()
        def command():
            raise RuntimeError("boom")

        assert command() == ExitCode.UNKNOWN_ERROR == 127

    def test_traceback_printed_when_requested(self, capsys):
        @main_with_error_handling(show_traceback=True, log_errors=False)
        def command():
            raise StorageError("db down")

        assert command() == 11
        assert "StorageError" in capsys.readouterr().err


class TestFormatting:
    def test_message_without_details(self):
        assert format_error_message(ValidationError("bad input")) == "bad input"

    def test_message_with_details(self):
        exc = WrongIndicatorKindError("checkout-latency", "threshold", "event_ratio")

        message = format_error_message(exc)

        assert message.startswith("Indicator checkout-latency is threshold, expected event_ratio")
        assert "sli_slug=checkout-latency" in message
