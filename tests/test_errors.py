"""Tests for the error hierarchy.

Tests cover:
    - Error codes in use (TestErrorCode)
    - Error formatting (TestNpmScriptError)
"""

from pathlib import Path

from npmscript.errors import ErrorCode, ManifestError, NpmScriptError, ReporterError


class TestErrorCode:
    """Tests for ErrorCode."""

    def test_codes(self) -> None:
        """Verify every code is one the engine raises."""
        assert {code.value for code in ErrorCode} == {
            "MANIFEST_NOT_FOUND",
            "MANIFEST_INVALID",
            "COMMAND_NOT_FOUND",
            "PROCESS_NOT_FOUND",
            "REPORTER_FAILED",
            "REPORT_INVALID",
        }


class TestNpmScriptError:
    """Tests for NpmScriptError and its subclasses."""

    def test_str_includes_code(self) -> None:
        error = NpmScriptError(ErrorCode.COMMAND_NOT_FOUND, "Unknown command 'publish'")

        assert str(error) == "[COMMAND_NOT_FOUND] Unknown command 'publish'"
        assert error.cause is None

    def test_manifest_error_names_path(self) -> None:
        cause = FileNotFoundError("package.json")
        error = ManifestError(ErrorCode.MANIFEST_NOT_FOUND, Path("/p/package.json"), cause)

        assert error.path == Path("/p/package.json")
        assert error.message == "Cannot read '/p/package.json'"
        assert error.cause is cause
        assert isinstance(error, NpmScriptError)

    def test_reporter_error_is_npm_script_error(self) -> None:
        assert issubclass(ReporterError, NpmScriptError)
