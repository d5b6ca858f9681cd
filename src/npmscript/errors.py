"""Error types and error codes.

This module defines the error hierarchy for npm-script, providing specific
error codes for the failure scenarios the engine distinguishes.

Classes:
    - ErrorCode: Enum of error codes for categorizing failures
    - NpmScriptError: Base exception for all npm-script errors
    - ManifestError: A package.json could not be read or parsed
    - ReporterError: The installed-module report could not be obtained
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for npm-script operations.

    Used to categorize errors for logging and to decide whether a failure is
    surfaced to the user or skipped silently.
    """

    # Manifest errors
    MANIFEST_NOT_FOUND = "MANIFEST_NOT_FOUND"
    MANIFEST_INVALID = "MANIFEST_INVALID"

    # Catalog errors
    COMMAND_NOT_FOUND = "COMMAND_NOT_FOUND"

    # Process errors
    PROCESS_NOT_FOUND = "PROCESS_NOT_FOUND"

    # Reporter errors
    REPORTER_FAILED = "REPORTER_FAILED"
    REPORT_INVALID = "REPORT_INVALID"


class NpmScriptError(Exception):
    """Base exception for npm-script errors.

    Attributes:
        code: The error code categorizing this error.
        message: Human-readable error message, suitable for notifications.
        cause: The underlying exception that caused this error (if any).

    Example:
        raise NpmScriptError(
            code=ErrorCode.COMMAND_NOT_FOUND,
            message="Unknown command 'publish'",
            cause=original_exception,
        )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: The error code for this error.
            message: Human-readable error message.
            cause: The underlying exception (optional).
        """
        self.code = code
        self.message = message
        self.cause = cause
        super().__init__(f"[{code.value}] {message}")


class ManifestError(NpmScriptError):
    """Raised when a directory's package.json cannot be read or parsed.

    Attributes:
        path: The manifest file that failed.
    """

    def __init__(
        self,
        code: ErrorCode,
        path: str,
        cause: Exception | None = None,
    ) -> None:
        self.path = path
        super().__init__(code, f"Cannot read '{path}'", cause)


class ReporterError(NpmScriptError):
    """Raised when the installed-module report cannot be obtained."""
