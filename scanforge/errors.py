"""Structured error taxonomy for scanforge."""
#
# PURPOSE:
# Error codes, typed exceptions and a single conversion helper so every layer
# (bridges, orchestrator, HTTP API) reports failures the same way.
#
# ERROR CODE FORMAT:
# - SCAN_XXX: Target and session errors
# - TOOL_XXX: Tool execution errors
# - SESSION_XXX: Session state errors
# - CONFIG_XXX: Configuration errors
# - SYSTEM_XXX: Everything else
#
# USAGE:
#   from scanforge.errors import InvalidTarget
#
#   raise InvalidTarget(
#       "Target path does not exist",
#       details={"target_id": target_id}
#   )
#
import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Scan Errors
    SCAN_TARGET_INVALID = "SCAN_002"
    SCAN_SESSION_NOT_FOUND = "SCAN_005"
    SCAN_NO_TOOLS_SELECTED = "SCAN_006"

    # Tool Errors
    TOOL_NOT_AVAILABLE = "TOOL_001"
    TOOL_EXEC_FAILED = "TOOL_002"
    TOOL_TIMEOUT = "TOOL_003"
    TOOL_OUTPUT_PARSE_ERROR = "TOOL_004"
    TOOL_UNKNOWN = "TOOL_005"

    # Session Errors
    SESSION_INVALID_STATE = "SESSION_003"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"

    # System Errors
    SYSTEM_INTERNAL_ERROR = "SYSTEM_001"


class ScanForgeError(Exception):
    """
    Base exception class for scanforge with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "SCAN_002")
        message: Human-readable error message
        details: Optional dictionary with additional context
        http_status: Suggested HTTP status code for API responses
    """

    HTTP_STATUS_MAP: Dict[ErrorCode, int] = {
        ErrorCode.SCAN_TARGET_INVALID: 400,
        ErrorCode.SCAN_SESSION_NOT_FOUND: 404,
        ErrorCode.SCAN_NO_TOOLS_SELECTED: 400,
        ErrorCode.TOOL_NOT_AVAILABLE: 503,
        ErrorCode.TOOL_EXEC_FAILED: 500,
        ErrorCode.TOOL_TIMEOUT: 408,
        ErrorCode.TOOL_OUTPUT_PARSE_ERROR: 500,
        ErrorCode.TOOL_UNKNOWN: 400,
        ErrorCode.SESSION_INVALID_STATE: 409,
        ErrorCode.CONFIG_INVALID: 500,
        ErrorCode.SYSTEM_INTERNAL_ERROR: 500,
    }

    default_code: ErrorCode = ErrorCode.SYSTEM_INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
        http_status: Optional[int] = None,
    ):
        self.code = code or self.default_code
        self.message = message
        self.details = details or {}
        self.http_status = http_status or self.HTTP_STATUS_MAP.get(self.code, 500)

        # Build exception message with code for easy debugging
        super().__init__(f"[{self.code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "http_status": self.http_status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class InvalidTarget(ScanForgeError):
    """Target identifier could not be resolved to a scannable directory."""
    default_code = ErrorCode.SCAN_TARGET_INVALID


class SessionNotFound(ScanForgeError):
    default_code = ErrorCode.SCAN_SESSION_NOT_FOUND


class SessionStateError(ScanForgeError):
    """A terminal session was asked to transition again."""
    default_code = ErrorCode.SESSION_INVALID_STATE


class ToolUnavailable(ScanForgeError):
    default_code = ErrorCode.TOOL_NOT_AVAILABLE


class ExecutionTimeout(ScanForgeError):
    default_code = ErrorCode.TOOL_TIMEOUT


class ExecutionFailure(ScanForgeError):
    default_code = ErrorCode.TOOL_EXEC_FAILED


class ParseFailure(ScanForgeError):
    default_code = ErrorCode.TOOL_OUTPUT_PARSE_ERROR


# ============================================================================
# Convenience Functions
# ============================================================================

def handle_error(error: Exception, context: Optional[str] = None) -> ScanForgeError:
    """
    Convert a generic exception to a ScanForgeError.

    Args:
        error: The original exception
        context: Optional context string (e.g., "while running Trivy")

    Returns:
        ScanForgeError with appropriate code and message
    """
    if isinstance(error, ScanForgeError):
        return error

    error_type = type(error).__name__
    message = str(error) or error_type
    if context:
        message = f"{context}: {message}"

    if isinstance(error, PermissionError):
        return ExecutionFailure(message, details={"original_type": error_type})
    if isinstance(error, FileNotFoundError):
        return ToolUnavailable(message, details={"original_type": error_type})

    return ScanForgeError(
        message,
        details={
            "original_type": error_type,
            "original_message": str(error),
        },
    )


__all__ = [
    "ErrorCode",
    "ScanForgeError",
    "InvalidTarget",
    "SessionNotFound",
    "SessionStateError",
    "ToolUnavailable",
    "ExecutionTimeout",
    "ExecutionFailure",
    "ParseFailure",
    "handle_error",
]
