"""
Standardised error handling for ytclip.
"""

from ytclip.core.constants import ErrorCode, DEGRADED_ERRORS


class JobError(Exception):
    """Raised when a job encounters a known error condition."""

    code = ErrorCode.UNEXPECTED

    def __init__(self, message: str, detail: str | None = None, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        self.detail = detail
        super().__init__(f"[{self.code}] {message}")


class ValidationError(JobError):
    """Bad or missing input; rejected before a job is created."""
    code = ErrorCode.VALIDATION


class ToolUnavailableError(JobError):
    """yt-dlp is not installed or not runnable."""
    code = ErrorCode.TOOL_UNAVAILABLE


class SpawnError(JobError):
    """The tool process could not be started."""
    code = ErrorCode.SPAWN


class ToolExecutionError(JobError):
    """The tool exited with a non-zero code."""
    code = ErrorCode.TOOL_EXECUTION


class OutputMissingError(JobError):
    """The tool reported success but the output file does not exist."""
    code = ErrorCode.OUTPUT_MISSING


class RelayError(JobError):
    code = ErrorCode.RELAY


class PersistenceError(JobError):
    code = ErrorCode.PERSISTENCE


class MetadataError(JobError):
    code = ErrorCode.METADATA


def is_degraded(code: str) -> bool:
    """True for errors that never fail a job."""
    return code in DEGRADED_ERRORS
