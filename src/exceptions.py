"""
Custom exception classes for the Campaign Orchestrator.

This module defines all exception classes used throughout the codebase.
Errors surface with clear context; containment happens only at the points
the orchestration core defines (node executor, media steps, session graph).

Hierarchy:
    Exception
    +-- OrchestratorError (base for all orchestration errors)
    |   +-- SessionNotFoundError
    |   +-- InvalidSessionStateError
    |   +-- NodeExecutionError
    |   +-- MediaGenerationError
    |   |   +-- MediaGenerationTimeoutError
    |   +-- StorageUploadError
    +-- ValidationError (ValueError)
    +-- DatabaseError
    +-- ConfigurationError
    +-- RetryExhaustedError
"""

from typing import Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class OrchestratorError(Exception):
    """Base exception for all orchestration errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when input validation fails."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# SESSION EXCEPTIONS
# =============================================================================


class SessionNotFoundError(OrchestratorError):
    """Raised when a session id does not resolve to a stored session.

    Attributes:
        session_id: The id that was looked up.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class InvalidSessionStateError(OrchestratorError):
    """Raised when an operation is not allowed in the session's current status.

    Attributes:
        session_id: The affected session.
        current: Status the session is in.
        expected: Status (or transition target) the operation required.
    """

    def __init__(self, session_id: str, current: str, expected: str):
        self.session_id = session_id
        self.current = current
        self.expected = expected
        super().__init__(
            f"Session {session_id} is '{current}', expected '{expected}'"
        )


# =============================================================================
# NODE / PIPELINE EXCEPTIONS
# =============================================================================


class NodeExecutionError(OrchestratorError):
    """Raised by a node's production step when it cannot produce an asset.

    Attributes:
        node_id: Identifier of the failing node.
    """

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"[{node_id}] {message}")


class MediaGenerationError(OrchestratorError):
    """Raised when image, video or speech generation fails."""

    pass


class MediaGenerationTimeoutError(MediaGenerationError):
    """Raised when a long-running media operation exceeds its poll budget.

    Attributes:
        operation: Provider operation name that was polled.
        attempts: Number of polls made.
        interval: Seconds between polls.
    """

    def __init__(self, operation: str, attempts: int, interval: float):
        self.operation = operation
        self.attempts = attempts
        self.interval = interval
        super().__init__(
            f"Operation '{operation}' not done after {attempts} polls "
            f"({attempts * interval:.0f}s)"
        )


class StorageUploadError(OrchestratorError):
    """Raised when a binary asset cannot be written to object storage.

    Attributes:
        path: Object path that was being written.
    """

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        message = f"Upload failed for {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "OrchestratorError",
    "ValidationError",
    "DatabaseError",
    "ConfigurationError",
    "RetryExhaustedError",
    "SessionNotFoundError",
    "InvalidSessionStateError",
    "NodeExecutionError",
    "MediaGenerationError",
    "MediaGenerationTimeoutError",
    "StorageUploadError",
]
