"""
Typed exceptions for dockside.

Provides structured error handling with:
- DocksideError: Base exception for all dockside errors
- DocksideConfigError: Configuration and validation errors
- RuntimeClientError: Container runtime unreachable or a runtime call failed
- SandboxNotReadyError: A readiness condition was never satisfied
- EndOfStreamError: A log stream closed before the awaited message appeared
- PortNotMappedError: A port was queried that the runtime never mapped
- RunnerClosedError: A Runner was used after it was closed

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DocksideError(Exception):
    """Base exception for all dockside errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or reports."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class DocksideConfigError(DocksideError):
    """Configuration or validation error.

    Raised when:
    - An environment variable holds an unsupported value
    - The requested runtime client cannot be built

    Examples:
        DocksideConfigError("Unknown cleanup policy", details={"value": "purge"})
    """

    pass


class RuntimeClientError(DocksideError):
    """Container runtime communication error.

    Raised when:
    - The runtime daemon or CLI is unreachable
    - A runtime call exits non-zero or answers with an error status
    - The runtime returns a payload that cannot be parsed

    Never retried by dockside itself.

    Attributes:
        operation: Runtime operation that failed ("create", "stop", ...)
        sandbox_id: Container id the call targeted, if any
        status_code: HTTP status or process exit code, if available
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        sandbox_id: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        if sandbox_id:
            details["sandbox_id"] = sandbox_id
        if status_code is not None:
            details["status_code"] = status_code

        self.operation = operation
        self.sandbox_id = sandbox_id
        self.status_code = status_code

        super().__init__(message, code=code, details=details)


class SandboxNotReadyError(DocksideError):
    """A sandbox failed to become ready.

    Raised by Container.create when a readiness condition can never be
    satisfied: the awaited log stream ended before the message appeared,
    or the condition's timeout elapsed.

    Attributes:
        sandbox_id: Runtime-assigned container id
        condition: The readiness condition that was not met
        reason: "end_of_stream" or "timeout"
    """

    def __init__(
        self,
        message: str,
        *,
        sandbox_id: str,
        condition: Any,
        reason: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["sandbox_id"] = sandbox_id
        details["condition"] = repr(condition)
        details["reason"] = reason

        self.sandbox_id = sandbox_id
        self.condition = condition
        self.reason = reason

        super().__init__(message, code=code, details=details)


class EndOfStreamError(DocksideError):
    """A log stream ended before the awaited message appeared.

    Attributes:
        message_sought: The substring that was being waited for
        lines_compared: Number of complete lines seen before the stream ended
    """

    def __init__(
        self,
        message: str,
        *,
        message_sought: str,
        lines_compared: int,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["message_sought"] = message_sought
        details["lines_compared"] = lines_compared

        self.message_sought = message_sought
        self.lines_compared = lines_compared

        super().__init__(message, code=code, details=details)


class PortNotMappedError(DocksideError):
    """A queried port has no host mapping.

    This points at the test configuration (the image never exposed the
    port, or the wrong port was queried), not at a broken environment.

    Attributes:
        sandbox_id: Runtime-assigned container id
        port: Internal port that was queried
        protocol: Protocol of the queried port
    """

    def __init__(
        self,
        message: str,
        *,
        sandbox_id: str,
        port: int,
        protocol: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["sandbox_id"] = sandbox_id
        details["port"] = port
        details["protocol"] = protocol

        self.sandbox_id = sandbox_id
        self.port = port
        self.protocol = protocol

        super().__init__(message, code=code, details=details)


class RunnerClosedError(DocksideError):
    """A container was requested from a Runner that has been closed.

    Attributes:
        sandbox_id: Container that finished starting after the close and was
            disposed right away, if any
    """

    def __init__(
        self,
        message: str,
        *,
        sandbox_id: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if sandbox_id:
            details["sandbox_id"] = sandbox_id

        self.sandbox_id = sandbox_id

        super().__init__(message, code=code, details=details)


__all__ = [
    "DocksideError",
    "DocksideConfigError",
    "RuntimeClientError",
    "SandboxNotReadyError",
    "EndOfStreamError",
    "PortNotMappedError",
    "RunnerClosedError",
]
