"""Full error hierarchy for sheetsync.

Every public error class inherits from :class:`SheetSyncError`.  Each carries
a machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

The remote errors split into two families that drive the retry policy:

* :class:`TransientRemoteError` -- rate limiting, server errors, network
  blips and per-attempt timeouts.  Retried with backoff.
* :class:`PermanentRemoteError` -- malformed payloads, missing resources,
  auth and permission failures.  Never retried.

Error codes are defined as a :class:`str` enum so that they serialise
naturally to JSON and can be matched with simple ``==`` comparisons.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error sheetsync can raise."""

    TRANSIENT_REMOTE = "TRANSIENT_REMOTE"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    ATTEMPT_TIMEOUT = "ATTEMPT_TIMEOUT"
    PERMANENT_REMOTE = "PERMANENT_REMOTE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    COMPILE_ERROR = "COMPILE_ERROR"
    DIFF_ERROR = "DIFF_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class SheetSyncError(Exception):
    """Base exception for all sheetsync errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Transient remote errors (retried)
# ---------------------------------------------------------------------------

class TransientRemoteError(SheetSyncError):
    """Base class for remote failures that may succeed if retried.

    Context keys vary by subclass; all carry ``status_code`` when a response
    was received.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        code: str = ErrorCode.TRANSIENT_REMOTE,
    ) -> None:
        super().__init__(code=code, message=message, context=context, cause=cause)


class RateLimitedError(TransientRemoteError):
    """The remote API signalled that its request quota was exceeded.

    Context keys: ``status_code``, ``retry_after_seconds``, ``reason``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.RATE_LIMITED)

    @property
    def retry_after(self) -> float | None:
        """Server-provided delay in seconds, if the response carried one."""
        value = self.context.get("retry_after_seconds")
        return float(value) if value is not None else None


class ServerError(TransientRemoteError):
    """The remote API returned a 5xx response.

    Context keys: ``status_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.SERVER_ERROR)


class NetworkError(TransientRemoteError):
    """A transport-level failure occurred (DNS, connection reset, read timeout).

    Context keys: ``url``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.NETWORK_ERROR)


class AttemptTimeoutError(TransientRemoteError):
    """A single remote call attempt exceeded its timeout.

    Context keys: ``timeout_seconds``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.ATTEMPT_TIMEOUT)


# ---------------------------------------------------------------------------
# Permanent remote errors (never retried)
# ---------------------------------------------------------------------------

class PermanentRemoteError(SheetSyncError):
    """Base class for remote failures that retrying cannot fix."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        code: str = ErrorCode.PERMANENT_REMOTE,
    ) -> None:
        super().__init__(code=code, message=message, context=context, cause=cause)


class ValidationError(PermanentRemoteError):
    """The remote API rejected the request payload (400 and other 4xx).

    Context keys: ``status_code``, ``remote_status``, ``body``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.VALIDATION_ERROR)


class AuthError(PermanentRemoteError):
    """The credentials were rejected (401)."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.AUTH_ERROR)


class PermissionDeniedError(PermanentRemoteError):
    """The caller lacks access to the resource (403 without a quota reason).

    Context keys: ``status_code``, ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.PERMISSION_ERROR)


class NotFoundError(PermanentRemoteError):
    """The addressed spreadsheet or range does not exist (404).

    Context keys: ``status_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context, cause, code=ErrorCode.NOT_FOUND)


# ---------------------------------------------------------------------------
# Scheduling errors
# ---------------------------------------------------------------------------

class RetryExhaustedError(SheetSyncError):
    """A transient failure persisted through every allowed attempt.

    Context keys: ``attempts``, ``label``, ``last_error_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RETRY_EXHAUSTED,
            message=message,
            context=context,
            cause=cause,
        )


class CircuitOpenError(SheetSyncError):
    """The circuit breaker rejected the call without touching the network.

    Callers should apply their own backoff; ``retry_in_seconds`` tells them
    how long the cooldown has left.

    Context keys: ``state``, ``retry_in_seconds``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CIRCUIT_OPEN,
            message=message,
            context=context,
            cause=cause,
        )


class CompileError(SheetSyncError):
    """Mutation intents violate grouping or size constraints.

    Raised before any network call is issued.

    Context keys: ``index`` (position of the offending intent),
    ``resource_id``, ``constraint``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.COMPILE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class DiffError(SheetSyncError):
    """A snapshot could not be captured completely.

    Context keys: ``resource_id``, ``failed_units``, ``units_fetched``,
    ``units_total``, ``attempts``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.DIFF_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


def error_code(exc: BaseException) -> str:
    """Return the plain-string code of *exc*, or its class name."""
    code = getattr(exc, "code", None)
    if code is None:
        return type(exc).__name__
    return code.value if isinstance(code, ErrorCode) else str(code)
