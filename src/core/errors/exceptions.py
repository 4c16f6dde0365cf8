"""
Exception types and error classification for credential refresh.

Provides:
- ErrorCategory enum for handling decisions
- Typed exception hierarchy for the refresh-and-distribute loop
- Error classification utilities
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures, next tick may succeed
                   (e.g., issuer unreachable, node unreachable during broadcast)
        AUTH: Authentication or impersonation failures
              (e.g., bad keytab, principal not allowed to impersonate)
        PERMANENT: Failures that will not fix themselves
                   (e.g., key material cannot be written at setup)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class RefreshError(Exception):
    """
    Base exception for all credential refresh errors.

    Attributes:
        message: Human-readable error description
        category: Error classification
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether the next tick may succeed where this one failed."""
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Setup Errors (propagated)
# =============================================================================


class SetupError(RefreshError):
    """Refresh loop cannot be set up (e.g., key material not writable)."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Tick-local Errors (caught at the tick boundary)
# =============================================================================


class AuthenticationError(RefreshError):
    """Keytab login as the configured principal failed."""

    category = ErrorCategory.AUTH


class ImpersonationError(AuthenticationError):
    """Real identity could not impersonate the configured user."""

    pass


class IdentityProviderError(RefreshError):
    """Identity provider could not be reached during login or impersonation."""

    category = ErrorCategory.TRANSIENT


class IssuerError(RefreshError):
    """Credential issuer failed or returned no credentials."""

    category = ErrorCategory.TRANSIENT


class DistributionError(RefreshError):
    """Broadcast of refreshed credentials failed on one or more nodes."""

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        report: Optional[object] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)
        self.report = report


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    # Already classified
    if isinstance(exc, RefreshError):
        return exc.category

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    # Interrupted blocking calls and OS-level I/O failures
    if isinstance(exc, (InterruptedError, TimeoutError)):
        return ErrorCategory.TRANSIENT

    if isinstance(exc, PermissionError):
        return ErrorCategory.PERMANENT

    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "no route to host",
        "network unreachable",
        "name resolution",
        "socket",
        "broken pipe",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    auth_markers = (
        "kerberos",
        "keytab",
        "gss",
        "unauthorized",
        "authentication",
        "not allowed to impersonate",
        "clock skew",
    )
    if any(m in exc_str for m in auth_markers):
        return ErrorCategory.AUTH

    if isinstance(exc, OSError):
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def wrap_exception(
    exc: Exception,
    default_class: type = RefreshError,
    context: Optional[dict] = None,
    message: Optional[str] = None,
) -> RefreshError:
    """
    Wrap a generic exception in a RefreshError subclass.

    Args:
        exc: Exception to wrap
        default_class: Class to use for the wrapper
        context: Additional context to include
        message: Wrapper message (default: str(exc))

    Returns:
        The exception itself if already typed, otherwise a default_class instance.
        A plain RefreshError wrapper takes the category of the wrapped exception.
    """
    if isinstance(exc, RefreshError):
        if context:
            exc.context.update(context)
        return exc

    wrapped = default_class(
        message or str(exc) or type(exc).__name__, cause=exc, context=context
    )
    if default_class is RefreshError:
        wrapped.category = classify_exception(exc)
    return wrapped
