"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- RefreshError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    # Enums
    ErrorCategory,
    # Base class
    RefreshError,
    # Setup errors
    SetupError,
    # Tick-local errors
    AuthenticationError,
    ImpersonationError,
    IdentityProviderError,
    IssuerError,
    DistributionError,
    # Classification utilities
    classify_exception,
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base class
    "RefreshError",
    # Setup errors
    "SetupError",
    # Tick-local errors
    "AuthenticationError",
    "ImpersonationError",
    "IdentityProviderError",
    "IssuerError",
    "DistributionError",
    # Classification utilities
    "classify_exception",
    "wrap_exception",
]
