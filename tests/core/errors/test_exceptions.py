"""Tests for the error hierarchy and classification."""

import pytest

from core.errors import (
    AuthenticationError,
    DistributionError,
    ErrorCategory,
    IdentityProviderError,
    ImpersonationError,
    IssuerError,
    RefreshError,
    SetupError,
    classify_exception,
    wrap_exception,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_class, category",
        [
            (SetupError, ErrorCategory.PERMANENT),
            (AuthenticationError, ErrorCategory.AUTH),
            (ImpersonationError, ErrorCategory.AUTH),
            (IdentityProviderError, ErrorCategory.TRANSIENT),
            (IssuerError, ErrorCategory.TRANSIENT),
            (DistributionError, ErrorCategory.TRANSIENT),
        ],
    )
    def test_categories(self, exc_class, category):
        assert exc_class("x").category is category

    def test_impersonation_is_authentication(self):
        assert issubclass(ImpersonationError, AuthenticationError)

    def test_setup_error_not_retryable(self):
        assert not SetupError("x").is_retryable
        assert IssuerError("x").is_retryable

    def test_str_includes_cause(self):
        err = IssuerError("issuer failed", cause=IOError("connection refused"))
        assert str(err) == "issuer failed | Caused by: connection refused"

    def test_distribution_error_carries_report(self):
        report = object()
        err = DistributionError("no nodes", report=report, context={"nodes_total": 3})
        assert err.report is report
        assert err.context == {"nodes_total": 3}


class TestClassifyException:
    def test_typed_error_keeps_category(self):
        assert classify_exception(SetupError("x")) is ErrorCategory.PERMANENT

    def test_interrupted_is_transient(self):
        assert classify_exception(InterruptedError()) is ErrorCategory.TRANSIENT

    def test_permission_error_is_permanent(self):
        assert classify_exception(PermissionError("denied")) is ErrorCategory.PERMANENT

    def test_connection_refused_is_transient(self):
        assert classify_exception(ConnectionRefusedError("Connection refused")) is ErrorCategory.TRANSIENT

    def test_kerberos_message_is_auth(self):
        exc = RuntimeError("Kerberos: pre-authentication failed for keytab")
        assert classify_exception(exc) is ErrorCategory.AUTH

    def test_generic_oserror_is_transient(self):
        assert classify_exception(IOError("stream closed")) is ErrorCategory.TRANSIENT

    def test_unknown(self):
        assert classify_exception(ValueError("bad")) is ErrorCategory.UNKNOWN


class TestWrapException:
    def test_wraps_generic(self):
        cause = IOError("closed")
        wrapped = wrap_exception(cause, IssuerError, context={"endpoint_url": "u"})

        assert isinstance(wrapped, IssuerError)
        assert wrapped.cause is cause
        assert wrapped.context == {"endpoint_url": "u"}

    def test_typed_error_returned_with_merged_context(self):
        original = AuthenticationError("login failed", context={"principal": "svcA"})
        wrapped = wrap_exception(original, context={"tick": 1})

        assert wrapped is original
        assert wrapped.context == {"principal": "svcA", "tick": 1}

    def test_default_class(self):
        assert type(wrap_exception(ValueError("x"))) is RefreshError

    def test_default_class_keeps_cause_category(self):
        """A plain wrapper is only as retryable as what it wraps."""
        wrapped = wrap_exception(PermissionError("read-only credential cache"))

        assert wrapped.category is ErrorCategory.PERMANENT
        assert not wrapped.is_retryable
        assert wrap_exception(ValueError("x")).category is ErrorCategory.UNKNOWN

    def test_explicit_message(self):
        cause = ConnectionRefusedError("Connection refused")
        wrapped = wrap_exception(
            cause, IdentityProviderError, message="Keytab login failed for svcA"
        )

        assert wrapped.message == "Keytab login failed for svcA"
        assert wrapped.cause is cause
