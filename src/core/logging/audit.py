"""
Audit logging for security-sensitive operations.

Provides a structured audit trail for:
- Keytab logins (success, failure)
- Impersonation of a token user
- Delegation credential refresh (success, failure)
- Credential distribution (local or cluster-wide)

Audit records are single-line JSON written to a dedicated file, separate from
application logs. Raw key material and credential bytes are never recorded.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union


class AuditEventType(Enum):
    """Types of auditable security events."""

    # Authentication events
    AUTH_LOGIN_SUCCESS = "auth.login.success"
    AUTH_LOGIN_FAILURE = "auth.login.failure"
    AUTH_IMPERSONATION = "auth.impersonation"
    AUTH_IMPERSONATION_FAILURE = "auth.impersonation.failure"

    # Credential events
    CRED_REFRESH_SUCCESS = "cred.refresh.success"
    CRED_REFRESH_FAILURE = "cred.refresh.failure"
    CRED_DISTRIBUTED = "cred.distributed"
    CRED_KEYTAB_WRITTEN = "cred.keytab.written"


class AuditLogger:
    """
    Audit logger for security-sensitive operations.

    Usage:
        audit = AuditLogger(enabled=True, audit_log_path="logs/audit/audit.log")
        audit.log_auth_event(
            event_type=AuditEventType.AUTH_LOGIN_SUCCESS,
            principal="svc@EXAMPLE.COM",
            success=True,
        )
    """

    def __init__(
        self,
        enabled: bool = False,
        audit_log_path: Optional[Union[str, Path]] = None,
    ):
        self.enabled = bool(enabled and audit_log_path)
        self.audit_log_path = Path(audit_log_path) if audit_log_path else None

        # Dedicated non-propagating logger, one per audit file
        suffix = self.audit_log_path.stem if self.audit_log_path else "disabled"
        self._logger = logging.getLogger(f"delegation_refresh.audit.{suffix}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

        if self.enabled:
            self.audit_log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(self.audit_log_path, encoding="utf-8")
            handler.setLevel(logging.INFO)
            handler.setFormatter(logging.Formatter("%(message)s"))  # JSON only
            self._logger.handlers.clear()
            self._logger.addHandler(handler)

    def _create_audit_record(
        self, event_type: AuditEventType, success: bool, **kwargs: Any
    ) -> Dict[str, Any]:
        """Create structured audit record."""
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "success": success,
            "component": "delegation_refresh",
        }

        for key, value in kwargs.items():
            if value is not None:
                record[key] = value

        return record

    def _log_record(self, record: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        self._logger.info(json.dumps(record, default=str))

    def log_auth_event(
        self,
        event_type: AuditEventType,
        principal: str,
        success: bool,
        impersonated_user: Optional[str] = None,
        error_message: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Log authentication event.

        Args:
            event_type: Type of auth event
            principal: Principal that authenticated
            success: Whether operation succeeded
            impersonated_user: Token user, when impersonating
            error_message: Error message if failed
            **kwargs: Additional context
        """
        record = self._create_audit_record(
            event_type=event_type,
            success=success,
            principal=principal,
            impersonated_user=impersonated_user,
            error_message=error_message,
            **kwargs,
        )
        self._log_record(record)

    def log_credential_event(
        self,
        event_type: AuditEventType,
        success: bool,
        credential_fingerprint: Optional[str] = None,
        error_message: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Log credential management event.

        Args:
            event_type: Type of credential event
            success: Whether operation succeeded
            credential_fingerprint: Short digest of the credential bundle
            error_message: Error message if failed
            **kwargs: Additional context
        """
        record = self._create_audit_record(
            event_type=event_type,
            success=success,
            credential_fingerprint=credential_fingerprint,
            error_message=error_message,
            **kwargs,
        )
        self._log_record(record)

    def close(self) -> None:
        """Close and detach file handlers."""
        for handler in list(self._logger.handlers):
            handler.close()
            self._logger.removeHandler(handler)


_audit_logger: Optional[AuditLogger] = None
_audit_lock = threading.Lock()


def configure_audit_logger(
    enabled: bool, audit_log_path: Optional[Union[str, Path]] = None
) -> AuditLogger:
    """Replace the process-wide audit logger."""
    global _audit_logger
    with _audit_lock:
        if _audit_logger is not None:
            _audit_logger.close()
        _audit_logger = AuditLogger(enabled=enabled, audit_log_path=audit_log_path)
        return _audit_logger


def get_audit_logger() -> AuditLogger:
    """Get the process-wide audit logger (disabled until configured)."""
    global _audit_logger
    with _audit_lock:
        if _audit_logger is None:
            _audit_logger = AuditLogger()
        return _audit_logger
