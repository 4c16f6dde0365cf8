"""
Structured logging module.

Provides JSON logging with node/tick context propagation and a separate
audit trail for security-sensitive operations.

Import directly from sub-modules:
    from core.logging.setup import setup_logging
    from core.logging.context import set_log_context, generate_tick_id
    from core.logging.utilities import log_with_context, log_exception
    from core.logging.audit import AuditEventType, get_audit_logger
"""
