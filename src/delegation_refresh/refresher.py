"""
Leader-coordinated delegation token refresher.

One refresher runs per process on a daemon thread. Each tick:
    1. Reads cluster state; if the cluster is formed and another node leads,
       the refresher terminates for good.
    2. Logs in from the keytab, optionally impersonates the token user.
    3. Asks the issuer for credentials.
    4. Hands them to the distribution policy (local or cluster-wide).

Any failure inside a tick is logged and the loop re-arms; the fixed cadence
is the only retry policy.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from core.errors import (
    AuthenticationError,
    ErrorCategory,
    IdentityProviderError,
    ImpersonationError,
    IssuerError,
    SetupError,
    classify_exception,
    wrap_exception,
)
from core.logging.audit import (
    AuditEventType,
    AuditLogger,
    configure_audit_logger,
    get_audit_logger,
)
from core.logging.context import generate_tick_id, set_log_context
from core.logging.setup import setup_logging
from core.logging.utilities import log_exception, log_with_context
from core.security import decode_inline_secret, write_secret_file
from delegation_refresh import metrics
from delegation_refresh.broadcast import BroadcastChannel, NodeRegistryBroadcastChannel
from delegation_refresh.cluster import MembershipOracle
from delegation_refresh.config import (
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    IdentityDescriptor,
    IssuerOptions,
    RefreshConfig,
)
from delegation_refresh.distribution import DistributionMode, DistributionPolicy
from delegation_refresh.identity import Identity, IdentityProvider
from delegation_refresh.issuer import CredentialIssuer
from delegation_refresh.schemas.credentials import CredentialBundle
from delegation_refresh.security_context import SecurityContext

logger = logging.getLogger(__name__)

KEYTAB_FILE_NAME = "auth_keytab"
THREAD_NAME_PREFIX = "delegation-token-refresher"

_thread_ids = itertools.count(1)


def _identity_failure(
    exc: Exception, default_class: type, message: str, context: Dict[str, Any]
) -> Exception:
    """Typed error for a failed login or impersonation.

    An unreachable identity provider is transient, not an authentication
    failure.
    """
    if classify_exception(exc) is ErrorCategory.TRANSIENT:
        default_class = IdentityProviderError
    return wrap_exception(exc, default_class, context=context, message=message)


class RefreshState(str, Enum):
    ARMED = "armed"
    RUNNING = "running"
    TERMINATED = "terminated"


class TickOutcome(str, Enum):
    DISTRIBUTED_LOCAL = "distributed_local"
    DISTRIBUTED_CLUSTER = "distributed_cluster"
    ISSUER_EMPTY = "issuer_empty"
    FAILED = "failed"
    TERMINATED = "terminated"
    SKIPPED = "skipped"  # tick requested after termination


class DelegationTokenRefresher:
    """
    Periodic refresh-and-distribute loop for delegation credentials.

    The first tick runs as soon as start() is called, then every
    refresh_interval_seconds measured from the previous tick's scheduled
    start. A tick that overruns delays the next one; missed ticks are not
    queued. At most one tick runs at a time.
    """

    def __init__(
        self,
        identity: IdentityDescriptor,
        issuer_options: IssuerOptions,
        issuer: CredentialIssuer,
        identity_provider: IdentityProvider,
        membership: MembershipOracle,
        distribution: DistributionPolicy,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be positive")

        self.identity = identity
        self.issuer_options = issuer_options
        self.refresh_interval = float(refresh_interval_seconds)

        self._issuer = issuer
        self._identity_provider = identity_provider
        self._membership = membership
        self._distribution = distribution
        self._audit = audit_logger or get_audit_logger()

        self._state = RefreshState.ARMED
        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._tick_count = 0
        self._last_outcome: Optional[TickOutcome] = None
        self._last_success_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> RefreshState:
        with self._state_lock:
            return self._state

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the background timer thread; first tick fires immediately."""
        with self._state_lock:
            if self._state is RefreshState.TERMINATED:
                return
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run_loop,
                name=f"{THREAD_NAME_PREFIX}-{next(_thread_ids)}",
                daemon=True,
            )
            self._thread.start()

        log_with_context(
            logger,
            logging.INFO,
            "Started delegation token refresher",
            principal=self.identity.principal,
            impersonated_user=self.identity.impersonate_user,
            refresh_interval_seconds=self.refresh_interval,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel the timer for process shutdown. The refresher cannot restart."""
        with self._state_lock:
            already_terminated = self._state is RefreshState.TERMINATED
            self._state = RefreshState.TERMINATED
        self._stop_event.set()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

        if not already_terminated:
            log_with_context(
                logger,
                logging.INFO,
                "Stopped delegation token refresher",
                tick_count=self._tick_count,
            )

    def _run_loop(self) -> None:
        next_run = time.monotonic()
        while not self._stop_event.is_set():
            self.tick()
            if self.state is RefreshState.TERMINATED:
                break

            next_run += self.refresh_interval
            now = time.monotonic()
            if next_run < now:
                next_run = now
            if self._stop_event.wait(next_run - now):
                break

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self) -> TickOutcome:
        """
        Run one tick synchronously.

        Never raises. Returns TickOutcome.SKIPPED once terminated.
        """
        with self._tick_lock:
            with self._state_lock:
                if self._state is RefreshState.TERMINATED:
                    logger.debug("Tick skipped, refresher terminated")
                    return TickOutcome.SKIPPED
                self._state = RefreshState.RUNNING

            set_log_context(tick_id=generate_tick_id())
            start = time.perf_counter()

            try:
                outcome = self._run_tick()
                self._last_error = None
            except Exception as e:
                outcome = TickOutcome.FAILED
                self._handle_tick_failure(e)

            duration = time.perf_counter() - start
            self._tick_count += 1
            self._last_outcome = outcome

            with self._state_lock:
                if outcome is TickOutcome.TERMINATED:
                    self._state = RefreshState.TERMINATED
                elif self._state is RefreshState.RUNNING:
                    self._state = RefreshState.ARMED

            if outcome is TickOutcome.TERMINATED:
                self._stop_event.set()

            metrics.record_tick(outcome.value, duration)
            log_with_context(
                logger,
                logging.DEBUG,
                "Tick complete",
                outcome=outcome.value,
                tick_count=self._tick_count,
                duration_ms=round(duration * 1000, 2),
            )
            return outcome

    def _run_tick(self) -> TickOutcome:
        cluster = self._membership.snapshot()
        set_log_context(node_id=cluster.self_node)

        if cluster.should_stand_down:
            log_with_context(
                logger,
                logging.INFO,
                "Delegation token refresh not active.",
                reason="cluster formed, leader will take over subsequent refreshes",
                leader=cluster.leader,
                cluster_formed=True,
            )
            return TickOutcome.TERMINATED

        real_identity = self._login()
        token_identity = real_identity
        if self.identity.impersonates:
            token_identity = self._impersonate(real_identity)

        bundle = self._fetch(real_identity, token_identity)
        if bundle is None:
            log_with_context(
                logger,
                logging.WARNING,
                "Failed to refresh delegation token.",
                principal=self.identity.principal,
                impersonated_user=self.identity.impersonate_user,
            )
            self._audit.log_credential_event(
                event_type=AuditEventType.CRED_REFRESH_FAILURE,
                success=False,
                error_message="issuer returned no credentials",
            )
            return TickOutcome.ISSUER_EMPTY

        self._audit.log_credential_event(
            event_type=AuditEventType.CRED_REFRESH_SUCCESS,
            success=True,
            credential_fingerprint=bundle.fingerprint,
        )

        result = self._distribution.distribute(bundle)

        self._audit.log_credential_event(
            event_type=AuditEventType.CRED_DISTRIBUTED,
            success=True,
            credential_fingerprint=bundle.fingerprint,
            distribution_mode=result.mode.value,
        )
        self._last_success_at = datetime.now(timezone.utc)
        metrics.mark_success(self._last_success_at.timestamp())

        if result.mode is DistributionMode.LOCAL:
            return TickOutcome.DISTRIBUTED_LOCAL
        return TickOutcome.DISTRIBUTED_CLUSTER

    def _login(self) -> Identity:
        principal = self.identity.principal
        log_with_context(
            logger,
            logging.INFO,
            f"Log in from keytab as {principal}",
            principal=principal,
            keytab_path=self.identity.keytab_path,
        )
        try:
            real_identity = self._identity_provider.login_from_keytab(
                principal, self.identity.keytab_path
            )
        except Exception as e:
            self._audit.log_auth_event(
                event_type=AuditEventType.AUTH_LOGIN_FAILURE,
                principal=principal,
                success=False,
                error_message=str(e)[:200],
            )
            error = _identity_failure(
                e,
                AuthenticationError,
                f"Keytab login failed for {principal}",
                {"principal": principal},
            )
            if error is e:
                raise
            raise error from e

        self._audit.log_auth_event(
            event_type=AuditEventType.AUTH_LOGIN_SUCCESS,
            principal=principal,
            success=True,
        )
        return real_identity

    def _impersonate(self, real_identity: Identity) -> Identity:
        user = self.identity.impersonate_user
        log_with_context(
            logger,
            logging.INFO,
            f"Impersonate {user}",
            principal=self.identity.principal,
            impersonated_user=user,
        )
        try:
            token_identity = self._identity_provider.impersonate(user, real_identity)
        except Exception as e:
            self._audit.log_auth_event(
                event_type=AuditEventType.AUTH_IMPERSONATION_FAILURE,
                principal=self.identity.principal,
                success=False,
                impersonated_user=user,
                error_message=str(e)[:200],
            )
            error = _identity_failure(
                e,
                ImpersonationError,
                f"{self.identity.principal} cannot impersonate {user}",
                {"principal": self.identity.principal, "user": user},
            )
            if error is e:
                raise
            raise error from e

        self._audit.log_auth_event(
            event_type=AuditEventType.AUTH_IMPERSONATION,
            principal=self.identity.principal,
            success=True,
            impersonated_user=user,
        )
        return token_identity

    def _fetch(
        self, real_identity: Identity, token_identity: Identity
    ) -> Optional[CredentialBundle]:
        try:
            return self._issuer.fetch(real_identity, token_identity, self.issuer_options)
        except (OSError, InterruptedError) as e:
            raise wrap_exception(
                e,
                IssuerError,
                context={"endpoint_url": self.issuer_options.endpoint_url},
                message="Credential issuer failed",
            ) from e

    def _handle_tick_failure(self, exc: Exception) -> None:
        error = wrap_exception(exc)
        category = error.category
        self._last_error = str(exc)[:200]
        log_exception(
            logger,
            exc,
            "Failed to refresh token.",
            level=logging.WARNING if error.is_retryable else logging.ERROR,
            error_category=category.value,
            principal=self.identity.principal,
        )
        metrics.record_refresh_error(category.value)
        if not isinstance(exc, AuthenticationError):
            self._audit.log_credential_event(
                event_type=AuditEventType.CRED_REFRESH_FAILURE,
                success=False,
                error_message=self._last_error,
                error_category=category.value,
            )

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def get_diagnostics(self) -> Dict[str, Any]:
        """Snapshot of refresher state for health endpoints and debugging."""
        return {
            "state": self.state.value,
            "thread_alive": self.is_alive,
            "tick_count": self._tick_count,
            "last_outcome": self._last_outcome.value if self._last_outcome else None,
            "last_success_at": (
                self._last_success_at.isoformat() if self._last_success_at else None
            ),
            "last_error": self._last_error,
            "principal": self.identity.principal,
            "impersonated_user": self.identity.impersonate_user,
            "issuer_endpoint_url": self.issuer_options.endpoint_url,
            "refresh_interval_seconds": self.refresh_interval,
        }


# =============================================================================
# Setup / activation gate
# =============================================================================


def write_keytab(
    auth_keytab: str,
    tmp_dir: Union[str, Path],
    audit_logger: Optional[AuditLogger] = None,
) -> Path:
    """
    Materialize inline base64 key material as an owner-only file.

    Returns:
        Path to <tmp_dir>/auth_keytab

    Raises:
        SetupError: Key material is not valid base64 or cannot be written
    """
    audit = audit_logger or get_audit_logger()
    try:
        content = decode_inline_secret(auth_keytab)
    except ValueError as e:
        raise SetupError("Inline keytab is not valid base64", cause=e) from e

    try:
        path = write_secret_file(content, tmp_dir, KEYTAB_FILE_NAME)
    except OSError as e:
        audit.log_credential_event(
            event_type=AuditEventType.CRED_KEYTAB_WRITTEN,
            success=False,
            error_message=str(e)[:200],
        )
        raise SetupError(
            f"Cannot write keytab to {tmp_dir}",
            cause=e,
            context={"keytab_dir": str(tmp_dir)},
        ) from e

    audit.log_credential_event(
        event_type=AuditEventType.CRED_KEYTAB_WRITTEN,
        success=True,
        keytab_path=str(path),
    )
    return path


def setup(
    conf: Union[RefreshConfig, Mapping[str, Any]],
    tmp_dir: Optional[Union[str, Path]] = None,
    *,
    issuer: CredentialIssuer,
    identity_provider: IdentityProvider,
    membership: MembershipOracle,
    security_context: SecurityContext,
    broadcast: Optional[BroadcastChannel] = None,
    audit_logger: Optional[AuditLogger] = None,
    start: bool = True,
) -> Optional[DelegationTokenRefresher]:
    """
    Activate delegation token refresh if configuration allows.

    Args:
        conf: RefreshConfig, or the string-valued cluster configuration
        tmp_dir: Directory for the materialized keytab (default: conf.keytab_dir)
        issuer: Credential issuer
        identity_provider: Keytab login and impersonation
        membership: Cluster membership oracle
        security_context: Local credential store
        broadcast: Fan-out channel (default: registry channel over this node)
        audit_logger: Audit trail (default: built from conf.audit and installed
            as the process-wide audit logger)
        start: Start the timer thread before returning

    Returns:
        The refresher, or None when the feature is inactive

    Raises:
        SetupError: Inline keytab cannot be materialized
    """
    config = conf if isinstance(conf, RefreshConfig) else RefreshConfig.from_mapping(conf)

    if config.log_dir is not None:
        setup_logging(
            domain="credential_refresh",
            stage="refresher",
            log_dir=config.log_dir,
            node_id=membership.self_node(),
        )

    if not issuer.is_available():
        log_with_context(
            logger,
            logging.INFO,
            "Delegation token refresh not active.",
            reason="credential issuer unavailable",
        )
        return None

    issuer_options = config.issuer_options
    if not config.is_complete or issuer_options is None:
        log_with_context(
            logger,
            logging.INFO,
            "Delegation token refresh not active.",
            reason="incomplete configuration",
            missing_keys=config.missing_keys(),
        )
        return None

    if audit_logger is None:
        audit_logger = configure_audit_logger(
            config.audit.audit_logging_enabled, config.audit.audit_log_path
        )

    keytab_dir = Path(tmp_dir) if tmp_dir is not None else config.keytab_dir
    keytab_path = write_keytab(config.auth_keytab, keytab_dir, audit_logger)

    if broadcast is None:
        broadcast = NodeRegistryBroadcastChannel(
            membership,
            {membership.self_node(): security_context},
            max_workers=config.broadcast_max_workers,
        )

    refresher = DelegationTokenRefresher(
        identity=IdentityDescriptor(
            principal=config.auth_principal,
            keytab_path=str(keytab_path),
            impersonate_user=config.auth_user,
        ),
        issuer_options=issuer_options,
        issuer=issuer,
        identity_provider=identity_provider,
        membership=membership,
        distribution=DistributionPolicy(membership, broadcast, security_context),
        refresh_interval_seconds=config.refresh_interval_seconds,
        audit_logger=audit_logger,
    )
    if start:
        refresher.start()
    return refresher
