"""
Distribution policy: local install before the cluster forms, broadcast after.

Before formation there is no stable broadcast target and every node runs its
own refresh, so the bundle is installed locally only. Once formed, the bundle
is serialized once and applied on every live member through the broadcast
channel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.errors import DistributionError
from core.logging.utilities import log_with_context
from delegation_refresh import metrics
from delegation_refresh.broadcast import (
    BroadcastChannel,
    BroadcastReport,
    apply_credential_payload,
)
from delegation_refresh.cluster import MembershipOracle
from delegation_refresh.schemas.credentials import (
    CredentialBroadcastMessage,
    CredentialBundle,
)
from delegation_refresh.security_context import SecurityContext

logger = logging.getLogger(__name__)


class DistributionMode(str, Enum):
    LOCAL = "local"
    BROADCAST = "broadcast"


@dataclass(frozen=True)
class DistributionResult:
    mode: DistributionMode
    report: Optional[BroadcastReport] = None


class DistributionPolicy:
    """Decides where a freshly issued bundle is installed."""

    def __init__(
        self,
        membership: MembershipOracle,
        broadcast: BroadcastChannel,
        security_context: SecurityContext,
    ):
        self._membership = membership
        self._broadcast = broadcast
        self._security_context = security_context

    def distribute(self, bundle: CredentialBundle) -> DistributionResult:
        """
        Install bundle locally or on every member, depending on formation.

        Membership is read fresh on every call.

        Raises:
            DistributionError: Broadcast had no members, or reached none
        """
        state = self._membership.snapshot()

        if not state.formed:
            log_with_context(
                logger,
                logging.INFO,
                "Updating credentials",
                credential_fingerprint=bundle.fingerprint,
                credential_bytes=len(bundle),
                distribution_mode=DistributionMode.LOCAL.value,
                cluster_formed=False,
            )
            self._security_context.add_credentials(bundle)
            metrics.record_distribution(DistributionMode.LOCAL.value)
            return DistributionResult(mode=DistributionMode.LOCAL)

        payload = CredentialBroadcastMessage.from_bundle(
            bundle, origin_node=state.self_node
        ).to_bytes()
        report = self._broadcast.run_on_all_nodes(payload, apply_credential_payload)

        metrics.record_distribution(
            DistributionMode.BROADCAST.value,
            succeeded=len(report.succeeded_nodes),
            failed=len(report.failed_nodes),
        )

        if report.nodes_total == 0:
            raise DistributionError(
                "Credential broadcast found no cluster members",
                report=report,
                context=report.to_dict(),
            )
        if report.is_complete_failure:
            raise DistributionError(
                "Credential broadcast reached no node",
                report=report,
                context=report.to_dict(),
            )

        if report.failed_nodes:
            log_with_context(
                logger,
                logging.WARNING,
                "Credential broadcast partially failed",
                credential_fingerprint=bundle.fingerprint,
                distribution_mode=DistributionMode.BROADCAST.value,
                **report.to_dict(),
            )
        else:
            log_with_context(
                logger,
                logging.INFO,
                "Credentials broadcast",
                credential_fingerprint=bundle.fingerprint,
                distribution_mode=DistributionMode.BROADCAST.value,
                **report.to_dict(),
            )

        return DistributionResult(mode=DistributionMode.BROADCAST, report=report)
