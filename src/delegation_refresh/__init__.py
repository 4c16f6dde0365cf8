"""
Leader-coordinated delegation credential refresh.

A single elected node periodically logs in from a keytab, obtains delegation
credentials from the issuer (optionally impersonating a token user), and
makes them available on every cluster node.

Modules:
    config           - RefreshConfig, IdentityDescriptor, IssuerOptions
    schemas          - CredentialBundle, CredentialBroadcastMessage
    cluster          - MembershipOracle contract, StaticMembership
    security_context - SecurityContext contract, InMemorySecurityContext
    identity         - IdentityProvider contract
    issuer           - CredentialIssuer contract
    broadcast        - BroadcastChannel contract, NodeRegistryBroadcastChannel
    distribution     - DistributionPolicy
    refresher        - DelegationTokenRefresher, setup()
    metrics          - Prometheus instrumentation

Usage:
    from delegation_refresh import setup

    refresher = setup(
        conf,
        issuer=issuer,
        identity_provider=provider,
        membership=membership,
        security_context=context,
    )
"""

from delegation_refresh.broadcast import (
    BroadcastChannel,
    BroadcastReport,
    NodeDeliveryResult,
    NodeRegistryBroadcastChannel,
    apply_credential_payload,
)
from delegation_refresh.cluster import ClusterState, MembershipOracle, StaticMembership
from delegation_refresh.config import IdentityDescriptor, IssuerOptions, RefreshConfig
from delegation_refresh.distribution import (
    DistributionMode,
    DistributionPolicy,
    DistributionResult,
)
from delegation_refresh.identity import Identity, IdentityProvider
from delegation_refresh.issuer import CredentialIssuer
from delegation_refresh.refresher import (
    DelegationTokenRefresher,
    RefreshState,
    TickOutcome,
    setup,
    write_keytab,
)
from delegation_refresh.schemas import CredentialBroadcastMessage, CredentialBundle
from delegation_refresh.security_context import (
    InMemorySecurityContext,
    SecurityContext,
)

__all__ = [
    # Config
    "RefreshConfig",
    "IdentityDescriptor",
    "IssuerOptions",
    # Schemas
    "CredentialBundle",
    "CredentialBroadcastMessage",
    # Collaborators
    "ClusterState",
    "MembershipOracle",
    "StaticMembership",
    "SecurityContext",
    "InMemorySecurityContext",
    "Identity",
    "IdentityProvider",
    "CredentialIssuer",
    "BroadcastChannel",
    "BroadcastReport",
    "NodeDeliveryResult",
    "NodeRegistryBroadcastChannel",
    "apply_credential_payload",
    # Distribution
    "DistributionMode",
    "DistributionPolicy",
    "DistributionResult",
    # Refresher
    "DelegationTokenRefresher",
    "RefreshState",
    "TickOutcome",
    "setup",
    "write_keytab",
]
