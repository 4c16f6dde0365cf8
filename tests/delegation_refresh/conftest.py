"""
Pytest fixtures for delegation refresh tests.

Provides fakes for the external collaborators:
- Identity provider recording logins and impersonations
- Credential issuer returning scripted bundles or errors
- Recording broadcast channel over a three-node in-process cluster
"""

import base64
from typing import Dict, List, Optional

import pytest

from delegation_refresh.broadcast import (
    BroadcastChannel,
    BroadcastReport,
    NodeRegistryBroadcastChannel,
)
from delegation_refresh.cluster import StaticMembership
from delegation_refresh.config import IdentityDescriptor, IssuerOptions, RefreshConfig
from delegation_refresh.distribution import DistributionPolicy
from delegation_refresh.identity import Identity, IdentityProvider
from delegation_refresh.issuer import CredentialIssuer
from delegation_refresh.refresher import DelegationTokenRefresher
from delegation_refresh.schemas.credentials import CredentialBundle
from delegation_refresh.security_context import InMemorySecurityContext

SELF_NODE = "node-1"
OTHER_NODES = ["node-2", "node-3"]

KEYTAB_BYTES = b"\x05\x02fake-keytab"
KEYTAB_B64 = base64.b64encode(KEYTAB_BYTES).decode("ascii")


class FakeIdentityProvider(IdentityProvider):
    def __init__(
        self,
        login_error: Optional[Exception] = None,
        impersonate_error: Optional[Exception] = None,
    ):
        self.login_error = login_error
        self.impersonate_error = impersonate_error
        self.logins: List[tuple] = []
        self.impersonations: List[tuple] = []

    def login_from_keytab(self, principal: str, keytab_path: str) -> Identity:
        self.logins.append((principal, keytab_path))
        if self.login_error is not None:
            raise self.login_error
        return Identity(name=principal)

    def impersonate(self, user: str, real_identity: Identity) -> Identity:
        self.impersonations.append((user, real_identity))
        if self.impersonate_error is not None:
            raise self.impersonate_error
        return Identity(name=user, real_identity=real_identity)


class FakeIssuer(CredentialIssuer):
    """Returns scripted results in order, then repeats the last one.

    A result that is an exception instance is raised instead of returned.
    """

    def __init__(self, results=None, available: bool = True):
        self.results = list(results) if results is not None else [CredentialBundle(b"B1")]
        self.available = available
        self.calls: List[tuple] = []

    def is_available(self) -> bool:
        return self.available

    def fetch(self, real_identity, token_identity, options):
        self.calls.append((real_identity, token_identity, options))
        index = min(len(self.calls), len(self.results)) - 1
        result = self.results[index]
        if isinstance(result, BaseException):
            raise result
        return result


class RecordingBroadcastChannel(BroadcastChannel):
    """Delegates to an inner channel and records every payload."""

    def __init__(self, inner: BroadcastChannel):
        self.inner = inner
        self.payloads: List[bytes] = []

    def run_on_all_nodes(self, payload, apply_fn) -> BroadcastReport:
        self.payloads.append(payload)
        return self.inner.run_on_all_nodes(payload, apply_fn)


@pytest.fixture
def membership() -> StaticMembership:
    return StaticMembership(SELF_NODE, OTHER_NODES)


@pytest.fixture
def node_contexts() -> Dict[str, InMemorySecurityContext]:
    return {node: InMemorySecurityContext() for node in [SELF_NODE] + OTHER_NODES}


@pytest.fixture
def local_context(node_contexts) -> InMemorySecurityContext:
    return node_contexts[SELF_NODE]


@pytest.fixture
def broadcast(membership, node_contexts) -> RecordingBroadcastChannel:
    return RecordingBroadcastChannel(
        NodeRegistryBroadcastChannel(membership, node_contexts, max_workers=4)
    )


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def issuer() -> FakeIssuer:
    return FakeIssuer()


@pytest.fixture
def issuer_options() -> IssuerOptions:
    return IssuerOptions(
        endpoint_url="https://issuer.example.com:10000/default",
        principal="issuer/_HOST@EXAMPLE.COM",
    )


@pytest.fixture
def distribution(membership, broadcast, local_context) -> DistributionPolicy:
    return DistributionPolicy(membership, broadcast, local_context)


@pytest.fixture
def make_refresher(issuer, identity_provider, membership, distribution, issuer_options):
    """Factory for refreshers wired to the fakes."""
    created = []

    def _make(
        impersonate_user: Optional[str] = None,
        refresh_interval_seconds: float = 60.0,
        principal: str = "svcA",
    ) -> DelegationTokenRefresher:
        refresher = DelegationTokenRefresher(
            identity=IdentityDescriptor(
                principal=principal,
                keytab_path="/tmp/auth_keytab",
                impersonate_user=impersonate_user,
            ),
            issuer_options=issuer_options,
            issuer=issuer,
            identity_provider=identity_provider,
            membership=membership,
            distribution=distribution,
            refresh_interval_seconds=refresh_interval_seconds,
        )
        created.append(refresher)
        return refresher

    yield _make

    for refresher in created:
        refresher.stop(timeout=2)


@pytest.fixture
def keytab_bytes() -> bytes:
    return KEYTAB_BYTES


@pytest.fixture
def complete_conf() -> Dict[str, str]:
    """String-valued cluster configuration with every key set."""
    return {
        "auth-user": "alice",
        "auth-principal": "svcA@EXAMPLE.COM",
        "auth-keytab": KEYTAB_B64,
        "issuer-endpoint-url": "https://issuer.example.com:10000/default",
        "issuer-principal": "issuer/_HOST@EXAMPLE.COM",
    }


@pytest.fixture
def refresh_config(complete_conf, tmp_path) -> RefreshConfig:
    return RefreshConfig.from_mapping(complete_conf, keytab_dir=tmp_path / "keytab")
