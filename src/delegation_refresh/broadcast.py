"""
Cluster-wide credential fan-out.

The distributing node serializes a CredentialBroadcastMessage once and hands
the payload to a BroadcastChannel, which runs an apply function against the
security context of every live member (including itself) and reports the
per-node result. Partial failure is reported, never raised, by the channel.
"""

from __future__ import annotations

import abc
import contextvars
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

from core.logging.utilities import log_with_context
from delegation_refresh.cluster import MembershipOracle
from delegation_refresh.schemas.credentials import CredentialBroadcastMessage
from delegation_refresh.security_context import SecurityContext

logger = logging.getLogger(__name__)

ApplyFn = Callable[[bytes, SecurityContext], None]


@dataclass(frozen=True)
class NodeDeliveryResult:
    """Outcome of applying a payload on one node."""

    node_id: str
    success: bool
    error: Optional[str] = None


@dataclass
class BroadcastReport:
    """Per-node results of one fan-out."""

    results: List[NodeDeliveryResult] = field(default_factory=list)

    @property
    def nodes_total(self) -> int:
        return len(self.results)

    @property
    def succeeded_nodes(self) -> List[str]:
        return [r.node_id for r in self.results if r.success]

    @property
    def failed_nodes(self) -> List[str]:
        return [r.node_id for r in self.results if not r.success]

    @property
    def is_complete_failure(self) -> bool:
        """At least one target, and none applied the payload."""
        return bool(self.results) and not self.succeeded_nodes

    @property
    def is_partial_failure(self) -> bool:
        return bool(self.succeeded_nodes) and bool(self.failed_nodes)

    def to_dict(self) -> Dict[str, object]:
        return {
            "nodes_total": self.nodes_total,
            "nodes_succeeded": len(self.succeeded_nodes),
            "nodes_failed": len(self.failed_nodes),
            "failed_nodes": self.failed_nodes,
        }


class BroadcastChannel(abc.ABC):
    """Runs an apply function on every live cluster member."""

    @abc.abstractmethod
    def run_on_all_nodes(self, payload: bytes, apply_fn: ApplyFn) -> BroadcastReport:
        """Apply payload on all members and return once each has answered.

        Must not raise for per-node failures; those belong in the report.
        """
        ...


def apply_credential_payload(payload: bytes, context: SecurityContext) -> None:
    """Receiver side of a credential broadcast: deserialize and install.

    Raises:
        pydantic.ValidationError: Payload is not a valid broadcast message
    """
    message = CredentialBroadcastMessage.from_bytes(payload)
    bundle = message.to_bundle()
    log_with_context(
        logger,
        logging.INFO,
        "Updating credentials",
        credential_fingerprint=bundle.fingerprint,
        credential_bytes=len(bundle),
        leader=message.origin_node,
    )
    context.add_credentials(bundle)


class NodeRegistryBroadcastChannel(BroadcastChannel):
    """
    Fan-out over an in-process registry of node security contexts.

    Targets are read fresh from the membership oracle on every call. Members
    with no registered context are reported as unreachable. Deliveries run
    concurrently on a short-lived thread pool.
    """

    def __init__(
        self,
        membership: MembershipOracle,
        registry: Optional[Mapping[str, SecurityContext]] = None,
        max_workers: int = 8,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._membership = membership
        self._registry: Dict[str, SecurityContext] = dict(registry or {})
        self._max_workers = max_workers
        self._lock = threading.Lock()

    def register(self, node_id: str, context: SecurityContext) -> None:
        with self._lock:
            self._registry[node_id] = context

    def unregister(self, node_id: str) -> None:
        with self._lock:
            self._registry.pop(node_id, None)

    def _deliver(
        self, node_id: str, payload: bytes, apply_fn: ApplyFn
    ) -> NodeDeliveryResult:
        with self._lock:
            context = self._registry.get(node_id)
        if context is None:
            return NodeDeliveryResult(node_id, False, "node unreachable")
        try:
            apply_fn(payload, context)
        except Exception as e:
            log_with_context(
                logger,
                logging.WARNING,
                "Failed to update credentials",
                failed_nodes=[node_id],
                error_message=str(e)[:200],
            )
            return NodeDeliveryResult(node_id, False, str(e)[:200])
        return NodeDeliveryResult(node_id, True)

    def run_on_all_nodes(self, payload: bytes, apply_fn: ApplyFn) -> BroadcastReport:
        members = self._membership.members()
        if not members:
            return BroadcastReport()

        workers = min(self._max_workers, len(members))
        with ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="credential_broadcast",
        ) as executor:
            # One context copy per task so worker logs keep node and tick ids
            futures = [
                executor.submit(
                    contextvars.copy_context().run,
                    self._deliver,
                    node_id,
                    payload,
                    apply_fn,
                )
                for node_id in members
            ]
            results = [future.result() for future in futures]

        return BroadcastReport(results=results)
