"""
Cluster membership contract.

The refresher never caches membership: it takes a fresh ClusterState
snapshot at the start of every tick and again when distributing.
"""

from __future__ import annotations

import abc
import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class ClusterState:
    """Point-in-time read of the membership oracle."""

    formed: bool
    leader: Optional[str]
    self_node: str

    @property
    def is_leader(self) -> bool:
        return self.leader is not None and self.leader == self.self_node

    @property
    def should_stand_down(self) -> bool:
        """Cluster is formed and another node owns the refresh duty."""
        return self.formed and not self.is_leader


class MembershipOracle(abc.ABC):
    """Interface reporting cluster formation and leadership.

    Implementations must be safe to call from any thread; the refresher
    calls them from its timer thread.
    """

    @abc.abstractmethod
    def is_formed(self) -> bool:
        """Whether cluster membership is locked."""
        ...

    @abc.abstractmethod
    def leader(self) -> Optional[str]:
        """Node id of the current leader, None before one is known."""
        ...

    @abc.abstractmethod
    def self_node(self) -> str:
        """Node id of the local node."""
        ...

    @abc.abstractmethod
    def members(self) -> List[str]:
        """Node ids of all live members, including self."""
        ...

    def snapshot(self) -> ClusterState:
        """Read formation and leadership together."""
        formed = self.is_formed()
        return ClusterState(
            formed=formed,
            leader=self.leader() if formed else None,
            self_node=self.self_node(),
        )


class StaticMembership(MembershipOracle):
    """In-process membership oracle.

    Starts unformed; lock() marks the cluster formed with a given leader.
    Suitable for single-process deployments and for driving tests.
    """

    def __init__(self, self_node: str, members: Optional[Iterable[str]] = None):
        if not self_node:
            raise ValueError("self_node is required")
        self._self_node = self_node
        self._members: List[str] = [self_node]
        for member in members or []:
            if member not in self._members:
                self._members.append(member)
        self._formed = False
        self._leader: Optional[str] = None
        self._lock = threading.Lock()

    def is_formed(self) -> bool:
        with self._lock:
            return self._formed

    def leader(self) -> Optional[str]:
        with self._lock:
            return self._leader

    def self_node(self) -> str:
        return self._self_node

    def members(self) -> List[str]:
        with self._lock:
            return list(self._members)

    def snapshot(self) -> ClusterState:
        with self._lock:
            return ClusterState(
                formed=self._formed,
                leader=self._leader if self._formed else None,
                self_node=self._self_node,
            )

    def lock(self, leader: str) -> None:
        """Mark the cluster formed with the given leader."""
        with self._lock:
            if leader not in self._members:
                raise ValueError(f"Leader {leader!r} is not a member")
            self._formed = True
            self._leader = leader

    def unlock(self) -> None:
        with self._lock:
            self._formed = False
            self._leader = None

    def set_leader(self, leader: str) -> None:
        with self._lock:
            if leader not in self._members:
                raise ValueError(f"Leader {leader!r} is not a member")
            self._leader = leader

    def add_member(self, node_id: str) -> None:
        with self._lock:
            if node_id not in self._members:
                self._members.append(node_id)

    def remove_member(self, node_id: str) -> None:
        if node_id == self._self_node:
            raise ValueError("Cannot remove the local node")
        with self._lock:
            if node_id in self._members:
                self._members.remove(node_id)
            if self._leader == node_id:
                self._leader = None
