"""Local security context: where refreshed credentials are installed."""

from __future__ import annotations

import abc
import threading
from datetime import datetime, timezone
from typing import Optional

from delegation_refresh.schemas.credentials import CredentialBundle


class SecurityContext(abc.ABC):
    """Process-local credential store.

    add_credentials() is called both by the local refresher and by broadcast
    deliveries from the leader, possibly concurrently. Implementations must
    be idempotent and last-writer-wins.
    """

    @abc.abstractmethod
    def add_credentials(self, bundle: CredentialBundle) -> None:
        ...


class InMemorySecurityContext(SecurityContext):
    """Thread-safe in-memory context keeping the most recent bundle."""

    def __init__(self):
        self._lock = threading.Lock()
        self._current: Optional[CredentialBundle] = None
        self._updated_at: Optional[datetime] = None
        self._update_count = 0

    def add_credentials(self, bundle: CredentialBundle) -> None:
        with self._lock:
            self._current = bundle
            self._updated_at = datetime.now(timezone.utc)
            self._update_count += 1

    def current(self) -> Optional[CredentialBundle]:
        with self._lock:
            return self._current

    @property
    def updated_at(self) -> Optional[datetime]:
        with self._lock:
            return self._updated_at

    @property
    def update_count(self) -> int:
        with self._lock:
            return self._update_count
