"""
Identity provider contract.

Kerberos ticket mechanics live behind this interface. The refresher only
needs two operations: log in from a keytab, and derive an impersonating
identity from a logged-in one.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class Identity:
    """Authenticated identity handle.

    Attributes:
        name: Principal or user name this identity acts as
        real_identity: Authenticated identity behind an impersonation
        handle: Provider-specific credential object
    """

    name: str
    real_identity: Optional["Identity"] = None
    handle: Any = field(default=None, repr=False, compare=False)

    @property
    def is_proxy(self) -> bool:
        return self.real_identity is not None


class IdentityProvider(abc.ABC):
    """Interface to the external identity provider."""

    @abc.abstractmethod
    def login_from_keytab(self, principal: str, keytab_path: str) -> Identity:
        """Authenticate as principal using the keytab at keytab_path.

        Raises:
            Exception: Any failure (bad credentials, unreachable KDC)
        """
        ...

    @abc.abstractmethod
    def impersonate(self, user: str, real_identity: Identity) -> Identity:
        """Create an identity acting as user on behalf of real_identity.

        Raises:
            Exception: If real_identity may not impersonate user
        """
        ...
