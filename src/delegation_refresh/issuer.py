"""Credential issuer contract."""

from __future__ import annotations

import abc
from typing import Optional

from delegation_refresh.config import IssuerOptions
from delegation_refresh.identity import Identity
from delegation_refresh.schemas.credentials import CredentialBundle


class CredentialIssuer(abc.ABC):
    """Obtains delegation credentials from the remote token service."""

    def is_available(self) -> bool:
        """Whether the issuer's client library is usable in this runtime.

        When False the refresh feature never activates.
        """
        return True

    @abc.abstractmethod
    def fetch(
        self,
        real_identity: Identity,
        token_identity: Identity,
        options: IssuerOptions,
    ) -> Optional[CredentialBundle]:
        """Obtain credentials for token_identity, authenticated as real_identity.

        Returns:
            The credential bundle, or None when the issuer produced nothing

        Raises:
            IOError: Issuer unreachable or protocol failure
            InterruptedError: Blocking call interrupted
        """
        ...
