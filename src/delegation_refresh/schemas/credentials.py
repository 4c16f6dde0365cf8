"""
Credential bundle and the broadcast envelope used to fan it out.

The bundle is opaque: the refresher never interprets its bytes, it only
passes them from the issuer to one or more security contexts.
"""

import base64
import binascii
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator


@dataclass(frozen=True)
class CredentialBundle:
    """Opaque serialized security tokens produced by the issuer."""

    data: bytes = field(repr=False)

    def __post_init__(self):
        if not isinstance(self.data, (bytes, bytearray)):
            raise TypeError("CredentialBundle data must be bytes")
        if isinstance(self.data, bytearray):
            object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)

    @property
    def fingerprint(self) -> str:
        """Short digest safe to log in place of the credential bytes."""
        return hashlib.sha256(self.data).hexdigest()[:16]

    def __repr__(self) -> str:
        return f"CredentialBundle(fingerprint={self.fingerprint}, size={len(self)})"


class CredentialBroadcastMessage(BaseModel):
    """Schema for credentials broadcast from the refreshing node to all members.

    Serialized once per tick and delivered unchanged to every node, so all
    nodes decode the same bytes identically.

    Attributes:
        origin_node: Node that refreshed the credentials
        issued_at: When the origin node obtained the credentials
        credentials: Raw credential bundle bytes (base64 in JSON)

    Example:
        >>> msg = CredentialBroadcastMessage.from_bundle(bundle, origin_node="node-1")
        >>> payload = msg.to_bytes()
        >>> CredentialBroadcastMessage.from_bytes(payload).to_bundle() == bundle
        True
    """

    origin_node: str = Field(
        ...,
        description="Node that refreshed the credentials",
        min_length=1,
    )
    issued_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the origin node obtained the credentials",
    )
    credentials: bytes = Field(
        ...,
        description="Credential bundle bytes",
    )

    @field_validator("credentials", mode="before")
    @classmethod
    def decode_credentials(cls, v: Any) -> Any:
        """Accept raw bytes, or base64 text coming from JSON."""
        if isinstance(v, str):
            try:
                return base64.b64decode(v, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"credentials is not valid base64: {e}") from e
        return v

    @field_serializer("credentials")
    def serialize_credentials(self, credentials: bytes) -> str:
        return base64.b64encode(credentials).decode("ascii")

    @field_serializer("issued_at")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """Serialize datetime to ISO 8601 format."""
        return timestamp.isoformat()

    @classmethod
    def from_bundle(
        cls, bundle: CredentialBundle, origin_node: str
    ) -> "CredentialBroadcastMessage":
        return cls(origin_node=origin_node, credentials=bundle.data)

    def to_bundle(self) -> CredentialBundle:
        return CredentialBundle(self.credentials)

    def to_bytes(self) -> bytes:
        """Serialize to the wire payload."""
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "CredentialBroadcastMessage":
        """Deserialize a wire payload.

        Raises:
            pydantic.ValidationError: If the payload is malformed
        """
        return cls.model_validate_json(payload)
