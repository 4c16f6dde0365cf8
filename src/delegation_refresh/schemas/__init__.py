"""
Credential schemas.

Schemas:
    credentials.py - CredentialBundle (opaque issuer output)
                     CredentialBroadcastMessage (cluster fan-out envelope)

Design Decisions:
    - Bundle bytes are never interpreted, only carried
    - Pydantic for validation and JSON serialization of the envelope
    - Binary fields as base64 strings, datetimes as ISO 8601 strings
"""

from delegation_refresh.schemas.credentials import (
    CredentialBroadcastMessage,
    CredentialBundle,
)

__all__ = ["CredentialBundle", "CredentialBroadcastMessage"]
