"""
Pydantic models for the vault document and its sealed envelope.

The decrypted VaultData lives in memory only. What touches the disk is
SealedVault: hex ciphertext, IV, tag, plus just enough plaintext
metadata (format version, creation time, salt) to re-derive the key.

Field names are snake_case in Python and camelCase on the wire, so
vault files stay readable by every SafeKey release.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from ._io import iso_timestamp
from .crypto import EncryptionResult

VAULT_FORMAT_VERSION = "1.0.0"

Timestamp = Annotated[
    datetime, PlainSerializer(iso_timestamp, return_type=str, when_used="json")
]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SecretSummary(CamelModel):
    """Everything about a secret except its value."""

    key: str
    description: Optional[str] = None
    created_at: Timestamp = Field(default_factory=utcnow)
    updated_at: Timestamp = Field(default_factory=utcnow)
    version: int = Field(default=1, ge=1)


class SecretEntry(SecretSummary):
    """One named credential. The value only ever exists decrypted in memory."""

    value: str

    def summary(self) -> SecretSummary:
        return SecretSummary(
            key=self.key,
            description=self.description,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )


class VaultMetadata(CamelModel):
    """Vault-wide bookkeeping. The salt is fixed at creation."""

    version: str = VAULT_FORMAT_VERSION
    created_at: Timestamp = Field(default_factory=utcnow)
    updated_at: Timestamp = Field(default_factory=utcnow)
    key_count: int = 0
    salt: str


class VaultData(CamelModel):
    """The full decrypted vault document."""

    metadata: VaultMetadata
    secrets: dict[str, SecretEntry] = Field(default_factory=dict)


class SealedMetadata(CamelModel):
    """Plaintext envelope header needed before decryption."""

    version: str
    created_at: str
    salt: str


class SealedVault(CamelModel):
    """The on-disk (and on-cloud) sealed vault blob."""

    encrypted: str
    iv: str
    auth_tag: str
    metadata: SealedMetadata

    @classmethod
    def seal(cls, result: EncryptionResult, metadata: VaultMetadata) -> "SealedVault":
        return cls(
            encrypted=result.encrypted,
            iv=result.iv,
            auth_tag=result.auth_tag,
            metadata=SealedMetadata(
                version=metadata.version,
                created_at=iso_timestamp(metadata.created_at),
                salt=metadata.salt,
            ),
        )

    def encryption_result(self) -> EncryptionResult:
        return EncryptionResult(
            encrypted=self.encrypted, iv=self.iv, auth_tag=self.auth_tag
        )

    def to_json(self) -> str:
        """Serialize to the pretty-printed envelope written to disk."""
        return self.model_dump_json(by_alias=True, indent=2)
