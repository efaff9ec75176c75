"""
The Vault -- encrypted, file-backed secret storage.

One JSON file per vault. Inside: AES-256-GCM ciphertext of the whole
vault document, plus the salt needed to re-derive the key from the
master password. Nothing plaintext ever touches the disk.

Lifecycle:
    Uninitialized --initialize()/load()--> Unlocked --clear_master_key()--> Locked

Every mutation is saved immediately with an atomic temp-file rename, so
a crash mid-save leaves either the old vault or the new one.

    with Vault(path) as vault:
        vault.load(password)
        token = vault.get_secret("API_KEY").value
    # key wiped here, even on error
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ._io import atomic_write
from .crypto import decrypt, derive_key, encrypt, generate_salt, secure_wipe
from .errors import (
    InvalidKeyError,
    SecretAlreadyExistsError,
    SecretNotFoundError,
    VaultLockedError,
    VaultNotFoundError,
)
from .models import (
    SealedVault,
    SecretEntry,
    SecretSummary,
    VaultData,
    VaultMetadata,
    utcnow,
)

logger = logging.getLogger("safekey.vault")

EXPORT_FORMATS = ("json", "env")
VAULT_FILE_MODE = 0o600


def _default_vault_path() -> Path:
    from .config import Config

    return Config().get_current_profile().vault_path.expanduser()


class Vault:
    """Owns one vault file and, while unlocked, its decrypted contents."""

    def __init__(self, path: Optional[Path] = None):
        """Initialize the vault handle. Nothing is read until load().

        Args:
            path: Vault file. Defaults to the current profile's vault.
        """
        self.path = Path(path).expanduser() if path else _default_vault_path()
        self._data: Optional[VaultData] = None
        self._master_key: Optional[bytearray] = None

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear_master_key()

    @property
    def is_unlocked(self) -> bool:
        return self._master_key is not None

    def _require_unlocked(self) -> None:
        if self._master_key is None:
            raise VaultLockedError()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, master_password: str) -> None:
        """Create a new, empty vault sealed with ``master_password``.

        Overwrites any existing file at the path; confirming that is the
        caller's job.
        """
        self.clear_master_key()
        salt = generate_salt()
        now = utcnow()
        self._data = VaultData(
            metadata=VaultMetadata(created_at=now, updated_at=now, salt=salt)
        )
        self._master_key = derive_key(master_password, salt)
        try:
            self.save()
        except BaseException:
            self.clear_master_key()
            raise
        logger.info("Initialized vault at %s", self.path)

    def load(self, master_password: str) -> None:
        """Unlock an existing vault.

        Raises:
            VaultNotFoundError: No file at the vault path.
            InvalidKeyError: Wrong password or corrupted/tampered file.
        """
        self.clear_master_key()
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise VaultNotFoundError(str(self.path)) from None
        except (OSError, UnicodeDecodeError):
            raise InvalidKeyError() from None

        key: Optional[bytearray] = None
        try:
            sealed = SealedVault.model_validate_json(raw)
            key = derive_key(master_password, sealed.metadata.salt)
            plaintext = decrypt(sealed.encryption_result(), key)
            data = VaultData.model_validate_json(plaintext)
        except (ValidationError, ValueError, InvalidKeyError):
            secure_wipe(key)
            raise InvalidKeyError() from None

        self._data = data
        self._master_key = key
        logger.info(
            "Vault unlocked: %s (%d secrets)", self.path, len(data.secrets)
        )

    def save(self) -> None:
        """Encrypt the vault document and atomically write it to disk.

        Raises:
            VaultLockedError: No key in memory (not initialized or loaded).
        """
        self._require_unlocked()

        metadata = self._data.metadata
        metadata.updated_at = utcnow()
        metadata.key_count = len(self._data.secrets)

        plaintext = self._data.model_dump_json(by_alias=True, exclude_none=True)
        sealed = SealedVault.seal(encrypt(plaintext, self._master_key), metadata)
        atomic_write(self.path, sealed.to_json(), mode=VAULT_FILE_MODE)
        logger.debug("Vault saved: %s (%d secrets)", self.path, metadata.key_count)

    def clear_master_key(self) -> None:
        """Wipe the key from memory and drop decrypted secrets. Locks the vault."""
        if self._master_key is not None:
            secure_wipe(self._master_key)
            self._master_key = None
            if self._data is not None:
                self._data.secrets.clear()
            logger.debug("Vault locked: %s", self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def get_metadata(self) -> VaultMetadata:
        """Metadata of the vault document last initialized or loaded.

        Raises:
            VaultLockedError: Nothing has been initialized or loaded yet.
        """
        if self._data is None:
            raise VaultLockedError()
        return self._data.metadata.model_copy()

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def add_secret(
        self, key: str, value: str, description: Optional[str] = None
    ) -> None:
        """Add a new secret at version 1.

        Raises:
            SecretAlreadyExistsError: If ``key`` is already present.
        """
        self._require_unlocked()
        if key in self._data.secrets:
            raise SecretAlreadyExistsError(key)

        now = utcnow()
        self._data.secrets[key] = SecretEntry(
            key=key,
            value=value,
            description=description,
            created_at=now,
            updated_at=now,
            version=1,
        )
        self.save()
        logger.info("Added secret %s", key)

    def get_secret(self, key: str) -> SecretEntry:
        """Return a copy of the secret; mutating it does not touch the vault."""
        self._require_unlocked()
        secret = self._data.secrets.get(key)
        if secret is None:
            raise SecretNotFoundError(key)
        return secret.model_copy(deep=True)

    def update_secret(
        self, key: str, value: str, description: Optional[str] = None
    ) -> None:
        """Replace a secret's value (and description, if given); bumps version."""
        self._require_unlocked()
        secret = self._data.secrets.get(key)
        if secret is None:
            raise SecretNotFoundError(key)

        secret.value = value
        if description is not None:
            secret.description = description
        secret.updated_at = max(utcnow(), secret.created_at)
        secret.version += 1
        self.save()
        logger.info("Updated secret %s (v%d)", key, secret.version)

    def remove_secret(self, key: str) -> None:
        """Delete a secret. Deletion is permanent; no tombstone is kept."""
        self._require_unlocked()
        if key not in self._data.secrets:
            raise SecretNotFoundError(key)
        del self._data.secrets[key]
        self.save()
        logger.info("Removed secret %s", key)

    def list_secrets(self) -> list[str]:
        self._require_unlocked()
        return list(self._data.secrets)

    def get_all_secrets(self) -> list[SecretSummary]:
        """Metadata for every secret, without values."""
        self._require_unlocked()
        return [secret.summary() for secret in self._data.secrets.values()]

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_secrets(self, format: str = "json") -> str:
        """Dump all secrets as plaintext.

        This is the one place values leave the encryption boundary.

        Args:
            format: ``json`` (full records) or ``env`` (``KEY=value`` lines).
        """
        self._require_unlocked()
        if format == "env":
            return "\n".join(
                f"{key}={secret.value}"
                for key, secret in self._data.secrets.items()
            )
        if format == "json":
            records = {
                key: secret.model_dump(mode="json", by_alias=True, exclude_none=True)
                for key, secret in self._data.secrets.items()
            }
            return json.dumps(records, indent=2)
        raise ValueError(f"Unsupported export format: {format}")

    def import_secrets(
        self, data: str, format: str = "json", overwrite: bool = False
    ) -> int:
        """Import secrets from ``env`` or ``json`` text.

        Existing keys are skipped unless ``overwrite`` is set.

        Returns:
            Number of secrets added or updated.
        """
        self._require_unlocked()
        if format == "env":
            entries = self._parse_env(data)
        elif format == "json":
            entries = self._parse_json(data)
        else:
            raise ValueError(f"Unsupported import format: {format}")

        imported = 0
        for key, value, description in entries:
            if key in self._data.secrets:
                if not overwrite:
                    continue
                self.update_secret(key, value, description)
            else:
                self.add_secret(key, value, description)
            imported += 1

        logger.info("Imported %d secrets (%s)", imported, format)
        return imported

    @staticmethod
    def _parse_env(data: str) -> list[tuple[str, str, Optional[str]]]:
        entries = []
        for line in data.splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            key, sep, value = stripped.partition("=")
            key = key.strip()
            if not sep or not key:
                continue
            entries.append((key, value.strip(), None))
        return entries

    @staticmethod
    def _parse_json(data: str) -> list[tuple[str, str, Optional[str]]]:
        payload = json.loads(data)
        if not isinstance(payload, dict):
            raise ValueError("JSON import expects an object of secrets")

        entries = []
        for key, item in payload.items():
            if isinstance(item, str):
                entries.append((key, item, None))
            elif isinstance(item, dict) and isinstance(item.get("value"), str):
                description = item.get("description")
                if not isinstance(description, str):
                    description = None
                entries.append((key, item["value"], description))
        return entries
