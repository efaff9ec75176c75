"""
SafeKey error taxonomy.

Every failure the vault or the sync layer can raise lives here, rooted
at VaultError so callers can catch the whole family in one place.
Unlock failures never say whether the password or the file was wrong.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .sync.models import Conflict


class VaultError(Exception):
    """Base class for all SafeKey errors."""


class VaultNotFoundError(VaultError):
    """No sealed vault exists at the expected location."""

    def __init__(self, location: str, message: Optional[str] = None):
        super().__init__(message or f"Vault not found at {location}")
        self.location = location


class InvalidKeyError(VaultError):
    """Decryption failed: wrong password or corrupted vault."""

    def __init__(self) -> None:
        super().__init__("Invalid encryption key or corrupted vault")


class SecretNotFoundError(VaultError):
    """The requested secret key is not in the vault."""

    def __init__(self, key: str):
        super().__init__(f"Secret '{key}' not found")
        self.key = key


class SecretAlreadyExistsError(VaultError):
    """A secret with this key already exists."""

    def __init__(self, key: str):
        super().__init__(f"Secret '{key}' already exists")
        self.key = key


class VaultLockedError(VaultError, RuntimeError):
    """The vault has no master key in memory (never unlocked, or locked)."""

    def __init__(self, message: str = "Vault not initialized or loaded"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Cloud provider errors
# ---------------------------------------------------------------------------


class CloudProviderError(VaultError):
    """Base class for remote backend failures.

    Attributes:
        code: Stable machine-readable error code.
        provider: Name of the provider that failed.
        retryable: Whether the caller may reasonably retry.
    """

    code = "PROVIDER_ERROR"
    retryable = False

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class ProviderNotConfiguredError(CloudProviderError):
    code = "PROVIDER_NOT_CONFIGURED"
    retryable = False

    def __init__(self, provider: str):
        super().__init__(
            provider, f"Cloud provider {provider} is not properly configured"
        )


class AuthenticationError(CloudProviderError):
    code = "AUTHENTICATION_FAILED"
    retryable = True

    def __init__(self, provider: str, message: str):
        super().__init__(
            provider, f"Authentication failed for {provider}: {message}"
        )


class NetworkError(CloudProviderError):
    code = "NETWORK_ERROR"
    retryable = True

    def __init__(self, provider: str, message: str):
        super().__init__(provider, f"Network error for {provider}: {message}")


class RemoteVaultNotFoundError(VaultNotFoundError):
    """The remote backend has no vault under the given identifier."""

    code = "VAULT_NOT_FOUND"
    retryable = False

    def __init__(self, provider: str, vault_id: str):
        super().__init__(vault_id, f"Vault {vault_id} not found in {provider}")
        self.provider = provider


class SyncConflictError(CloudProviderError):
    """Local and remote copies diverged and need a caller decision."""

    code = "SYNC_CONFLICT"
    retryable = False

    def __init__(self, provider: str, conflict: "Conflict"):
        super().__init__(
            provider, f"Sync conflict detected: {conflict.type.value}"
        )
        self.conflict = conflict
