"""
SafeKey -- a local-first encrypted secrets vault.

Secrets live in one AES-256-GCM sealed file per vault, unlocked by a
master password. Optional sync moves the sealed file (never plaintext)
to a remote provider and back.
"""

__version__ = "0.1.0"
__author__ = "SafeKey"

from .errors import (  # noqa: E402
    InvalidKeyError,
    SecretAlreadyExistsError,
    SecretNotFoundError,
    VaultError,
    VaultLockedError,
    VaultNotFoundError,
)
from .vault import Vault  # noqa: E402

__all__ = [
    "InvalidKeyError",
    "SecretAlreadyExistsError",
    "SecretNotFoundError",
    "Vault",
    "VaultError",
    "VaultLockedError",
    "VaultNotFoundError",
]
