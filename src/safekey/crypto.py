"""
Crypto primitives -- password-based key derivation and AES-256-GCM.

Master password -> PBKDF2-HMAC-SHA256 (100k rounds) -> 256-bit key.
The key seals the whole vault document with AES-256-GCM; every call to
encrypt() draws a fresh 96-bit IV from the OS CSPRNG.

Any decryption failure surfaces as InvalidKeyError. A wrong password and
a tampered file look identical to the caller.
"""

from __future__ import annotations

import binascii
import os
import re
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import InvalidKeyError

PBKDF2_ITERATIONS = 100_000
KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 16
IV_LENGTH = 12  # GCM recommended nonce size
TAG_LENGTH = 16

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class EncryptionResult:
    """Hex-encoded output of one AES-256-GCM seal."""

    encrypted: str
    iv: str
    auth_tag: str


def derive_key(password: str, salt: str) -> bytearray:
    """Derive a 256-bit key from a password and the vault's salt.

    The salt is the hex string stored in the vault envelope; its UTF-8
    bytes are used as the PBKDF2 salt.

    Args:
        password: Master password.
        salt: Hex salt from generate_salt().

    Returns:
        Mutable 32-byte key, so it can be wiped with secure_wipe().
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt.encode("utf-8"),
        iterations=PBKDF2_ITERATIONS,
    )
    return bytearray(kdf.derive(password.encode("utf-8")))


def generate_salt() -> str:
    """Generate a random per-vault salt (hex)."""
    return os.urandom(SALT_LENGTH).hex()


def generate_key() -> str:
    """Generate a random 256-bit key (hex)."""
    return os.urandom(KEY_LENGTH).hex()


def is_valid_hex_key(value: str) -> bool:
    """Check that a string is a 64-character hex key."""
    return bool(_HEX_KEY_RE.match(value))


def encrypt(plaintext: str, key: Union[bytes, bytearray]) -> EncryptionResult:
    """Encrypt text with AES-256-GCM under a freshly random IV.

    Args:
        plaintext: Text to seal.
        key: 32-byte key from derive_key().

    Returns:
        EncryptionResult with hex ciphertext, IV and authentication tag.
    """
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(bytes(key)).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return EncryptionResult(
        encrypted=ciphertext.hex(),
        iv=iv.hex(),
        auth_tag=tag.hex(),
    )


def decrypt(sealed: EncryptionResult, key: Union[bytes, bytearray]) -> str:
    """Decrypt and authenticate an EncryptionResult.

    Raises:
        InvalidKeyError: If the tag does not verify or the input is malformed.
    """
    try:
        iv = bytes.fromhex(sealed.iv)
        tag = bytes.fromhex(sealed.auth_tag)
        ciphertext = bytes.fromhex(sealed.encrypted)
        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise InvalidKeyError()
        plaintext = AESGCM(bytes(key)).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError, TypeError, binascii.Error):
        raise InvalidKeyError() from None


def secure_wipe(buffer: Union[bytearray, memoryview, None]) -> None:
    """Overwrite key material in place (best effort)."""
    if buffer is None or len(buffer) == 0:
        return
    view = memoryview(buffer)
    view[:] = b"\x00" * len(view)
