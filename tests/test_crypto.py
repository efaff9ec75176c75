"""Tests for the crypto primitives -- key derivation and AES-256-GCM."""

from __future__ import annotations

import pytest

from safekey.crypto import (
    EncryptionResult,
    decrypt,
    derive_key,
    encrypt,
    generate_key,
    generate_salt,
    is_valid_hex_key,
    secure_wipe,
)
from safekey.errors import InvalidKeyError


@pytest.fixture(scope="module")
def key() -> bytearray:
    return derive_key("correct-horse", "00112233445566778899aabbccddeeff")


def _flip(hex_text: str, index: int) -> str:
    raw = bytearray(bytes.fromhex(hex_text))
    raw[index] ^= 0x01
    return raw.hex()


class TestKeyDerivation:
    """derive_key / generate_salt."""

    def test_deterministic(self):
        salt = generate_salt()
        assert derive_key("pw", salt) == derive_key("pw", salt)

    def test_256_bit_key(self, key: bytearray):
        assert isinstance(key, bytearray)
        assert len(key) == 32

    def test_salt_changes_key(self):
        assert derive_key("pw", generate_salt()) != derive_key("pw", generate_salt())

    def test_password_changes_key(self):
        salt = generate_salt()
        assert derive_key("pw-one", salt) != derive_key("pw-two", salt)

    def test_salt_is_random_hex(self):
        salts = {generate_salt() for _ in range(50)}
        assert len(salts) == 50
        assert all(len(s) == 32 for s in salts)
        assert all(int(s, 16) >= 0 for s in salts)


class TestEncryption:
    """encrypt / decrypt round trip and failure modes."""

    def test_roundtrip(self, key: bytearray):
        sealed = encrypt("hello vault", key)
        assert decrypt(sealed, key) == "hello vault"

    def test_unicode_roundtrip(self, key: bytearray):
        text = "pässwörd ✓ 密码"
        assert decrypt(encrypt(text, key), key) == text

    def test_output_is_hex(self, key: bytearray):
        sealed = encrypt("data", key)
        assert len(bytes.fromhex(sealed.iv)) == 12
        assert len(bytes.fromhex(sealed.auth_tag)) == 16
        assert len(bytes.fromhex(sealed.encrypted)) == len("data")

    def test_ciphertext_hides_plaintext(self, key: bytearray):
        sealed = encrypt("API_KEY=abc123", key)
        assert "abc123".encode().hex() not in sealed.encrypted

    def test_wrong_key_rejected(self, key: bytearray):
        sealed = encrypt("secret", key)
        other = derive_key("wrong-password", "00112233445566778899aabbccddeeff")
        with pytest.raises(InvalidKeyError):
            decrypt(sealed, other)

    def test_every_ciphertext_byte_tamper_detected(self, key: bytearray):
        sealed = encrypt("short secret", key)
        size = len(bytes.fromhex(sealed.encrypted))
        for i in range(size):
            tampered = EncryptionResult(
                encrypted=_flip(sealed.encrypted, i),
                iv=sealed.iv,
                auth_tag=sealed.auth_tag,
            )
            with pytest.raises(InvalidKeyError):
                decrypt(tampered, key)

    def test_every_tag_byte_tamper_detected(self, key: bytearray):
        sealed = encrypt("short secret", key)
        for i in range(16):
            tampered = EncryptionResult(
                encrypted=sealed.encrypted,
                iv=sealed.iv,
                auth_tag=_flip(sealed.auth_tag, i),
            )
            with pytest.raises(InvalidKeyError):
                decrypt(tampered, key)

    def test_iv_tamper_detected(self, key: bytearray):
        sealed = encrypt("short secret", key)
        tampered = EncryptionResult(
            encrypted=sealed.encrypted,
            iv=_flip(sealed.iv, 0),
            auth_tag=sealed.auth_tag,
        )
        with pytest.raises(InvalidKeyError):
            decrypt(tampered, key)

    def test_malformed_input_is_invalid_key(self, key: bytearray):
        bad = EncryptionResult(encrypted="zz", iv="not-hex", auth_tag="00")
        with pytest.raises(InvalidKeyError):
            decrypt(bad, key)

    def test_short_iv_rejected(self, key: bytearray):
        sealed = encrypt("x", key)
        bad = EncryptionResult(
            encrypted=sealed.encrypted, iv=sealed.iv[:8], auth_tag=sealed.auth_tag
        )
        with pytest.raises(InvalidKeyError):
            decrypt(bad, key)

    def test_wrong_password_and_corruption_same_message(self, key: bytearray):
        sealed = encrypt("secret", key)
        other = derive_key("nope", "00112233445566778899aabbccddeeff")
        with pytest.raises(InvalidKeyError) as wrong_pw:
            decrypt(sealed, other)
        corrupted = EncryptionResult(
            encrypted=sealed.encrypted,
            iv=sealed.iv,
            auth_tag=_flip(sealed.auth_tag, 3),
        )
        with pytest.raises(InvalidKeyError) as wrong_data:
            decrypt(corrupted, key)
        assert str(wrong_pw.value) == str(wrong_data.value)

    def test_iv_unique_across_many_calls(self, key: bytearray):
        ivs = {encrypt("x", key).iv for _ in range(10_000)}
        assert len(ivs) == 10_000


class TestHelpers:
    """secure_wipe and key helpers."""

    def test_secure_wipe_zeroes_buffer(self):
        buf = bytearray(b"\x01\x02\x03\x04")
        secure_wipe(buf)
        assert buf == bytearray(4)

    def test_secure_wipe_tolerates_empty(self):
        secure_wipe(bytearray())
        secure_wipe(None)

    def test_generate_key_is_valid_hex_key(self):
        key = generate_key()
        assert is_valid_hex_key(key)
        assert generate_key() != key

    def test_is_valid_hex_key_rejects_bad_input(self):
        assert not is_valid_hex_key("abc")
        assert not is_valid_hex_key("g" * 64)
        assert is_valid_hex_key("A" * 64)
