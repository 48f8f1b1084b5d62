"""
Tests for CredentialCipher.

Tests cover:
- Round-trip of realistic credential values
- IV randomization and the <ivHex>:<cipherHex> wire format
- Wrong key, corrupted and truncated blobs
"""
import re

import pytest

from exchange_session.exceptions import DecryptionError
from exchange_session.vault.crypto import CredentialCipher, derive_key, IV_SIZE

from .conftest import OTHER_KEY, TEST_KEY

BLOB_PATTERN = re.compile(r"^[0-9a-f]{32}:[0-9a-f]+$")


class TestRoundTrip:
    """decrypt(encrypt(x)) == x."""

    @pytest.mark.parametrize("plaintext", [
        b"",
        b"k",
        b"vmPUZE6mv9SD5VNHk4HlWFsOr6aKE2zvsw0MuIgwCIPy6utIco14y7Ju91duEh8A",
        b"0x" + b"ab" * 20,
        "clave-sécreta-ñ".encode("utf-8"),
        bytes(range(256)),
    ])
    def test_roundtrip(self, cipher, plaintext):
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_text_roundtrip(self, cipher):
        assert cipher.decrypt_text(cipher.encrypt_text("my-api-key")) == "my-api-key"

    def test_same_plaintext_different_blobs(self, cipher):
        first = cipher.encrypt(b"same secret")
        second = cipher.encrypt(b"same secret")
        assert first != second
        assert first.split(":")[0] != second.split(":")[0]
        assert cipher.decrypt(first) == cipher.decrypt(second) == b"same secret"

    def test_new_instance_same_key_decrypts(self, cipher):
        blob = cipher.encrypt(b"persisted")
        assert CredentialCipher(TEST_KEY).decrypt(blob) == b"persisted"


class TestWireFormat:

    def test_blob_format(self, cipher):
        blob = cipher.encrypt(b"api-key")
        assert BLOB_PATTERN.match(blob)
        iv_hex, _ = blob.split(":")
        assert len(iv_hex) == IV_SIZE * 2

    def test_repr_hides_key(self, cipher):
        assert TEST_KEY.hex() not in repr(cipher)


class TestDecryptionFailures:

    def test_wrong_key(self, cipher):
        blob = cipher.encrypt(b"secret")
        with pytest.raises(DecryptionError):
            CredentialCipher(OTHER_KEY).decrypt(blob)

    def test_corrupted_ciphertext(self, cipher):
        iv_hex, body_hex = cipher.encrypt(b"secret").split(":")
        flipped = format(int(body_hex[0], 16) ^ 0x1, "x") + body_hex[1:]
        with pytest.raises(DecryptionError):
            cipher.decrypt(f"{iv_hex}:{flipped}")

    def test_corrupted_iv(self, cipher):
        iv_hex, body_hex = cipher.encrypt(b"secret").split(":")
        flipped = format(int(iv_hex[-1], 16) ^ 0x1, "x")
        with pytest.raises(DecryptionError):
            cipher.decrypt(f"{iv_hex[:-1]}{flipped}:{body_hex}")

    def test_truncated(self, cipher):
        blob = cipher.encrypt(b"secret")
        with pytest.raises(DecryptionError):
            cipher.decrypt(blob[:-2])

    @pytest.mark.parametrize("blob", [
        "",
        "no-separator",
        "a:b:c",
        "zz:zz",
        "00:" + "00" * 48,
        "00" * 16 + ":",
    ])
    def test_malformed(self, cipher, blob):
        with pytest.raises(DecryptionError):
            cipher.decrypt(blob)


class TestKeys:

    @pytest.mark.parametrize("key", [b"", b"short", b"x" * 31, b"x" * 33])
    def test_rejects_bad_key_length(self, key):
        with pytest.raises(ValueError):
            CredentialCipher(key)

    def test_derive_key_is_deterministic(self):
        assert derive_key(TEST_KEY, "ctx") == derive_key(TEST_KEY, "ctx")
        assert derive_key(TEST_KEY, "ctx") != derive_key(TEST_KEY, "other")
        assert len(derive_key(TEST_KEY, "ctx")) == 32
