"""
Unit tests for owner-scoped credential encryption.

Tests the AES-GCM round trip plus every way a ciphertext must refuse to open.
"""

import pytest

from proxy_vault.exceptions import CredentialNotFoundError, DecryptionError, ValidationError
from proxy_vault.utils.encryption_utils import (
    NONCE_SIZE,
    CipherStore,
    EncryptedSecret,
    decrypt_secret,
    derive_owner_key,
    encrypt_secret,
)

OWNER_A = "0xENC00000000000000000000000000000000000A1"
OWNER_B = "0xENC00000000000000000000000000000000000B2"
KEY_A = bytes(range(32))
KEY_B = bytes(range(200, 232))
SECRET = "sk-live-0123456789abcdef"


class TestDeriveOwnerKey:
    def test_deterministic(self):
        assert derive_owner_key(KEY_A, OWNER_A) == derive_owner_key(KEY_A, OWNER_A)
        assert len(derive_owner_key(KEY_A, OWNER_A)) == 32

    def test_owner_separated(self):
        assert derive_owner_key(KEY_A, OWNER_A) != derive_owner_key(KEY_A, OWNER_B)

    @pytest.mark.parametrize("bad_key", [b"", b"x" * 31, b"x" * 33, "0" * 64])
    def test_rejects_bad_key_material(self, bad_key):
        with pytest.raises(ValidationError):
            derive_owner_key(bad_key, OWNER_A)

    def test_requires_owner(self):
        with pytest.raises(ValidationError):
            derive_owner_key(KEY_A, "")


class TestEncryptDecrypt:
    def test_round_trip(self):
        sealed = encrypt_secret(SECRET, KEY_A, OWNER_A)

        assert isinstance(sealed, EncryptedSecret)
        assert len(sealed.nonce) == NONCE_SIZE
        assert SECRET.encode() not in sealed.ciphertext
        assert decrypt_secret(sealed, KEY_A, OWNER_A) == SECRET

    def test_fresh_nonce_each_time(self):
        first = encrypt_secret(SECRET, KEY_A, OWNER_A)
        second = encrypt_secret(SECRET, KEY_A, OWNER_A)

        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_unicode_secret(self):
        sealed = encrypt_secret("clé-secrète", KEY_A, OWNER_A)
        assert decrypt_secret(sealed, KEY_A, OWNER_A) == "clé-secrète"

    def test_wrong_unlock_key_fails(self):
        sealed = encrypt_secret(SECRET, KEY_A, OWNER_A)

        with pytest.raises(DecryptionError) as exc_info:
            decrypt_secret(sealed, KEY_B, OWNER_A)
        assert exc_info.value.context["reason"] == "authentication_failed"

    def test_wrong_owner_fails_even_with_same_key(self):
        sealed = encrypt_secret(SECRET, KEY_A, OWNER_A)

        with pytest.raises(DecryptionError):
            decrypt_secret(sealed, KEY_A, OWNER_B)

    def test_tampered_ciphertext_fails(self):
        sealed = encrypt_secret(SECRET, KEY_A, OWNER_A)
        flipped = bytes([sealed.ciphertext[0] ^ 0x01]) + sealed.ciphertext[1:]

        with pytest.raises(DecryptionError):
            decrypt_secret(EncryptedSecret(flipped, sealed.nonce), KEY_A, OWNER_A)

    def test_swapped_nonce_fails(self):
        first = encrypt_secret(SECRET, KEY_A, OWNER_A)
        second = encrypt_secret(SECRET, KEY_A, OWNER_A)

        with pytest.raises(DecryptionError):
            decrypt_secret(EncryptedSecret(first.ciphertext, second.nonce), KEY_A, OWNER_A)

    @pytest.mark.parametrize(
        "ciphertext, nonce",
        [
            (b"short", b"\x00" * NONCE_SIZE),
            (b"\x00" * 32, b"\x00" * 8),
            (None, b"\x00" * NONCE_SIZE),
        ],
    )
    def test_malformed_blob_fails(self, ciphertext, nonce):
        with pytest.raises(DecryptionError) as exc_info:
            decrypt_secret(EncryptedSecret(ciphertext, nonce), KEY_A, OWNER_A)
        assert exc_info.value.context["reason"] == "malformed_ciphertext"

    def test_bad_key_material_surfaces_as_decryption_error(self):
        sealed = encrypt_secret(SECRET, KEY_A, OWNER_A)

        with pytest.raises(DecryptionError) as exc_info:
            decrypt_secret(sealed, b"short", OWNER_A)
        assert exc_info.value.context["reason"] == "invalid_key_material"

    def test_failure_is_a_not_found(self):
        sealed = encrypt_secret(SECRET, KEY_A, OWNER_A)

        with pytest.raises(CredentialNotFoundError):
            decrypt_secret(sealed, KEY_B, OWNER_A)


class TestCipherStore:
    def test_facade(self):
        store = CipherStore()
        sealed = store.encrypt(SECRET, KEY_B, OWNER_B)
        assert store.decrypt(sealed, KEY_B, OWNER_B) == SECRET
