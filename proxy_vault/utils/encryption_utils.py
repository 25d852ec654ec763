"""
Owner-scoped encryption for stored credentials.

Each secret is sealed with AES-256-GCM under a key derived from the owner's
unlock key:

    key = HKDF-SHA256(unlock_key, info="proxy-vault:owner:" + owner_id)

The owner id is also bound as associated data, so a ciphertext can only be
opened by the owner it was sealed for, using the same unlock key.

Never log plaintext, ciphertext or key material.
"""

import os
from typing import NamedTuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..constants import UNLOCK_KEY_LENGTH
from ..exceptions import DecryptionError, ErrorCode, ValidationError

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_CONTEXT_PREFIX = "proxy-vault:owner:"


class EncryptedSecret(NamedTuple):
    """Ciphertext (with GCM tag appended) and the nonce used to produce it."""

    ciphertext: bytes
    nonce: bytes


def derive_owner_key(unlock_key: bytes, owner_id: str) -> bytes:
    """
    Derive the 32-byte AEAD key for an owner.

    Args:
        unlock_key: Raw 32-byte owner unlock key
        owner_id: Owner the key is scoped to (domain separation)

    Returns:
        32-byte derived key
    """
    if not isinstance(unlock_key, (bytes, bytearray)) or len(unlock_key) != UNLOCK_KEY_LENGTH:
        raise ValidationError(
            f"unlock_key must be exactly {UNLOCK_KEY_LENGTH} bytes",
            error_code=ErrorCode.INVALID_FORMAT,
            field="unlock_key",
        )
    if not owner_id:
        raise ValidationError(
            "owner_id is required for key derivation",
            error_code=ErrorCode.MISSING_REQUIRED,
            field="owner_id",
        )

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=UNLOCK_KEY_LENGTH,
        salt=None,
        info=f"{KEY_CONTEXT_PREFIX}{owner_id}".encode("utf-8"),
    )
    return hkdf.derive(bytes(unlock_key))


def encrypt_secret(plaintext: Union[str, bytes], unlock_key: bytes, owner_id: str) -> EncryptedSecret:
    """Seal plaintext for owner_id with a fresh random nonce."""
    data = plaintext.encode("utf-8") if isinstance(plaintext, str) else plaintext
    cipher = AESGCM(derive_owner_key(unlock_key, owner_id))
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = cipher.encrypt(nonce, data, owner_id.encode("utf-8"))
    return EncryptedSecret(ciphertext=ciphertext, nonce=nonce)


def decrypt_secret(encrypted: EncryptedSecret, unlock_key: bytes, owner_id: str) -> str:
    """
    Open a sealed secret.

    Raises:
        DecryptionError: Wrong owner, wrong unlock key, tampering or a malformed blob
    """
    ciphertext, nonce = encrypted
    if (
        not isinstance(ciphertext, (bytes, bytearray))
        or not isinstance(nonce, (bytes, bytearray))
        or len(nonce) != NONCE_SIZE
        or len(ciphertext) < TAG_SIZE
    ):
        raise DecryptionError(reason="malformed_ciphertext")

    try:
        cipher = AESGCM(derive_owner_key(unlock_key, owner_id))
        plaintext = cipher.decrypt(bytes(nonce), bytes(ciphertext), owner_id.encode("utf-8"))
    except InvalidTag as e:
        raise DecryptionError(reason="authentication_failed") from e
    except ValidationError as e:
        raise DecryptionError(reason="invalid_key_material") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError(reason="invalid_plaintext_encoding") from e


class CipherStore:
    """Encrypt/decrypt facade bound to nothing but the algorithm; keys are supplied per call."""

    def encrypt(self, plaintext: Union[str, bytes], unlock_key: bytes, owner_id: str) -> EncryptedSecret:
        return encrypt_secret(plaintext, unlock_key, owner_id)

    def decrypt(self, encrypted: EncryptedSecret, unlock_key: bytes, owner_id: str) -> str:
        return decrypt_secret(encrypted, unlock_key, owner_id)
