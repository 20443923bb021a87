"""AES-256-GCM encryption for credential blobs.

Stored format is ``iv:tag:ciphertext``, each part hex-encoded.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from commerce_ingest.exceptions import CredentialsError

IV_BYTES = 12
TAG_BYTES = 16


def _key(hex_key: str) -> bytes:
    if not hex_key:
        raise CredentialsError("CONFIG_ENCRYPTION_KEY not set")
    try:
        key = bytes.fromhex(hex_key)
    except ValueError as e:
        raise CredentialsError("CONFIG_ENCRYPTION_KEY is not valid hex") from e
    if len(key) != 32:
        raise CredentialsError(f"CONFIG_ENCRYPTION_KEY must be 32 bytes, got {len(key)}")
    return key


def generate_key() -> str:
    """Return a new random key as hex, suitable for CONFIG_ENCRYPTION_KEY."""
    return AESGCM.generate_key(bit_length=256).hex()


def encrypt(plaintext: str, hex_key: str) -> str:
    """Encrypt a string and return the ``iv:tag:ciphertext`` payload."""
    iv = os.urandom(IV_BYTES)
    sealed = AESGCM(_key(hex_key)).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(payload: str, hex_key: str) -> str:
    """Decrypt an ``iv:tag:ciphertext`` payload."""
    key = _key(hex_key)
    try:
        iv_hex, tag_hex, data_hex = payload.split(":")
        iv, tag, data = bytes.fromhex(iv_hex), bytes.fromhex(tag_hex), bytes.fromhex(data_hex)
    except ValueError as e:
        raise CredentialsError("Malformed encrypted payload") from e

    try:
        return AESGCM(key).decrypt(iv, data + tag, None).decode("utf-8")
    except InvalidTag as e:
        raise CredentialsError("Could not decrypt credentials: wrong key or corrupted value") from e
