"""
Sensitive-file encryption.

Binary envelope stored for every encrypted sensitive file:

    MSETUP_v1 | sha256(32) | salt(16) | iv(12) | tag(16) | ciphertext

Key derivation: PBKDF2-SHA256 over the printed hex key.
Encryption: AES-256-GCM.
"""

from __future__ import annotations

import hashlib
import logging
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────

MAGIC = b"MSETUP_v1"
MAGIC_LEN = len(MAGIC)

KDF_ITERATIONS = 480_000

SHA256_LEN = 32
SALT_LEN = 16
IV_LEN = 12
TAG_LEN = 16
HEADER_LEN = MAGIC_LEN + SHA256_LEN + SALT_LEN + IV_LEN + TAG_LEN


class DecryptionError(ValueError):
    """Wrong key, or the blob is not a valid envelope."""


def generate_key() -> str:
    """Fresh random key, printed once to the operator at collect time."""
    return secrets.token_hex(32)


def _derive_key(passphrase: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """Derive a 256-bit key from passphrase using PBKDF2-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def is_encrypted(data: bytes) -> bool:
    return data[:MAGIC_LEN] == MAGIC


# ── Encrypt ──────────────────────────────────────────────────────────

def encrypt_bytes(plaintext: bytes, key: str, iterations: int = KDF_ITERATIONS) -> bytes:
    """Encrypt ``plaintext`` into an envelope.

    Raises:
        ValueError: Key too short.
    """
    if not key or len(key) < 4:
        raise ValueError("Key must be at least 4 characters")

    salt = os.urandom(SALT_LEN)
    iv = os.urandom(IV_LEN)
    aesgcm = AESGCM(_derive_key(key, salt, iterations))

    # AES-GCM returns ciphertext + tag appended
    ct_with_tag = aesgcm.encrypt(iv, plaintext, None)
    ciphertext = ct_with_tag[:-TAG_LEN]
    tag = ct_with_tag[-TAG_LEN:]

    envelope = bytearray()
    envelope.extend(MAGIC)
    envelope.extend(hashlib.sha256(plaintext).digest())
    envelope.extend(salt)
    envelope.extend(iv)
    envelope.extend(tag)
    envelope.extend(ciphertext)
    return bytes(envelope)


# ── Decrypt ──────────────────────────────────────────────────────────

def decrypt_bytes(data: bytes, key: str, iterations: int = KDF_ITERATIONS) -> bytes:
    """Decrypt an envelope produced by ``encrypt_bytes``.

    Raises:
        DecryptionError: Invalid format, wrong key, or integrity failure.
    """
    if len(data) < HEADER_LEN:
        raise DecryptionError("Truncated envelope")
    if not is_encrypted(data):
        raise DecryptionError("Not an encrypted file — magic bytes mismatch")

    pos = MAGIC_LEN
    sha256 = data[pos:pos + SHA256_LEN]
    pos += SHA256_LEN
    salt = data[pos:pos + SALT_LEN]
    pos += SALT_LEN
    iv = data[pos:pos + IV_LEN]
    pos += IV_LEN
    tag = data[pos:pos + TAG_LEN]
    pos += TAG_LEN
    ciphertext = data[pos:]

    aesgcm = AESGCM(_derive_key(key, salt, iterations))
    try:
        plaintext = aesgcm.decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError("Wrong key — decryption failed") from e

    if hashlib.sha256(plaintext).digest() != sha256:
        raise DecryptionError("Integrity check failed — file may be corrupted")
    return plaintext
