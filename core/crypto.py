"""
Cryptographic primitives for protecting stored secrets at rest.

Key derivation  : PBKDF2-HMAC-SHA256
Encryption      : AES-256-GCM (authenticated encryption)

The two-factor core never calls these; they back the optional field
encryptor of the SQLite store.
"""

import hashlib
import secrets
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

# ── Constants ────────────────────────────────────────────────────────────────

SALT_SIZE = 32          # 256-bit salt
NONCE_SIZE = 12         # 96-bit nonce (GCM recommendation)
KEY_SIZE = 32           # 256-bit AES key
PBKDF2_ITERATIONS = 480_000  # OWASP 2023 recommendation for PBKDF2-SHA256
PBKDF2_HASH = "sha256"


# ── Key derivation ────────────────────────────────────────────────────────────

def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive a 256-bit key from ``passphrase`` using PBKDF2-HMAC-SHA256."""
    return hashlib.pbkdf2_hmac(
        PBKDF2_HASH,
        passphrase.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
        dklen=KEY_SIZE,
    )


def generate_salt() -> bytes:
    """Return a cryptographically random 32-byte salt."""
    return secrets.token_bytes(SALT_SIZE)


# ── AES-256-GCM encryption / decryption ──────────────────────────────────────

def _check_key(key: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")


def encrypt(
    plaintext: bytes, key: bytes, associated_data: Optional[bytes] = None
) -> bytes:
    """
    Encrypt *plaintext* with AES-256-GCM.

    Layout of returned blob::

        [ nonce (12 bytes) | ciphertext+tag ]

    Args:
        plaintext:       Data to encrypt.
        key:             32-byte AES key.
        associated_data: Authenticated but unencrypted context (e.g. the
                         owning row id); must be supplied again to decrypt.

    Raises:
        ValueError: If key length is not 32 bytes.
    """
    _check_key(key)
    nonce = secrets.token_bytes(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, associated_data)


def decrypt(
    blob: bytes, key: bytes, associated_data: Optional[bytes] = None
) -> bytes:
    """
    Decrypt a blob produced by :func:`encrypt`.

    Raises:
        ValueError: If key length is not 32 bytes.
        cryptography.exceptions.InvalidTag: Wrong key, wrong associated data
            or tampered blob.
    """
    _check_key(key)
    nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ciphertext, associated_data)
