"""
Column encryption for stored two-factor secrets.

Each ciphertext is bound to the account it belongs to, so a secret copied
into another account's row fails to decrypt. Keys are never written to disk
through this module.
"""

import base64

from core import crypto


class FieldEncryptor:
    """Encrypt / decrypt string columns using AES-256-GCM."""

    def __init__(self, key: bytes) -> None:
        if len(key) != crypto.KEY_SIZE:
            raise ValueError("Key must be 32 bytes.")
        self._key = key

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: bytes) -> "FieldEncryptor":
        """Build an encryptor from an operator passphrase and stored salt."""
        return cls(crypto.derive_key(passphrase, salt))

    def encrypt_field(self, plaintext: str, context: str = "") -> str:
        """Return URL-safe base64 of nonce + ciphertext + tag."""
        blob = crypto.encrypt(
            plaintext.encode("utf-8"), self._key, context.encode("utf-8")
        )
        return base64.urlsafe_b64encode(blob).decode("ascii")

    def decrypt_field(self, encoded: str, context: str = "") -> str:
        """
        Reverse :meth:`encrypt_field`.

        Raises:
            cryptography.exceptions.InvalidTag: Wrong key, wrong ``context``
                or tampered data.
        """
        blob = base64.urlsafe_b64decode(encoded.encode("ascii"))
        return crypto.decrypt(blob, self._key, context.encode("utf-8")).decode("utf-8")

    def __repr__(self) -> str:
        return "FieldEncryptor(<key redacted>)"
