"""
Secret and backup-code generation from the operating system CSPRNG.
"""

import secrets
from dataclasses import dataclass

from core.errors import GenerationError
from core.utils import BASE32_ALPHABET, encode_secret

SECRET_SIZE = 20        # 160-bit shared secret (RFC 4226 recommendation)


@dataclass(frozen=True)
class GeneratedSecret:
    """A freshly drawn shared secret and its display form."""

    raw: bytes
    base32: str

    def __repr__(self) -> str:
        return "GeneratedSecret(<redacted>)"


def generate_secret(size: int = SECRET_SIZE) -> GeneratedSecret:
    """
    Draw a new shared secret.

    Raises:
        GenerationError: If the entropy source is unavailable.
    """
    try:
        raw = secrets.token_bytes(size)
    except (OSError, NotImplementedError) as exc:
        raise GenerationError("Entropy source unavailable.") from exc
    return GeneratedSecret(raw=raw, base32=encode_secret(raw))


def generate_backup_code(length: int = 10) -> str:
    """Return ``length`` random characters from the base32 alphabet."""
    try:
        return "".join(secrets.choice(BASE32_ALPHABET) for _ in range(length))
    except (OSError, NotImplementedError) as exc:
        raise GenerationError("Entropy source unavailable.") from exc
