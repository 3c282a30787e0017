"""
Utility helpers: base32 codec, label sanitising and parameter validation.
"""

import base64
import binascii
import re
import unicodedata

from core.errors import DecodeError


# ── Base32 ────────────────────────────────────────────────────────────────────

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

# Unpadded base32 lengths that cannot come from whole bytes
_INVALID_TAIL_LENGTHS = (1, 3, 6)


def normalize_secret(secret: str) -> str:
    """
    Normalise a base32 secret: strip spaces, uppercase, add padding.

    Args:
        secret: Raw user-supplied secret string.

    Returns:
        Uppercase base32 string with correct padding.

    Raises:
        DecodeError: If the string contains invalid base32 characters.
    """
    secret = secret.strip().upper().replace(" ", "").replace("-", "")
    if not re.fullmatch(r"[A-Z2-7]*=*", secret):
        raise DecodeError("Secret contains invalid base32 characters.")
    secret = secret.rstrip("=")
    if len(secret) % 8 in _INVALID_TAIL_LENGTHS:
        raise DecodeError("Secret has an invalid base32 length.")
    # Pad to multiple of 8
    pad = (8 - len(secret) % 8) % 8
    return secret + "=" * pad


def decode_secret(secret: str) -> bytes:
    """
    Decode a base32-encoded secret string to raw bytes.

    Input is case-insensitive; padding, spaces and dashes are tolerated.

    Args:
        secret: Base32 secret.

    Returns:
        Raw bytes.

    Raises:
        DecodeError: On invalid base32 input.
    """
    try:
        return base64.b32decode(normalize_secret(secret), casefold=True)
    except binascii.Error as exc:
        raise DecodeError("Invalid base32 secret.") from exc


def encode_secret(raw: bytes) -> str:
    """Encode raw bytes as a base32 string (uppercase, no padding)."""
    return base64.b32encode(raw).decode("ascii").rstrip("=")


# ── Labels ────────────────────────────────────────────────────────────────────

def sanitise_label(text: str) -> str:
    """Remove control characters and limit label length."""
    text = unicodedata.normalize("NFC", text)
    text = "".join(ch for ch in text if unicodedata.category(ch)[0] != "C")
    return text[:128].strip()


# ── Validation ────────────────────────────────────────────────────────────────

def validate_digits(digits: int) -> None:
    if digits not in (6, 8):
        raise ValueError("Digits must be 6 or 8.")


def validate_period(period: int) -> None:
    if period < 1 or period > 300:
        raise ValueError("Period must be between 1 and 300 seconds.")


def validate_window(window: int) -> None:
    # Each extra step widens the set of accepted codes; keep it small.
    if window < 0 or window > 10:
        raise ValueError("Window must be between 0 and 10 steps.")
