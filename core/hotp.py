"""
HOTP (HMAC-based One-Time Password) implementation following RFC 4226.
"""

import hmac
import struct
from enum import Enum


class Algorithm(str, Enum):
    """Supported HMAC algorithms."""

    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"


_ALG_MAP: dict[str, str] = {
    Algorithm.SHA1: "sha1",
    Algorithm.SHA256: "sha256",
    Algorithm.SHA512: "sha512",
}

MAX_COUNTER = 2**64 - 1


def generate_hotp(
    secret_bytes: bytes,
    counter: int,
    digits: int = 6,
    algorithm: Algorithm = Algorithm.SHA1,
) -> str:
    """
    Generate an HOTP code.

    Args:
        secret_bytes: Raw decoded secret bytes.
        counter:      Moving factor, an unsigned 64-bit integer.
        digits:       Number of OTP digits (6 or 8).
        algorithm:    HMAC algorithm.

    Returns:
        Zero-padded OTP string.

    Raises:
        ValueError: If ``counter`` does not fit in 64 unsigned bits.
    """
    if counter < 0 or counter > MAX_COUNTER:
        raise ValueError("Counter must be an unsigned 64-bit integer.")
    msg = struct.pack(">Q", counter)
    digest = hmac.new(secret_bytes, msg, _ALG_MAP[algorithm]).digest()

    # Dynamic truncation (RFC 4226 §5.3)
    offset = digest[-1] & 0x0F
    code = (
        (digest[offset] & 0x7F) << 24
        | (digest[offset + 1] & 0xFF) << 16
        | (digest[offset + 2] & 0xFF) << 8
        | (digest[offset + 3] & 0xFF)
    )
    otp = code % (10**digits)
    return str(otp).zfill(digits)
