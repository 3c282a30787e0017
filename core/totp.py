"""
TOTP (Time-based One-Time Password) implementation following RFC 6238.

Produces codes identical to Google Authenticator. Validation is a pure
predicate over an explicit timestamp; callers supply the clock.
"""

import hmac
import time
from typing import Optional

from core.errors import AuthenticationFailed
from core.hotp import Algorithm, MAX_COUNTER, generate_hotp


def time_step(timestamp: float, period: int = 30) -> int:
    """Return the TOTP counter ``floor(timestamp / period)``."""
    return int(timestamp // period)


def generate_totp(
    secret_bytes: bytes,
    digits: int = 6,
    period: int = 30,
    algorithm: Algorithm = Algorithm.SHA1,
    timestamp: Optional[float] = None,
) -> str:
    """
    Generate a TOTP code.

    Args:
        secret_bytes: Raw (already base32-decoded) secret bytes.
        digits:       Number of digits in the OTP (default 6).
        period:       Time step in seconds (default 30).
        algorithm:    HMAC algorithm (default SHA1 for GA compatibility).
        timestamp:    Override Unix timestamp (uses time.time() if None).

    Returns:
        OTP string, zero-padded to ``digits`` characters.
    """
    t = timestamp if timestamp is not None else time.time()
    return generate_hotp(secret_bytes, time_step(t, period), digits, algorithm)


def remaining_seconds(period: int = 30, timestamp: Optional[float] = None) -> int:
    """Return seconds until the current TOTP window expires."""
    t = timestamp if timestamp is not None else time.time()
    return period - (int(t) % period)


def verify_totp(
    token: str,
    secret_bytes: bytes,
    timestamp: float,
    window: int = 1,
    period: int = 30,
    digits: int = 6,
    algorithm: Algorithm = Algorithm.SHA1,
) -> int:
    """
    Check a TOTP token against every step in ``[-window, +window]``.

    Args:
        token:        Submitted code.
        secret_bytes: Raw secret bytes.
        timestamp:    Unix time to validate against.
        window:       Allowed clock skew in steps (default 1).
        period:       Time step in seconds.
        digits:       Expected number of digits.
        algorithm:    HMAC algorithm.

    Returns:
        The counter value the token matched.

    Raises:
        AuthenticationFailed: If no step in the window matches.
    """
    token = token.strip()
    if len(token) != digits or not token.isascii() or not token.isdigit():
        raise AuthenticationFailed()

    counter = time_step(timestamp, period)
    for offset in range(-window, window + 1):
        candidate = counter + offset
        if candidate < 0 or candidate > MAX_COUNTER:
            continue
        expected = generate_hotp(secret_bytes, candidate, digits, algorithm)
        if hmac.compare_digest(token, expected):
            return candidate
    raise AuthenticationFailed()


def validate_totp(
    token: str,
    secret_bytes: bytes,
    digits: int = 6,
    period: int = 30,
    algorithm: Algorithm = Algorithm.SHA1,
    window: int = 1,
    timestamp: Optional[float] = None,
) -> bool:
    """Return True if ``token`` is valid within ±``window`` time steps."""
    t = timestamp if timestamp is not None else time.time()
    try:
        verify_totp(token, secret_bytes, t, window, period, digits, algorithm)
    except AuthenticationFailed:
        return False
    return True
