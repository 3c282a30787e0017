"""
Build otpauth:// URIs as defined by the Google Authenticator Key URI Format.

Reference: https://github.com/google/google-authenticator/wiki/Key-Uri-Format

Rendering the URI as a QR code is left to the caller.
"""

import urllib.parse

from core.hotp import Algorithm
from core.utils import sanitise_label, validate_digits, validate_period


def build_provisioning_uri(
    issuer: str,
    account_label: str,
    base32_secret: str,
    digits: int = 6,
    period: int = 30,
    algorithm: Algorithm = Algorithm.SHA1,
) -> str:
    """
    Build a TOTP provisioning URI.

    Args:
        issuer:        Service name shown by the authenticator app.
        account_label: Account identifier (usually an email address).
        base32_secret: Unpadded base32 shared secret.
        digits:        Code length.
        period:        Time step in seconds.
        algorithm:     HMAC algorithm.

    Returns:
        ``otpauth://totp/{issuer}:{label}?secret=...&issuer=...&algorithm=...&digits=...&period=...``

    Raises:
        ValueError: If issuer or label is empty after sanitising, or
            digits/period are out of range.
    """
    issuer = sanitise_label(issuer)
    account_label = sanitise_label(account_label)
    if not issuer:
        raise ValueError("Issuer must not be empty.")
    if not account_label:
        raise ValueError("Account label must not be empty.")
    validate_digits(digits)
    validate_period(period)

    params = {
        "secret": base32_secret.upper().replace("=", ""),
        "issuer": issuer,
        "algorithm": Algorithm(algorithm).value,
        "digits": str(digits),
        "period": str(period),
    }
    query = urllib.parse.urlencode(params, quote_via=urllib.parse.quote)
    label = (
        urllib.parse.quote(issuer, safe="")
        + ":"
        + urllib.parse.quote(account_label, safe="")
    )
    return f"otpauth://totp/{label}?{query}"
