"""Tests for core.hotp, core.totp and the base32 codec in core.utils."""

import os

import pytest

from core.errors import AuthenticationFailed, DecodeError, GenerationError
from core.generator import SECRET_SIZE, generate_backup_code, generate_secret
from core.hotp import Algorithm, MAX_COUNTER, generate_hotp
from core.totp import (
    generate_totp,
    remaining_seconds,
    time_step,
    validate_totp,
    verify_totp,
)
from core.utils import BASE32_ALPHABET, decode_secret, encode_secret, normalize_secret


# ── RFC 4226 Appendix D test vectors ─────────────────────────────────────────
# Secret: "12345678901234567890" (as bytes)
RFC_SECRET = b"12345678901234567890"
RFC_HOTP_EXPECTED = [
    "755224", "287082", "359152", "969429", "338314",
    "254676", "287922", "162583", "399871", "520489",
]


@pytest.mark.parametrize("counter,expected", list(enumerate(RFC_HOTP_EXPECTED)))
def test_hotp_rfc4226_vectors(counter: int, expected: str) -> None:
    code = generate_hotp(RFC_SECRET, counter=counter, digits=6, algorithm=Algorithm.SHA1)
    assert code == expected, f"HOTP counter={counter}: got {code}, expected {expected}"


def test_hotp_is_deterministic() -> None:
    assert generate_hotp(RFC_SECRET, 42) == generate_hotp(RFC_SECRET, 42)


def test_hotp_rejects_counter_outside_64_bits() -> None:
    with pytest.raises(ValueError):
        generate_hotp(RFC_SECRET, -1)
    with pytest.raises(ValueError):
        generate_hotp(RFC_SECRET, MAX_COUNTER + 1)
    assert len(generate_hotp(RFC_SECRET, MAX_COUNTER)) == 6


# ── RFC 6238 TOTP test vectors ────────────────────────────────────────────────
# Source: RFC 6238, Appendix B
# Secrets vary by algorithm per the RFC

_SHA256_SECRET = b"12345678901234567890123456789012"
_SHA512_SECRET = b"1234567890123456789012345678901234567890123456789012345678901234"

_TOTP_VECTORS = [
    # (timestamp, algorithm,  secret_bytes,   expected)
    (59,          Algorithm.SHA1,   RFC_SECRET,     "94287082"),
    (59,          Algorithm.SHA256, _SHA256_SECRET, "46119246"),
    (59,          Algorithm.SHA512, _SHA512_SECRET, "90693936"),
    (1111111109,  Algorithm.SHA1,   RFC_SECRET,     "07081804"),
    (1111111109,  Algorithm.SHA256, _SHA256_SECRET, "68084774"),
    (1111111109,  Algorithm.SHA512, _SHA512_SECRET, "25091201"),
    (1234567890,  Algorithm.SHA1,   RFC_SECRET,     "89005924"),
    (2000000000,  Algorithm.SHA1,   RFC_SECRET,     "69279037"),
    (20000000000, Algorithm.SHA1,   RFC_SECRET,     "65353130"),
    (20000000000, Algorithm.SHA256, _SHA256_SECRET, "77737706"),
    (20000000000, Algorithm.SHA512, _SHA512_SECRET, "47863826"),
]


@pytest.mark.parametrize("ts,alg,secret,expected", _TOTP_VECTORS)
def test_totp_rfc6238_vectors(
    ts: int, alg: Algorithm, secret: bytes, expected: str
) -> None:
    code = generate_totp(secret, digits=8, period=30, algorithm=alg, timestamp=float(ts))
    assert code == expected, f"TOTP ts={ts} {alg}: got {code}, expected {expected}"


def test_totp_six_digit_reference_at_59() -> None:
    assert time_step(59) == 1
    assert generate_totp(RFC_SECRET, digits=6, timestamp=59.0) == "287082"


# ── Remaining seconds ─────────────────────────────────────────────────────────

def test_remaining_seconds_range() -> None:
    rem = remaining_seconds(period=30)
    assert 0 < rem <= 30


def test_remaining_seconds_at_boundary() -> None:
    assert remaining_seconds(period=30, timestamp=0.0) == 30
    assert remaining_seconds(period=30, timestamp=29.0) == 1


# ── Window validation ─────────────────────────────────────────────────────────

STEP = 1_000_000    # arbitrary counter well away from zero


@pytest.mark.parametrize("drift", [-1, 0, 1])
def test_verify_totp_accepts_adjacent_steps(drift: int) -> None:
    code = generate_hotp(RFC_SECRET, STEP)
    now = (STEP + drift) * 30 + 7
    assert verify_totp(code, RFC_SECRET, now) == STEP


@pytest.mark.parametrize("drift", [-3, -2, 2, 3])
def test_verify_totp_rejects_outside_window(drift: int) -> None:
    code = generate_hotp(RFC_SECRET, STEP)
    now = (STEP + drift) * 30
    with pytest.raises(AuthenticationFailed):
        verify_totp(code, RFC_SECRET, now)


def test_verify_totp_zero_window_is_exact() -> None:
    code = generate_hotp(RFC_SECRET, STEP)
    assert verify_totp(code, RFC_SECRET, STEP * 30, window=0) == STEP
    with pytest.raises(AuthenticationFailed):
        verify_totp(code, RFC_SECRET, (STEP + 1) * 30, window=0)


@pytest.mark.parametrize("token", ["", "12345", "1234567", "12a456", "１２３４５６"])
def test_verify_totp_rejects_malformed_tokens(token: str) -> None:
    with pytest.raises(AuthenticationFailed):
        verify_totp(token, RFC_SECRET, 59)


def test_verify_totp_near_epoch_skips_negative_counters() -> None:
    assert verify_totp("755224", RFC_SECRET, 10) == 0


def test_validate_totp_predicate() -> None:
    assert validate_totp("287082", RFC_SECRET, timestamp=59.0)
    assert not validate_totp("000000", RFC_SECRET, timestamp=0.0)


# ── Base32 codec ──────────────────────────────────────────────────────────────

def test_encode_secret_unpadded_uppercase() -> None:
    assert encode_secret(b"hello") == "NBSWY3DP"
    assert encode_secret(b"\x00") == "AA"


@pytest.mark.parametrize("size", [0, 1, 2, 3, 4, 5, 10, 20, 32])
def test_decode_encode_roundtrip(size: int) -> None:
    raw = os.urandom(size)
    assert decode_secret(encode_secret(raw)) == raw


def test_roundtrip_many_20_byte_secrets() -> None:
    for _ in range(200):
        raw = os.urandom(20)
        assert decode_secret(encode_secret(raw)) == raw


def test_decode_is_case_insensitive_and_padding_tolerant() -> None:
    assert decode_secret("nbswy3dp") == b"hello"
    assert decode_secret("AA======") == b"\x00"
    assert decode_secret("JBSW Y3DP-EHPK 3PXP") == decode_secret("JBSWY3DPEHPK3PXP")


def test_normalize_secret_strips_spaces() -> None:
    assert normalize_secret("JBSW Y3DP") == "JBSWY3DP"


@pytest.mark.parametrize("bad", ["!!!NOTBASE32!!!", "ABC1", "A", "ABC", "ABCDEF", "A=B"])
def test_decode_secret_invalid_raises(bad: str) -> None:
    with pytest.raises(DecodeError):
        decode_secret(bad)


def test_decode_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        decode_secret("0000")


# ── Generator ─────────────────────────────────────────────────────────────────

def test_generate_secret_is_160_bits() -> None:
    secret = generate_secret()
    assert len(secret.raw) == SECRET_SIZE == 20
    assert decode_secret(secret.base32) == secret.raw
    assert secret.base32 not in repr(secret)


def test_generate_secret_is_random() -> None:
    assert generate_secret().raw != generate_secret().raw


def test_generate_backup_code_alphabet() -> None:
    code = generate_backup_code(10)
    assert len(code) == 10
    assert set(code) <= set(BASE32_ALPHABET)


def test_generate_secret_reports_missing_entropy(monkeypatch) -> None:
    def unavailable(size: int) -> bytes:
        raise OSError("no entropy")

    monkeypatch.setattr("core.generator.secrets.token_bytes", unavailable)
    with pytest.raises(GenerationError):
        generate_secret()
