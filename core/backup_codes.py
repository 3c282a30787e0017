"""
Single-use recovery codes.

Codes are ``length`` characters from the base32 alphabet, shown to the user
once as ``XXXXX-XXXXX`` and stored only as salted SHA-256 digests::

    sha256$<salt hex>$<digest hex>      digest = SHA-256(salt || code)

Consumption is delegated to the store's compare-and-set so that the same code
cannot be redeemed twice, even by racing requests.
"""

import hashlib
import hmac
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from core.errors import (
    AuthenticationFailed,
    BackupCodeAlreadyUsed,
    GenerationError,
    InvalidState,
)
from core.generator import generate_backup_code
from core.state import BackupCode, Enabled
from core.utils import BASE32_ALPHABET
from storage.base import TwoFactorStore

logger = logging.getLogger(__name__)

SALT_SIZE = 16
HASH_SCHEME = "sha256"


# ── Hashing ───────────────────────────────────────────────────────────────────

def normalize_backup_code(code: str) -> str:
    """Uppercase and strip spaces and dashes."""
    return code.strip().upper().replace(" ", "").replace("-", "")


def format_backup_code(code: str, group: int = 5) -> str:
    """Split a code into dash-separated groups for display."""
    return "-".join(code[i : i + group] for i in range(0, len(code), group))


def hash_backup_code(code: str, salt: Optional[bytes] = None) -> str:
    """
    Hash a backup code for storage.

    Args:
        code: Plaintext code (any display form).
        salt: Salt bytes; a fresh random salt is drawn when omitted.

    Returns:
        ``sha256$<salt hex>$<digest hex>``.
    """
    if salt is None:
        try:
            salt = secrets.token_bytes(SALT_SIZE)
        except (OSError, NotImplementedError) as exc:
            raise GenerationError("Entropy source unavailable.") from exc
    digest = hashlib.sha256(salt + normalize_backup_code(code).encode("utf-8")).hexdigest()
    return f"{HASH_SCHEME}${salt.hex()}${digest}"


def verify_backup_code(code: str, stored_hash: str) -> bool:
    """Return True if ``code`` matches ``stored_hash`` (timing-safe)."""
    try:
        scheme, salt_hex, _ = stored_hash.split("$")
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    if scheme != HASH_SCHEME:
        return False
    return hmac.compare_digest(hash_backup_code(code, salt), stored_hash)


# ── Generation ────────────────────────────────────────────────────────────────

def generate_backup_codes(
    count: int = 10, length: int = 10
) -> Tuple[List[str], Tuple[BackupCode, ...]]:
    """
    Generate ``count`` new backup codes.

    Returns:
        ``(plaintexts, stored)``: display-formatted plaintexts for the user,
        and the hashed records to persist. Plaintexts must not be kept.
    """
    plaintexts = [generate_backup_code(length) for _ in range(count)]
    stored = tuple(BackupCode(hash=hash_backup_code(code)) for code in plaintexts)
    return [format_backup_code(code) for code in plaintexts], stored


def remaining(codes: Iterable[BackupCode]) -> int:
    """Number of codes that can still be redeemed."""
    return sum(1 for code in codes if not code.consumed)


# ── Consumption ───────────────────────────────────────────────────────────────

class BackupCodeManager:
    """Redeem backup codes against an account's stored set."""

    def __init__(
        self,
        store: TwoFactorStore,
        length: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            store:  Store holding the codes.
            length: Expected code length after normalisation.
            clock:  Returns the current Unix time.
        """
        self._store = store
        self._length = length
        self._clock = clock

    def looks_like_backup_code(self, submitted: str) -> bool:
        code = normalize_backup_code(submitted)
        return len(code) == self._length and all(ch in BASE32_ALPHABET for ch in code)

    def consume(self, account_id: str, submitted: str) -> int:
        """
        Redeem ``submitted`` for ``account_id``.

        Returns:
            Number of codes left after this one.

        Raises:
            InvalidState:          Two-factor is not enabled.
            BackupCodeAlreadyUsed: The code was redeemed before.
            AuthenticationFailed:  The code matches nothing.
        """
        state = self._store.get_state(account_id)
        if not isinstance(state, Enabled):
            raise InvalidState("use a backup code", state.kind, ["enabled"])
        if not self.looks_like_backup_code(submitted):
            raise AuthenticationFailed()

        match = self._find(submitted, state.backup_codes)
        if match is None:
            raise AuthenticationFailed()
        if match.consumed:
            logger.info("Replayed backup code for account %s", account_id)
            raise BackupCodeAlreadyUsed()

        at = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        if not self._store.mark_backup_code_consumed(account_id, match.hash, at):
            # Lost a race: either another request redeemed it or the set was
            # regenerated underneath us.
            latest = self._store.get_state(account_id)
            codes = getattr(latest, "backup_codes", ())
            if any(code.hash == match.hash for code in codes):
                raise BackupCodeAlreadyUsed()
            raise AuthenticationFailed()

        latest = self._store.get_state(account_id)
        left = remaining(getattr(latest, "backup_codes", ()))
        logger.info("Backup code redeemed for account %s (%d left)", account_id, left)
        return left

    @staticmethod
    def _find(submitted: str, codes: Iterable[BackupCode]) -> Optional[BackupCode]:
        found = None
        # Check every code so timing does not reveal the matching position.
        for code in codes:
            if verify_backup_code(submitted, code.hash) and found is None:
                found = code
        return found
