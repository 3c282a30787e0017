"""
Two-factor enrollment state as a tagged variant.

Exactly one of :class:`Disabled`, :class:`Pending` or :class:`Enabled` is live
for an account; there is no free-standing "secret" plus "enabled" pair.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class BackupCode:
    """A stored backup code: salted hash and consumption marker."""

    hash: str
    consumed: bool = False
    consumed_at: Optional[datetime] = None

    def mark_consumed(self, at: datetime) -> "BackupCode":
        if self.consumed:
            raise ValueError("Backup code is already consumed.")
        return replace(self, consumed=True, consumed_at=at)


@dataclass(frozen=True)
class Disabled:
    kind = "disabled"


@dataclass(frozen=True)
class Pending:
    """Set up but not yet confirmed; does not protect the account."""

    kind = "pending"

    secret: str = field(repr=False)     # unpadded base32
    backup_codes: Tuple[BackupCode, ...] = ()


@dataclass(frozen=True)
class Enabled:
    kind = "enabled"

    secret: str = field(repr=False)
    backup_codes: Tuple[BackupCode, ...] = ()

    def with_backup_codes(self, codes: Tuple[BackupCode, ...]) -> "Enabled":
        return replace(self, backup_codes=tuple(codes))


TwoFactorState = Union[Disabled, Pending, Enabled]

DISABLED = Disabled()


def to_record(state: TwoFactorState) -> dict:
    """Flatten a state into the storage-agnostic persisted shape."""
    if isinstance(state, Disabled):
        return {"enabled": False, "secret": None, "backup_codes": []}
    return {
        "enabled": isinstance(state, Enabled),
        "secret": state.secret,
        "backup_codes": [
            {
                "hash": code.hash,
                "consumed": code.consumed,
                "consumed_at": code.consumed_at,
            }
            for code in state.backup_codes
        ],
    }


def from_record(record: dict) -> TwoFactorState:
    """
    Rebuild a state from its persisted shape.

    Raises:
        ValueError: If the record combines ``enabled`` with a missing secret.
    """
    secret = record.get("secret")
    enabled = bool(record.get("enabled"))
    if not secret:
        if enabled:
            raise ValueError("Two-factor is marked enabled without a secret.")
        return DISABLED
    codes = tuple(
        BackupCode(
            hash=item["hash"],
            consumed=bool(item.get("consumed")),
            consumed_at=item.get("consumed_at"),
        )
        for item in record.get("backup_codes", [])
    )
    if enabled:
        return Enabled(secret=secret, backup_codes=codes)
    return Pending(secret=secret, backup_codes=codes)
