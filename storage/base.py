"""
Persistence port for two-factor state.

Implementations must make :meth:`TwoFactorStore.transition` and
:meth:`TwoFactorStore.mark_backup_code_consumed` atomic compare-and-set
operations so that two racing requests cannot both succeed.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from core.state import Disabled, TwoFactorState


def same_state(a: TwoFactorState, b: TwoFactorState) -> bool:
    """
    Compare two states by variant, secret and the set of backup-code hashes.

    Consumption flags are ignored: redeeming a code does not replace the set.
    """
    if a.kind != b.kind:
        return False
    if isinstance(a, Disabled):
        return True
    return a.secret == b.secret and _hashes(a) == _hashes(b)


def _hashes(state: TwoFactorState) -> tuple:
    return tuple(code.hash for code in state.backup_codes)


class TwoFactorStore(ABC):
    """Storage-agnostic access to one account's two-factor state."""

    @abstractmethod
    def get_state(self, account_id: str) -> TwoFactorState:
        """Return the current state; unknown accounts are ``Disabled``."""

    @abstractmethod
    def set_state(self, account_id: str, state: TwoFactorState) -> None:
        """Unconditionally replace the stored state."""

    @abstractmethod
    def transition(
        self,
        account_id: str,
        expected: TwoFactorState,
        new_state: TwoFactorState,
    ) -> bool:
        """
        Replace the state with ``new_state`` only if the stored state still
        matches ``expected`` (see :func:`same_state`).

        Returns:
            True if the write happened, False if another writer got there first.
        """

    @abstractmethod
    def mark_backup_code_consumed(
        self, account_id: str, code_hash: str, at: datetime
    ) -> bool:
        """
        Flip ``consumed`` to true for the backup code with ``code_hash``.

        Returns:
            True if this call consumed the code; False if it was already
            consumed or no longer exists.
        """
