"""
In-process store, used by tests and single-process deployments.
"""

import threading
from datetime import datetime
from typing import Dict

from core.state import DISABLED, Disabled, Enabled, Pending, TwoFactorState
from storage.base import TwoFactorStore, same_state


class InMemoryStore(TwoFactorStore):
    """Dictionary-backed store; one lock serialises every read and write."""

    def __init__(self) -> None:
        self._states: Dict[str, TwoFactorState] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        """Number of accounts holding a non-disabled state."""
        with self._lock:
            return len(self._states)

    def get_state(self, account_id: str) -> TwoFactorState:
        with self._lock:
            return self._states.get(account_id, DISABLED)

    def set_state(self, account_id: str, state: TwoFactorState) -> None:
        with self._lock:
            self._put(account_id, state)

    def transition(
        self,
        account_id: str,
        expected: TwoFactorState,
        new_state: TwoFactorState,
    ) -> bool:
        with self._lock:
            current = self._states.get(account_id, DISABLED)
            if not same_state(current, expected):
                return False
            self._put(account_id, new_state)
            return True

    def mark_backup_code_consumed(
        self, account_id: str, code_hash: str, at: datetime
    ) -> bool:
        with self._lock:
            current = self._states.get(account_id, DISABLED)
            if isinstance(current, Disabled):
                return False
            codes = list(current.backup_codes)
            for i, code in enumerate(codes):
                if code.hash == code_hash:
                    if code.consumed:
                        return False
                    codes[i] = code.mark_consumed(at)
                    break
            else:
                return False
            if isinstance(current, Enabled):
                self._states[account_id] = current.with_backup_codes(tuple(codes))
            else:
                self._states[account_id] = Pending(current.secret, tuple(codes))
            return True

    def _put(self, account_id: str, state: TwoFactorState) -> None:
        if isinstance(state, Disabled):
            self._states.pop(account_id, None)
        else:
            self._states[account_id] = state
