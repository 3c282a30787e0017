"""
Two-factor enrollment state machine.

::

    Disabled --setup--> Pending --verify_enable--> Enabled --disable--> Disabled
                        Pending --cancel_setup--> Disabled
                                                  Enabled --regenerate_backup_codes--> Enabled

Every operation checks its source state first and raises
:class:`~core.errors.InvalidState` without touching the store when it is not
allowed. Writes go through the store's compare-and-set, so a transition that
races with another one fails instead of overwriting it.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Type

from core.backup_codes import BackupCodeManager, generate_backup_codes, remaining
from core.config import TwoFactorConfig
from core.errors import AuthenticationFailed, InvalidState
from core.generator import generate_secret
from core.state import DISABLED, Disabled, Enabled, Pending, TwoFactorState
from core.totp import verify_totp
from core.utils import decode_secret
from provisioning.uri import build_provisioning_uri
from storage.base import TwoFactorStore

logger = logging.getLogger(__name__)


class ProofMethod(str, Enum):
    """How a second-factor proof was satisfied."""

    TOTP = "totp"
    BACKUP_CODE = "backup_code"


@dataclass(frozen=True)
class SetupResult:
    """Returned once by :meth:`TwoFactorService.setup`; never stored."""

    secret: str = field(repr=False)
    provisioning_uri: str = field(repr=False)
    backup_codes: List[str] = field(repr=False)


@dataclass(frozen=True)
class VerificationResult:
    method: ProofMethod
    backup_codes_remaining: int


@dataclass(frozen=True)
class TwoFactorStatus:
    state: str
    backup_codes_remaining: int


class TwoFactorService:
    """Enable, verify and disable TOTP second factor for accounts."""

    def __init__(
        self,
        store: TwoFactorStore,
        config: Optional[TwoFactorConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            store:  Persistence port holding each account's state.
            config: Policy settings; defaults interoperate with Google
                    Authenticator (6 digits, 30 s, SHA1, ±1 step).
            clock:  Returns the current Unix time; injected so tests can
                    replay fixed timestamps.
        """
        self._store = store
        self._config = config or TwoFactorConfig()
        self._clock = clock
        self._backup = BackupCodeManager(
            store, length=self._config.backup_code_length, clock=clock
        )

    @property
    def config(self) -> TwoFactorConfig:
        return self._config

    # ── Reads ─────────────────────────────────────────────────────────────

    def is_enabled(self, account_id: str) -> bool:
        """Return True if the account is protected by a confirmed second factor."""
        return isinstance(self._store.get_state(account_id), Enabled)

    def status(self, account_id: str) -> TwoFactorStatus:
        state = self._store.get_state(account_id)
        left = 0 if isinstance(state, Disabled) else remaining(state.backup_codes)
        return TwoFactorStatus(state=state.kind, backup_codes_remaining=left)

    # ── Transitions ───────────────────────────────────────────────────────

    def setup(self, account_id: str, account_label: Optional[str] = None) -> SetupResult:
        """
        Start enrollment: draw a secret and backup codes, move to Pending.

        The account is not protected until :meth:`verify_enable` succeeds.

        Raises:
            InvalidState:    Two-factor is already pending or enabled.
            GenerationError: The entropy source is unavailable.
        """
        state = self._require(account_id, Disabled, "set up two-factor")
        cfg = self._config

        secret = generate_secret()
        plaintexts, codes = generate_backup_codes(
            cfg.backup_code_count, cfg.backup_code_length
        )
        uri = build_provisioning_uri(
            cfg.issuer,
            account_label or account_id,
            secret.base32,
            digits=cfg.digits,
            period=cfg.period,
            algorithm=cfg.algorithm,
        )
        self._commit(account_id, state, Pending(secret.base32, codes), "set up two-factor")
        logger.info("Two-factor setup started for account %s", account_id)
        return SetupResult(
            secret=secret.base32, provisioning_uri=uri, backup_codes=plaintexts
        )

    def verify_enable(self, account_id: str, code: str) -> None:
        """
        Confirm enrollment with a code from the authenticator app.

        Backup codes are not accepted here: the point is to prove the
        authenticator was provisioned.

        Raises:
            InvalidState:         Not pending.
            AuthenticationFailed: Wrong code; the state stays Pending.
        """
        state = self._require(account_id, Pending, "enable two-factor")
        try:
            self._check_totp(state.secret, code)
        except AuthenticationFailed:
            logger.info("Two-factor enable rejected for account %s", account_id)
            raise
        self._commit(
            account_id,
            state,
            Enabled(state.secret, state.backup_codes),
            "enable two-factor",
        )
        logger.info("Two-factor enabled for account %s", account_id)

    def cancel_setup(self, account_id: str) -> None:
        """Abandon a pending enrollment."""
        state = self._require(account_id, Pending, "cancel two-factor setup")
        self._commit(account_id, state, DISABLED, "cancel two-factor setup")
        logger.info("Two-factor setup cancelled for account %s", account_id)

    def verify(self, account_id: str, code: str) -> VerificationResult:
        """
        Check a second-factor proof during login.

        Tries the TOTP window first, then the backup codes.

        Raises:
            InvalidState:          Two-factor is not enabled.
            BackupCodeAlreadyUsed: A redeemed backup code was replayed.
            AuthenticationFailed:  Neither a valid TOTP nor a backup code.
        """
        state = self._require(account_id, Enabled, "verify two-factor")
        return self._prove(account_id, state, code)

    def disable(self, account_id: str, code: str) -> None:
        """
        Turn two-factor off. Requires a currently valid TOTP or backup code so
        that a stolen session alone cannot remove the protection.
        """
        state = self._require(account_id, Enabled, "disable two-factor")
        self._prove(account_id, state, code)
        self._commit(account_id, state, DISABLED, "disable two-factor")
        logger.info("Two-factor disabled for account %s", account_id)

    def regenerate_backup_codes(self, account_id: str, code: str) -> List[str]:
        """
        Replace every backup code, consumed or not, with a fresh set.

        Returns:
            The new plaintext codes, for one-time display.
        """
        state = self._require(account_id, Enabled, "regenerate backup codes")
        self._prove(account_id, state, code)
        plaintexts, codes = generate_backup_codes(
            self._config.backup_code_count, self._config.backup_code_length
        )
        self._commit(
            account_id, state, state.with_backup_codes(codes), "regenerate backup codes"
        )
        logger.info("Backup codes regenerated for account %s", account_id)
        return plaintexts

    # ── Internals ─────────────────────────────────────────────────────────

    def _require(
        self, account_id: str, kind: Type[TwoFactorState], operation: str
    ) -> TwoFactorState:
        state = self._store.get_state(account_id)
        if not isinstance(state, kind):
            raise InvalidState(operation, state.kind, [kind.kind])
        return state

    def _commit(
        self,
        account_id: str,
        expected: TwoFactorState,
        new_state: TwoFactorState,
        operation: str,
    ) -> None:
        if not self._store.transition(account_id, expected, new_state):
            current = self._store.get_state(account_id)
            raise InvalidState(operation, current.kind, [expected.kind])

    def _check_totp(self, secret: str, code: str) -> int:
        cfg = self._config
        return verify_totp(
            code,
            decode_secret(secret),
            self._clock(),
            window=cfg.window,
            period=cfg.period,
            digits=cfg.digits,
            algorithm=cfg.algorithm,
        )

    def _prove(self, account_id: str, state: Enabled, code: str) -> VerificationResult:
        try:
            self._check_totp(state.secret, code)
        except AuthenticationFailed:
            if not self._backup.looks_like_backup_code(code):
                logger.info("Two-factor code rejected for account %s", account_id)
                raise
        else:
            return VerificationResult(
                method=ProofMethod.TOTP,
                backup_codes_remaining=remaining(state.backup_codes),
            )

        left = self._backup.consume(account_id, code)
        return VerificationResult(
            method=ProofMethod.BACKUP_CODE, backup_codes_remaining=left
        )
