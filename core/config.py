"""
Two-factor policy settings.

Values here are fixed for interoperability with standard authenticator apps
and are never negotiated at runtime.
"""

from dataclasses import dataclass

from core.hotp import Algorithm
from core.utils import validate_digits, validate_period, validate_window

DEFAULT_ISSUER = "Authify"
DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30
DEFAULT_WINDOW = 1
BACKUP_CODE_COUNT = 10
BACKUP_CODE_LENGTH = 10


@dataclass(frozen=True)
class TwoFactorConfig:
    issuer: str = DEFAULT_ISSUER
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_PERIOD
    window: int = DEFAULT_WINDOW
    algorithm: Algorithm = Algorithm.SHA1
    backup_code_count: int = BACKUP_CODE_COUNT
    backup_code_length: int = BACKUP_CODE_LENGTH

    def __post_init__(self) -> None:
        if not self.issuer.strip():
            raise ValueError("Issuer must not be empty.")
        validate_digits(self.digits)
        validate_period(self.period)
        validate_window(self.window)
        if self.backup_code_count < 1:
            raise ValueError("At least one backup code is required.")
        if self.backup_code_length < 8:
            raise ValueError("Backup codes must be at least 8 characters.")
