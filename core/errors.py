"""
Exception taxonomy for the two-factor subsystem.

Messages never carry secrets or submitted codes.
"""

from typing import Iterable, Optional


class TwoFactorError(Exception):
    """Base class for every two-factor failure."""


class GenerationError(TwoFactorError):
    """The entropy source is unavailable. Fatal for the current operation."""


class DecodeError(TwoFactorError, ValueError):
    """Malformed base32 input."""


class AuthenticationFailed(TwoFactorError):
    """The submitted code is outside the valid window or does not match."""

    def __init__(self, message: str = "Invalid verification code.") -> None:
        super().__init__(message)


class BackupCodeAlreadyUsed(AuthenticationFailed):
    """A backup code that was already consumed was presented again."""

    def __init__(self, message: str = "Backup code has already been used.") -> None:
        super().__init__(message)


class InvalidState(TwoFactorError):
    """An operation was invoked from a state that does not permit it."""

    def __init__(
        self,
        operation: str,
        current: str,
        expected: Iterable[str],
        message: Optional[str] = None,
    ) -> None:
        self.operation = operation
        self.current = current
        self.expected = tuple(expected)
        super().__init__(
            message
            or f"Cannot {operation} while two-factor is {current} "
            f"(requires {' or '.join(self.expected)})."
        )


class StorageError(TwoFactorError):
    """Persisted two-factor data is corrupt or the store is unavailable."""
