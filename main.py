"""
Authify two-factor – command-line front-end.

Usage
-----
    python main.py --db twofactor.db setup alice --label alice@example.com
    python main.py --db twofactor.db enable alice 123456
    python main.py --db twofactor.db verify alice 123456
    python main.py --db twofactor.db status alice

Set ``AUTHIFY_DB_PASSPHRASE`` to encrypt stored secrets at rest.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from core.config import DEFAULT_ISSUER, DEFAULT_WINDOW, TwoFactorConfig
from core.crypto import generate_salt
from core.enrollment import TwoFactorService
from core.errors import (
    AuthenticationFailed,
    BackupCodeAlreadyUsed,
    InvalidState,
    TwoFactorError,
)
from core.totp import generate_totp, remaining_seconds
from core.utils import decode_secret
from storage.database import TwoFactorDatabase
from storage.encryption import FieldEncryptor

# ── Logging setup ─────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("authify")

PASSPHRASE_ENV = "AUTHIFY_DB_PASSPHRASE"
DEFAULT_DB = Path("twofactor.db")


# ── Bootstrap ─────────────────────────────────────────────────────────────────

def _build_encryptor(db: TwoFactorDatabase, passphrase: str) -> FieldEncryptor:
    """Derive or create the at-rest key for the database."""
    salt = db.get_salt()
    if salt is None:
        # First run – generate and store a new salt
        salt = generate_salt()
        db.set_salt(salt)
    return FieldEncryptor.from_passphrase(passphrase, salt)


def _open(args: argparse.Namespace) -> TwoFactorService:
    db = TwoFactorDatabase(args.db)
    passphrase = os.environ.get(PASSPHRASE_ENV)
    if passphrase:
        db.set_encryptor(_build_encryptor(db, passphrase))
    config = TwoFactorConfig(issuer=args.issuer, window=args.window)
    return TwoFactorService(db, config)


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_setup(args: argparse.Namespace) -> None:
    result = _open(args).setup(args.account, args.label)
    print("Secret:          ", result.secret)
    print("Provisioning URI:", result.provisioning_uri)
    print("Backup codes (shown once):")
    for code in result.backup_codes:
        print("   ", code)


def cmd_enable(args: argparse.Namespace) -> None:
    _open(args).verify_enable(args.account, args.code)
    print("Two-factor enabled.")


def cmd_verify(args: argparse.Namespace) -> None:
    result = _open(args).verify(args.account, args.code)
    print(f"Verified via {result.method.value} "
          f"({result.backup_codes_remaining} backup codes left).")


def cmd_disable(args: argparse.Namespace) -> None:
    _open(args).disable(args.account, args.code)
    print("Two-factor disabled.")


def cmd_regenerate(args: argparse.Namespace) -> None:
    codes = _open(args).regenerate_backup_codes(args.account, args.code)
    print("New backup codes (shown once):")
    for code in codes:
        print("   ", code)


def cmd_cancel(args: argparse.Namespace) -> None:
    _open(args).cancel_setup(args.account)
    print("Pending setup discarded.")


def cmd_status(args: argparse.Namespace) -> None:
    status = _open(args).status(args.account)
    print(f"{args.account}: {status.state} "
          f"({status.backup_codes_remaining} backup codes left)")


def cmd_code(args: argparse.Namespace) -> None:
    code = generate_totp(decode_secret(args.secret))
    print(f"{code}  (valid ~{remaining_seconds()}s)")


# ── Main ──────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authify", description="Manage TOTP two-factor enrollment."
    )
    parser.add_argument("--db", type=Path, default=DEFAULT_DB, help="SQLite file")
    parser.add_argument("--issuer", default=DEFAULT_ISSUER)
    parser.add_argument("--window", type=int, default=DEFAULT_WINDOW,
                        help="accepted clock skew in 30 s steps")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("setup", help="start enrollment for an account")
    p.add_argument("account")
    p.add_argument("--label", help="name shown in the authenticator app")
    p.set_defaults(func=cmd_setup)

    for name, func, help_ in (
        ("enable", cmd_enable, "confirm enrollment with a TOTP code"),
        ("verify", cmd_verify, "check a TOTP or backup code"),
        ("disable", cmd_disable, "turn two-factor off"),
        ("regenerate", cmd_regenerate, "replace all backup codes"),
    ):
        p = sub.add_parser(name, help=help_)
        p.add_argument("account")
        p.add_argument("code")
        p.set_defaults(func=func)

    p = sub.add_parser("cancel", help="discard a pending enrollment")
    p.add_argument("account")
    p.set_defaults(func=cmd_cancel)

    p = sub.add_parser("status", help="show enrollment state")
    p.add_argument("account")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("code", help="print the current TOTP for a secret")
    p.add_argument("secret")
    p.set_defaults(func=cmd_code)
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except InvalidState as exc:
        print(exc, file=sys.stderr)
        return 2
    except BackupCodeAlreadyUsed:
        print("That backup code has already been used.", file=sys.stderr)
        return 1
    except AuthenticationFailed:
        print("Invalid verification code.", file=sys.stderr)
        return 1
    except TwoFactorError as exc:
        logger.exception("Two-factor operation failed")
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
