"""Sign-in for the portal.

Two ways in: email and password, checked against a bcrypt hash, or the
operating-system account the terminal is running under. That second one is the
federated route: the OS has already authenticated the user, so we trust it and
create a portal account on first use.

Failures raise AuthError whose message is fit to show on the login screen.
"""

from __future__ import annotations

import getpass
import logging
import re
import sqlite3

import bcrypt

import storage
from models import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
SYSTEM_EMAIL_DOMAIN = "localhost"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")

_current_user: User | None = None


class AuthError(Exception):
    """A sign-in or account failure with a human-readable message."""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def current_user() -> User | None:
    return _current_user


def _set_current(user: User | None) -> None:
    global _current_user
    _current_user = user


def create_user(email: str, password: str, display_name: str | None = None) -> User:
    """Register an email/password account."""
    email = email.strip()
    if not _EMAIL_RE.match(email):
        raise AuthError("Please enter a valid email address.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")

    try:
        return storage.create_user_record(
            email,
            display_name=display_name,
            provider="password",
            password_hash=hash_password(password),
        )
    except sqlite3.IntegrityError as exc:
        raise AuthError("An account with this email already exists.") from exc
    except sqlite3.Error as exc:
        logger.exception("Could not create user %s", email)
        raise AuthError("Unable to reach the account store.") from exc


def sign_in_with_password(email: str, password: str) -> User:
    if not email.strip() or not password:
        raise AuthError("Please enter your email and password.")

    try:
        user = storage.get_user_by_email(email)
        password_hash = storage.get_password_hash(user.id) if user else None
    except sqlite3.Error as exc:
        logger.exception("Sign-in lookup failed for %s", email)
        raise AuthError("Unable to reach the account store.") from exc

    if not user or not password_hash or not check_password(password, password_hash):
        logger.info("Rejected sign-in for %s", email)
        raise AuthError("Invalid email or password.")

    _set_current(user)
    logger.info("Signed in %s", user.email)
    return user


def sign_in_with_system_account() -> User:
    """Sign in as the operating-system user running the terminal."""
    try:
        username = getpass.getuser()
    except (KeyError, OSError) as exc:
        raise AuthError("Could not determine the system account.") from exc

    email = f"{username}@{SYSTEM_EMAIL_DOMAIN}"
    try:
        user = storage.get_user_by_email(email)
        if user is None:
            user = storage.create_user_record(email, display_name=username, provider="system")
    except sqlite3.Error as exc:
        logger.exception("System sign-in failed for %s", username)
        raise AuthError("Unable to reach the account store.") from exc

    if user.provider != "system":
        raise AuthError("This account signs in with a password.")

    _set_current(user)
    logger.info("Signed in system account %s", username)
    return user


def sign_out() -> None:
    if _current_user:
        logger.info("Signed out %s", _current_user.email)
    _set_current(None)
