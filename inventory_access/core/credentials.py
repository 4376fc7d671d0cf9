"""Temporary credential generation and password hashing."""
from __future__ import annotations

import secrets
import string
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*()"
DEFAULT_LENGTH = 16
MIN_LENGTH = 12


def generate(length: Optional[int] = None) -> str:
    """Generate a one-time temporary password.

    Args:
        length: Password length (default: 16, minimum: 12)

    Returns:
        Random password drawn from letters, digits and ``!@#$%^&*()``
    """
    length = length or DEFAULT_LENGTH
    if length < MIN_LENGTH:
        raise ValueError(f"Temporary passwords must be at least {MIN_LENGTH} characters")
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: Optional[str], password: str) -> bool:
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def issue(current_hash: Optional[str] = None, length: Optional[int] = None) -> tuple[str, str]:
    """Generate a temporary password and its hash for binding.

    A candidate equal to the currently bound secret is discarded.

    Returns:
        Tuple of (plaintext password, password hash)
    """
    while True:
        candidate = generate(length)
        if not verify_password(current_hash, candidate):
            return candidate, hash_password(candidate)
