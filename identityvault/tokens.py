"""
Random identifiers and secrets.

Everything here draws from the `secrets` module (CSPRNG).
"""

import secrets
import string

LOWERCASE_ALPHANUMERIC = string.ascii_lowercase + string.digits
UPPERCASE_ALPHANUMERIC = string.ascii_uppercase + string.digits
MIXED_CASE_WITH_SYMBOLS = string.ascii_letters + string.digits + "!@#$%^&*()-_=+[]{};:,.<>?/|~"


def random_string(alphabet: str, length: int) -> str:
    """Uniformly random string of `length` characters from `alphabet`."""
    if length < 1:
        raise ValueError("length must be positive")
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_session_id(length: int = 128) -> str:
    """High-entropy bearer token (about 6.4 bits per character)."""
    return random_string(MIXED_CASE_WITH_SYMBOLS, length)


def generate_user_id(length: int = 8) -> str:
    return random_string(LOWERCASE_ALPHANUMERIC, length)


def generate_record_id(length: int = 16) -> str:
    return random_string(LOWERCASE_ALPHANUMERIC, length)
