"""
Credential Store

Implements password hashing with the Argon2id algorithm, plus the input
validation and strength scoring that sit in front of it.

Features:
- Argon2id password hashing (winner of Password Hashing Competition)
- Cryptographically secure salt, generated per hash by argon2-cffi
- Password strength scoring on a 0-4 scale with feedback
- Structural validation of emails, usernames, passwords and bios

Security considerations:
- Never store or log plaintext passwords
- Verification relies on argon2's own constant-time check
- Argon2 does not truncate long passwords (unlike bcrypt's 72 bytes)
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..config import Argon2Parameters
from ..exceptions import FieldError, ValidationFailedError


# Input bounds
EMAIL_MAX_LENGTH = 320
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 1000
USERNAME_PATTERN = re.compile(r'^[a-z0-9_]{3,30}$')
BIO_MAX_LENGTH = 500

# Deliberately loose: one @, no whitespace, a dot in the domain
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

SPECIAL_CHARACTERS = r'[!@#$%^&*(),.?":{}|<>\-_=+\[\]\\/;\'`~]'


class Argon2PasswordHasher:
    """
    Secure password hasher using Argon2id.

    Argon2id is the recommended variant for password hashing as it
    provides resistance against both side-channel and GPU attacks.

    Example:
        >>> hasher = Argon2PasswordHasher()
        >>> hash = hasher.hash_password("correct horse battery staple")
        >>> hasher.verify_password("correct horse battery staple", hash)
        True
    """

    def __init__(self, parameters: Optional[Argon2Parameters] = None):
        """
        Initialize the password hasher with Argon2id.

        Args:
            parameters: Cost parameters (defaults from config)
        """
        parameters = parameters or Argon2Parameters()
        self._hasher = PasswordHasher(
            time_cost=parameters.time_cost,
            memory_cost=parameters.memory_cost,
            parallelism=parameters.parallelism,
            hash_len=parameters.hash_len,
            salt_len=parameters.salt_len,
            type=Type.ID,
        )

    def hash_password(self, password: str) -> str:
        """
        Hash a password using Argon2id.

        The resulting hash contains the algorithm parameters and salt,
        allowing for future parameter upgrades.

        Args:
            password: Plaintext password to hash

        Returns:
            Argon2id hash string (includes salt and parameters)

        Raises:
            ValidationFailedError: If the password is empty or whitespace
        """
        if not password or not password.strip():
            raise ValidationFailedError([FieldError('password', "Password must not be empty.")])
        return self._hasher.hash(password)

    def verify_password(self, password: str, hash_str: str) -> bool:
        """
        Verify a password against an Argon2id hash.

        Args:
            password: Plaintext password to verify
            hash_str: Argon2id hash string to verify against

        Returns:
            True if password matches, False otherwise
        """
        if not password or not hash_str:
            return False
        try:
            return self._hasher.verify(hash_str, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            return False

    def needs_rehash(self, hash_str: str) -> bool:
        """
        Check if a hash was made with outdated parameters.

        Args:
            hash_str: Existing hash to check

        Returns:
            True if hash should be regenerated with current parameters
        """
        return self._hasher.check_needs_rehash(hash_str)


# ============================================================================
# Strength scoring
# ============================================================================

@dataclass(frozen=True)
class PasswordScore:
    """Result of a strength check: 0 (weakest) to 4 (strongest)."""
    score: int
    feedback: List[str] = field(default_factory=list)


class PasswordScorer:
    """Password strength collaborator."""

    def score(self, password: str) -> PasswordScore:
        raise NotImplementedError


class HeuristicPasswordScorer(PasswordScorer):
    """
    Scores passwords from length, character variety and common patterns.

    The raw 0-100 points are bucketed into the 0-4 scale used by the
    sign-up policy.
    """

    def score(self, password: str) -> PasswordScore:
        points = calculate_password_points(password)
        return PasswordScore(score=min(4, points // 20), feedback=password_feedback(password))


def calculate_password_points(password: str) -> int:
    """
    Calculate raw password strength points (0-100).

    Args:
        password: Password to score

    Returns:
        Points from 0 (weak) to 100 (strong)
    """
    score = 0

    # Length scoring (up to 30 points)
    score += min(len(password) * 2, 30)

    # Character variety (up to 40 points)
    if re.search(r'[a-z]', password):
        score += 10
    if re.search(r'[A-Z]', password):
        score += 10
    if re.search(r'\d', password):
        score += 10
    if re.search(SPECIAL_CHARACTERS, password):
        score += 10

    # Bonus for length (up to 20 points)
    if len(password) >= 12:
        score += 10
    if len(password) >= 16:
        score += 10

    # Penalty for common patterns
    if re.search(r'(.)\1{2,}', password):  # Repeated characters
        score -= 10
    if re.search(r'(012|123|234|345|456|567|678|789)', password):  # Sequential numbers
        score -= 10
    if re.search(r'(abc|bcd|cde|def|efg)', password.lower()):  # Sequential letters
        score -= 10

    return max(0, min(100, score))


def password_feedback(password: str) -> List[str]:
    """Suggestions for making a password stronger."""
    feedback = []

    if len(password) < 12:
        feedback.append("Use at least 12 characters.")
    if not re.search(r'[A-Z]', password) or not re.search(r'[a-z]', password):
        feedback.append("Mix uppercase and lowercase letters.")
    if not re.search(r'\d', password):
        feedback.append("Add a digit.")
    if not re.search(SPECIAL_CHARACTERS, password):
        feedback.append("Add a special character.")
    if re.search(r'(.)\1{2,}', password):
        feedback.append("Avoid repeated characters.")
    if re.search(r'(012|123|234|345|456|567|678|789)', password) or \
            re.search(r'(abc|bcd|cde|def|efg)', password.lower()):
        feedback.append("Avoid sequences like 123 or abc.")

    return feedback


# ============================================================================
# Structural validation
# ============================================================================

def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: Optional[str]) -> List[FieldError]:
    if not email or not email.strip():
        return [FieldError('email', "Email is required.")]
    email = email.strip()
    if len(email) > EMAIL_MAX_LENGTH:
        return [FieldError('email', f"Email must be at most {EMAIL_MAX_LENGTH} characters.")]
    if not EMAIL_PATTERN.match(email):
        return [FieldError('email', "Invalid email format.")]
    return []


def validate_username(username: Optional[str]) -> List[FieldError]:
    """Usernames are optional; when given they must be 3-30 of [a-z0-9_]."""
    if username is None:
        return []
    if not USERNAME_PATTERN.match(username):
        return [FieldError(
            'username',
            "Username must be 3-30 characters of lowercase letters, numbers, and underscores.",
        )]
    return []


def validate_password_input(password: Optional[str], field_name: str = 'password') -> List[FieldError]:
    if not password or not password.strip():
        return [FieldError(field_name, "Password is required.")]
    if len(password) < PASSWORD_MIN_LENGTH:
        return [FieldError(field_name, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")]
    if len(password) > PASSWORD_MAX_LENGTH:
        return [FieldError(field_name, f"Password must be at most {PASSWORD_MAX_LENGTH} characters long.")]
    return []


def validate_bio(bio: Optional[str]) -> List[FieldError]:
    if bio is not None and len(bio) > BIO_MAX_LENGTH:
        return [FieldError('bio', f"Bio must be at most {BIO_MAX_LENGTH} characters.")]
    return []


def raise_for_errors(errors: List[FieldError]) -> None:
    if errors:
        raise ValidationFailedError(errors)
