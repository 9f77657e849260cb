"""
Unit tests for the credential store.

Tests:
- Password hashing (Argon2id)
- Strength scoring
- Structural validation of sign-up input
"""

import pytest

from identityvault.auth.credentials import (
    Argon2PasswordHasher, HeuristicPasswordScorer, calculate_password_points,
    normalize_email, validate_bio, validate_email, validate_password_input,
    validate_username,
)
from identityvault.config import Argon2Parameters
from identityvault.exceptions import ErrorKind, ValidationFailedError

from .conftest import FAST_ARGON2


class TestPasswordHashing:
    """Unit tests for password hashing."""

    def setup_method(self):
        self.hasher = Argon2PasswordHasher(FAST_ARGON2)

    def test_hash_is_argon2id(self):
        """Hashes should be self-describing Argon2id strings."""
        hash_result = self.hasher.hash_password("SecureP@ss123!")
        assert hash_result.startswith("$argon2id$")

    def test_verify_correct_password(self):
        """Correct password should verify."""
        password = "MySecurePassword123!"
        hash_result = self.hasher.hash_password(password)
        assert self.hasher.verify_password(password, hash_result)

    def test_verify_wrong_password(self):
        """Wrong password should fail verification."""
        hash_result = self.hasher.hash_password("SecureP@ss123!Correct")
        assert not self.hasher.verify_password("SecureP@ss123!Wrong", hash_result)

    def test_same_password_different_hashes(self):
        """Same password should have different hashes (random salt)."""
        hash1 = self.hasher.hash_password("SecureP@ss123!Same")
        hash2 = self.hasher.hash_password("SecureP@ss123!Same")
        assert hash1 != hash2

    def test_blank_password_rejected(self):
        """Empty and whitespace-only passwords cannot be hashed."""
        for blank in ("", "   "):
            with pytest.raises(ValidationFailedError) as exc_info:
                self.hasher.hash_password(blank)
            assert exc_info.value.kind is ErrorKind.VALIDATION_FAILED

    def test_malformed_hash_does_not_verify(self):
        """A corrupt stored hash is a mismatch, not a crash."""
        assert not self.hasher.verify_password("anything", "not-a-hash")
        assert not self.hasher.verify_password("anything", "")

    def test_needs_rehash_after_parameter_change(self):
        """Hashes made with other costs are flagged for upgrade."""
        hash_result = self.hasher.hash_password("SecureP@ss123!")
        assert not self.hasher.needs_rehash(hash_result)

        stronger = Argon2PasswordHasher(Argon2Parameters(time_cost=2, memory_cost=8, parallelism=1))
        assert stronger.needs_rehash(hash_result)


class TestPasswordStrength:
    """Tests for password strength scoring."""

    def setup_method(self):
        self.scorer = HeuristicPasswordScorer()

    def test_strong_password_scores_four(self):
        """Long, varied passwords get the top score."""
        assert calculate_password_points("Tr0ub4dor&3horse!") == 90
        assert self.scorer.score("Tr0ub4dor&3horse!").score == 4

    def test_weak_password_scores_low(self):
        """A plain dictionary word scores low and gets feedback."""
        result = self.scorer.score("password")
        assert result.score == 1
        assert "Add a digit." in result.feedback

    def test_sequences_penalized(self):
        """Sequential digits cost points."""
        assert calculate_password_points("password1234") < calculate_password_points("password1357")

    def test_score_bounded(self):
        """Scores stay on the 0-4 scale."""
        assert self.scorer.score("").score == 0
        assert self.scorer.score("A" * 5 + "b1!" + "xyzq" * 10).score <= 4


class TestValidation:
    """Structural input validation."""

    def test_email_normalized(self):
        """Emails are trimmed and lowercased."""
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"

    def test_invalid_emails(self):
        """Malformed emails produce a field error."""
        for email in ("", "alice", "alice@", "alice@example", "a b@example.com"):
            errors = validate_email(email)
            assert errors and errors[0].field == 'email'

    def test_valid_email(self):
        assert validate_email("alice@example.com") == []

    def test_username_rules(self):
        """Usernames are optional, 3-30 of lowercase letters, digits and underscores."""
        assert validate_username(None) == []
        assert validate_username("alice_01") == []
        assert validate_username("ab")
        assert validate_username("Alice")
        assert validate_username("a" * 31)
        assert validate_username("a" * 30) == []

    def test_password_length_bounds(self):
        """Passwords must be 8 to 1000 characters."""
        assert validate_password_input("1234567")
        assert validate_password_input("12345678") == []
        assert validate_password_input("x" * 1001)

    def test_password_field_name(self):
        """Errors name the field they came from."""
        errors = validate_password_input("", field_name='new_password')
        assert errors[0].field == 'new_password'

    def test_bio_length(self):
        assert validate_bio("x" * 500) == []
        assert validate_bio("x" * 501)
