"""
Temporary Code Service

Issues and validates short-lived, purpose-scoped codes that authorize a
sensitive account action without a live session.

Features:
- 16-character URL-safe codes from the CSPRNG
- Fresh 128-bit salt per code, SHA-256 of (code + salt) stored
- At most one outstanding code per (purpose, subject)
- Constant-time digest comparison
- Single-use: the redeeming operation deletes the code in a save that
  requires the record to be unchanged, so only one redemption commits

Security considerations:
- The plaintext code is returned once, for delivery, and never stored or logged
- A fast hash is sufficient: entropy and the short TTL are the defense
"""

import base64
import binascii
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives import constant_time, hashes

from ..clock import Clock, SystemClock
from ..config import DEFAULT_CONFIG, IdentityConfig, TEMP_CODE_SALT_BYTES
from ..exceptions import (
    DuplicateCodeError, ExpiredTempCodeError, InvalidTempCodeError,
    TempCodeNotFoundError, UniqueConstraintError,
)
from ..models import TempCode, TempCodePurpose
from ..storage import Store
from ..tokens import generate_record_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedCode:
    """The one-time view of a new code: plaintext plus its stored record."""
    code: str
    record: TempCode

    def __repr__(self) -> str:
        return f"IssuedCode(record={self.record.id!r}, purpose={self.record.purpose.key})"


def generate_code(length: int = 16) -> str:
    """
    Generate a URL-safe random code.

    Args:
        length: Number of characters

    Returns:
        Code drawn from [A-Za-z0-9_-]
    """
    return secrets.token_urlsafe(length)[:length]


def generate_code_salt(length: int = TEMP_CODE_SALT_BYTES) -> str:
    """Base64-encoded random salt."""
    return base64.b64encode(secrets.token_bytes(length)).decode('ascii')


def _digest(code: str, salt: str) -> bytes:
    hasher = hashes.Hash(hashes.SHA256())
    hasher.update((code + salt).encode('utf-8'))
    return hasher.finalize()


def hash_code(code: str, salt: str) -> str:
    """
    Hash a code with its salt.

    Returns:
        Base64-encoded SHA-256 of code + salt
    """
    return base64.b64encode(_digest(code, salt)).decode('ascii')


def validate_code(code: str, hashed_code: str, salt: str) -> bool:
    """
    Check a plaintext code against a stored hash.

    Compares raw digests with a constant-time primitive; a stored hash that
    is not valid base64 never matches.
    """
    if not code:
        return False
    try:
        expected = base64.b64decode(hashed_code, validate=True)
    except (binascii.Error, ValueError):
        return False
    return constant_time.bytes_eq(_digest(code, salt), expected)


class TempCodeService:
    """
    Issue, look up, validate and consume temporary codes.

    Example:
        >>> service = TempCodeService(store)
        >>> issued = service.issue(TempCodePurpose.CHANGE_PASSWORD, user.id)
        >>> service.validate(issued.code, issued.record)
        True
    """

    def __init__(self, store: Store, clock: Optional[Clock] = None,
                 config: IdentityConfig = DEFAULT_CONFIG):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config

    def find(self, purpose: TempCodePurpose, subject_id: str) -> Optional[TempCode]:
        return self._store.find_one(
            TempCode, lambda c: c.purpose == purpose and c.for_id == subject_id
        )

    def issue(self, purpose: TempCodePurpose, subject_id: str) -> IssuedCode:
        """
        Create and persist a new code.

        An expired record for the same purpose and subject is replaced in
        the same save.

        Args:
            purpose: What the code authorizes
            subject_id: ID of the entity the code is for

        Returns:
            IssuedCode with the plaintext (only copy) and the stored record

        Raises:
            DuplicateCodeError: If an unexpired code is outstanding
        """
        now = self._clock.now()
        existing = self.find(purpose, subject_id)

        if existing is not None and not existing.is_expired(now):
            raise DuplicateCodeError()

        code = generate_code(self._config.temp_code_length)
        salt = generate_code_salt()
        record = TempCode(
            id=generate_record_id(),
            purpose=purpose,
            for_id=subject_id,
            hashed_code=hash_code(code, salt),
            code_salt=salt,
            expires_at=now + self._config.temp_code_ttl,
            created_at=now,
        )

        try:
            self._store.save([record], delete=[existing] if existing else [])
        except UniqueConstraintError as e:
            raise DuplicateCodeError() from e

        logger.info("Issued %s code %s for %s", purpose.key, record.id, subject_id)
        return IssuedCode(code=code, record=record)

    def validate(self, code: str, record: TempCode) -> bool:
        """Pure check of a plaintext against a record's hash and salt."""
        return validate_code(code, record.hashed_code, record.code_salt)

    def consume(self, purpose: TempCodePurpose, subject_id: str, code: str) -> TempCode:
        """
        Check a submitted code for redemption.

        The caller deletes the returned record in the same save as the change
        the code authorizes, passing it as `expected` so a concurrent
        redemption that committed first makes the save fail.

        Raises:
            TempCodeNotFoundError: No code is outstanding
            ExpiredTempCodeError: The code's TTL has elapsed
            InvalidTempCodeError: The code does not match
        """
        record = self.find(purpose, subject_id)
        if record is None:
            raise TempCodeNotFoundError()

        if record.is_expired(self._clock.now()):
            raise ExpiredTempCodeError()

        if not self.validate(code, record):
            logger.warning("Rejected %s code for %s", purpose.key, subject_id)
            raise InvalidTempCodeError()

        return record
