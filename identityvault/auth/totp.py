"""
Two-Factor Authentication Manager

Implements RFC 6238 TOTP second factors with single-use recovery codes.

Features:
- TOTP verification through pyotp at the injected clock's time
- Configurable time step and digits
- Secret key generation (160-bit, base32 for authenticator apps)
- otpauth:// provisioning URI and QR code (SVG) for authenticator apps
- Time drift tolerance of one step either side
- Recovery codes that are removed once used

Used with:
- Google Authenticator
- Authy
- Microsoft Authenticator
- Any RFC 6238 compliant authenticator
"""

import base64
import hmac
import logging
import secrets
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional

import pyotp
import qrcode
import qrcode.image.svg

from ..clock import Clock, SystemClock
from ..config import (
    DEFAULT_CONFIG, IdentityConfig, TOTP_DIGITS, TOTP_INTERVAL, TOTP_ISSUER,
    TOTP_SECRET_BYTES,
)
from ..exceptions import (
    AlreadyEnabledError, InvalidPasswordError, NotEnabledError, StaleWriteError,
)
from ..integration.activity import ActivityRecorder
from ..models import ActivityType, TwoFactorAuthentication, User
from ..storage import Store
from ..tokens import UPPERCASE_ALPHANUMERIC, random_string
from .credentials import Argon2PasswordHasher

logger = logging.getLogger(__name__)


def generate_secret(length: int = TOTP_SECRET_BYTES) -> bytes:
    """
    Generate a cryptographically secure random secret.

    Args:
        length: Secret length in bytes (default 20 for SHA-1)

    Returns:
        Random bytes for use as TOTP secret
    """
    return secrets.token_bytes(length)


def secret_to_base32(secret: bytes) -> str:
    """
    Encode secret as base32 string (for authenticator apps).

    Args:
        secret: Raw secret bytes

    Returns:
        Base32-encoded string (no padding)
    """
    return base64.b32encode(secret).decode('ascii').rstrip('=')


def provisioning_uri(secret: str, account_name: str,
                     issuer: str = TOTP_ISSUER,
                     digits: int = TOTP_DIGITS,
                     interval: int = TOTP_INTERVAL) -> str:
    """
    Generate otpauth:// URI for QR code.

    This URI can be encoded as a QR code and scanned by
    authenticator apps like Google Authenticator.

    Args:
        secret: Base32 secret
        account_name: Account identifier (usually email)
        issuer: Service name shown in authenticator apps

    Returns:
        otpauth:// URI string
    """
    return pyotp.TOTP(secret, digits=digits, interval=interval).provisioning_uri(
        name=account_name, issuer_name=issuer
    )


def provisioning_qr_svg(uri: str) -> str:
    """
    Render a provisioning URI as an SVG QR code.

    Args:
        uri: otpauth:// URI

    Returns:
        SVG document as a string
    """
    image = qrcode.make(uri, image_factory=qrcode.image.svg.SvgPathImage)
    return image.to_string(encoding='unicode')


def generate_recovery_codes(count: int, length: int) -> List[str]:
    """Batch of uppercase alphanumeric recovery codes."""
    return [random_string(UPPERCASE_ALPHANUMERIC, length) for _ in range(count)]


def normalize_recovery_code(code: str) -> str:
    """Recovery codes are accepted case-insensitively, ignoring spaces and dashes."""
    return code.strip().replace(' ', '').replace('-', '').upper()


class SecondFactorOutcome(Enum):
    ACCEPTED = "accepted"
    RECOVERY_CODE_CONSUMED = "recovery_code_consumed"
    REJECTED = "rejected"
    NOT_ENROLLED = "not_enrolled"  # no 2FA record, nothing to check

    @property
    def passed(self) -> bool:
        return self is not SecondFactorOutcome.REJECTED


@dataclass(frozen=True)
class Enrollment:
    """What a user needs to set up an authenticator; shown once."""
    secret: str
    recovery_codes: List[str]
    provisioning_uri: str

    def qr_svg(self) -> str:
        return provisioning_qr_svg(self.provisioning_uri)

    def __repr__(self) -> str:
        return f"Enrollment(recovery_codes={len(self.recovery_codes)})"


@dataclass(frozen=True)
class SecondFactorCheck:
    """
    Result of checking a code without saving.

    When a recovery code matched, `updated` is the record without it and
    `previous` the record as read; the caller saves `updated` on condition
    that `previous` is still stored.
    """
    outcome: SecondFactorOutcome
    updated: Optional[TwoFactorAuthentication] = None
    previous: Optional[TwoFactorAuthentication] = None


class TwoFactorManager:
    """
    Manage TOTP enrollment and verification for users.

    The 2FA record is optional per user; `status()` is the one place that
    resolves it.

    Example:
        >>> manager = TwoFactorManager(store, hasher)
        >>> enrollment = manager.enroll(user)
        >>> code = pyotp.TOTP(enrollment.secret).now()
        >>> manager.verify_second_factor(user, code)
        <SecondFactorOutcome.ACCEPTED: 'accepted'>
    """

    def __init__(self, store: Store, password_hasher: Argon2PasswordHasher,
                 clock: Optional[Clock] = None,
                 config: IdentityConfig = DEFAULT_CONFIG,
                 activity: Optional[ActivityRecorder] = None):
        """
        Initialize the manager.

        Args:
            store: Where 2FA records live
            password_hasher: Used to confirm the password before disabling
            clock: Time source for TOTP steps
            config: Digits, interval, drift and recovery code settings
            activity: Optional recorder; activities are saved with the change
        """
        self._store = store
        self._hasher = password_hasher
        self._clock = clock or SystemClock()
        self._config = config
        self._activity = activity

    def status(self, user: User) -> Optional[TwoFactorAuthentication]:
        """The user's 2FA record, or None when not enrolled."""
        return self._store.get(TwoFactorAuthentication, user.id)

    def enroll(self, user: User) -> Enrollment:
        """
        Enable 2FA with a fresh secret and recovery codes.

        Returns:
            Enrollment holding the only plaintext copy of the recovery codes

        Raises:
            AlreadyEnabledError: If the user is already enrolled
        """
        if self.status(user) is not None:
            raise AlreadyEnabledError()

        now = self._clock.now()
        secret = secret_to_base32(generate_secret())
        codes = self._new_recovery_codes()
        record = TwoFactorAuthentication(
            id=user.id,
            secret=secret,
            recovery_codes=list(codes),
            created_at=now,
            updated_at=now,
        )

        self._commit(record, user.id, ActivityType.TWO_FACTOR_ENABLED)
        logger.info("Two-factor enabled for user %s", user.id)

        uri = provisioning_uri(
            secret, user.email,
            issuer=self._config.totp_issuer,
            digits=self._config.totp_digits,
            interval=self._config.totp_interval,
        )
        return Enrollment(secret=secret, recovery_codes=codes, provisioning_uri=uri)

    def check_second_factor(self, user: User, code: Optional[str]) -> SecondFactorCheck:
        """
        Check a submitted code without persisting anything.

        Args:
            user: The signing-in user
            code: TOTP code or recovery code

        Returns:
            SecondFactorCheck; `updated` is only set when a recovery code
            was used and must be saved by the caller
        """
        record = self.status(user)
        if record is None:
            return SecondFactorCheck(SecondFactorOutcome.NOT_ENROLLED)

        if not code or not code.strip():
            return SecondFactorCheck(SecondFactorOutcome.REJECTED)

        if self._verify_totp(record.secret, code.strip()):
            return SecondFactorCheck(SecondFactorOutcome.ACCEPTED)

        submitted = normalize_recovery_code(code)
        match = None
        # Compare against every code so timing does not depend on position
        for stored in record.recovery_codes:
            if hmac.compare_digest(submitted.encode('utf-8'), stored.encode('utf-8')):
                match = stored

        if match is None:
            return SecondFactorCheck(SecondFactorOutcome.REJECTED)

        updated = replace(
            record,
            recovery_codes=[c for c in record.recovery_codes if c != match],
            updated_at=self._clock.now(),
        )
        return SecondFactorCheck(SecondFactorOutcome.RECOVERY_CODE_CONSUMED, updated, record)

    def verify_second_factor(self, user: User, code: Optional[str]) -> SecondFactorOutcome:
        """
        Check a submitted code and persist a consumed recovery code.

        Returns:
            The outcome; REJECTED leaves everything untouched. A recovery
            code redeemed by another request in the meantime is REJECTED.
        """
        check = self.check_second_factor(user, code)
        if check.updated is not None:
            updated = check.updated
            try:
                self._commit(updated, user.id, ActivityType.RECOVERY_CODE_USED,
                             expected=check.previous, remaining=len(updated.recovery_codes))
            except StaleWriteError:
                logger.warning("Recovery code for user %s was already redeemed", user.id)
                return SecondFactorOutcome.REJECTED
            logger.info("Recovery code used by user %s (%d left)", user.id, len(updated.recovery_codes))
        elif check.outcome is SecondFactorOutcome.REJECTED:
            logger.warning("Rejected second factor for user %s", user.id)
        return check.outcome

    def disable(self, user: User, password: str) -> bool:
        """
        Turn off 2FA after confirming the password.

        Raises:
            NotEnabledError: If the user is not enrolled
            InvalidPasswordError: If the password does not match
        """
        record = self.status(user)
        if record is None:
            raise NotEnabledError()

        if not self._hasher.verify_password(password, user.hashed_password):
            logger.warning("Wrong password while disabling two-factor for user %s", user.id)
            raise InvalidPasswordError()

        entities = []
        if self._activity:
            entities.append(self._activity.record(user.id, ActivityType.TWO_FACTOR_DISABLED))
        self._store.save(entities, delete=[record])
        if self._activity:
            self._activity.committed(*entities)

        logger.info("Two-factor disabled for user %s", user.id)
        return True

    def regenerate_recovery_codes(self, user: User) -> List[str]:
        """
        Replace the whole set of recovery codes.

        Raises:
            NotEnabledError: If the user is not enrolled
        """
        record = self.status(user)
        if record is None:
            raise NotEnabledError()

        codes = self._new_recovery_codes()
        record = replace(record, recovery_codes=list(codes), updated_at=self._clock.now())
        self._commit(record, user.id, ActivityType.RECOVERY_CODES_REGENERATED)

        logger.info("Recovery codes regenerated for user %s", user.id)
        return codes

    def _verify_totp(self, secret: str, code: str) -> bool:
        totp = pyotp.TOTP(secret, digits=self._config.totp_digits, interval=self._config.totp_interval)
        return totp.verify(code, for_time=self._clock.now(), valid_window=self._config.totp_valid_window)

    def _new_recovery_codes(self) -> List[str]:
        return generate_recovery_codes(self._config.recovery_code_count, self._config.recovery_code_length)

    def _commit(self, record: TwoFactorAuthentication, user_id: str,
                activity_type: ActivityType,
                expected: Optional[TwoFactorAuthentication] = None, **metadata) -> None:
        entities = [record]
        if self._activity:
            entities.append(self._activity.record(user_id, activity_type, **metadata))
        self._store.save(entities, expected=[expected] if expected else [])
        if self._activity:
            self._activity.committed(*entities[1:])
