"""
Identity Service

Orchestrates the account flows over the credential, session, two-factor and
temporary-code components:
- Sign-up with validation, uniqueness and password strength policy
- Sign-in with an optional second factor and a bounded session
- Sign-out and session resolution
- Code-authorized account changes (password, email, verification, deletion)
- Profile reads and updates

Each operation commits its changes, including the activity records it
produces, in a single store save.

Security considerations:
- Unknown email and wrong password are reported identically
- A dummy Argon2 verification runs when the email is unknown
- Plaintext passwords and codes are never logged
- Single-use codes are deleted in a save conditional on the record read,
  so concurrent redemptions of one code commit at most once
"""

import logging
import secrets
from datetime import datetime
from typing import Iterable, List, Optional

from ..clock import Clock, SystemClock
from ..config import DEFAULT_CONFIG, IdentityConfig
from ..exceptions import (
    FieldError, InvalidCredentialsError, InvalidSessionError, InvalidTwoFactorCodeError,
    MailDeliveryError, StaleWriteError, TempCodeNotFoundError, TwoFactorRequiredError,
    UniqueConstraintError, UserAlreadyExistsError, UsernameTakenError, UserNotFoundError,
    WeakPasswordError,
)
from ..integration.activity import ActivityRecorder
from ..integration.mailer import EmailMessage, Mailer, render_code_email
from ..models import (
    ActivityType, Session, TempCode, TempCodePurpose, TwoFactorAuthentication,
    User, UserActivity, UserProfile,
)
from ..storage import Store
from ..tokens import generate_user_id
from .credentials import (
    Argon2PasswordHasher, HeuristicPasswordScorer, PasswordScorer,
    normalize_email, raise_for_errors, validate_bio, validate_email,
    validate_password_input, validate_username,
)
from .sessions import SessionManager
from .temp_codes import TempCodeService
from .totp import Enrollment, SecondFactorOutcome, TwoFactorManager

logger = logging.getLogger(__name__)


class IdentityService:
    """
    Entry point for every identity operation.

    Example:
        >>> service = IdentityService(MemoryStore(), MemoryMailer())
        >>> user = service.sign_up("a@example.com", "Tr0ub4dor&3horse!")
        >>> session = service.sign_in("a@example.com", "Tr0ub4dor&3horse!",
        ...                           datetime.now(timezone.utc) + timedelta(days=7))
        >>> service.current_user(session.id).id == user.id
        True
    """

    def __init__(self, store: Store, mailer: Mailer,
                 clock: Optional[Clock] = None,
                 config: IdentityConfig = DEFAULT_CONFIG,
                 password_hasher: Optional[Argon2PasswordHasher] = None,
                 password_scorer: Optional[PasswordScorer] = None):
        """
        Wire the components together.

        Args:
            store: Persistence for all entities
            mailer: Delivers temporary codes
            clock: Time source (system clock by default)
            config: Policy and cost settings
            password_hasher: Argon2id hasher (built from config by default)
            password_scorer: Strength scorer (heuristic by default)
        """
        self._store = store
        self._mailer = mailer
        self._clock = clock or SystemClock()
        self._config = config
        self._hasher = password_hasher or Argon2PasswordHasher(config.argon2)
        self._scorer = password_scorer or HeuristicPasswordScorer()
        self._dummy_hash: Optional[str] = None

        self.activity = ActivityRecorder(store, self._clock)
        self.sessions = SessionManager(store, self._clock, config)
        self.temp_codes = TempCodeService(store, self._clock, config)
        self.two_factor = TwoFactorManager(store, self._hasher, self._clock, config, self.activity)

    # ========================================================================
    # Sign-up / sign-in
    # ========================================================================

    def sign_up(self, email: str, password: str, username: Optional[str] = None) -> User:
        """
        Register a new user.

        Args:
            email: Email address (stored lowercase)
            password: Plaintext password
            username: Optional handle, 3-30 of [a-z0-9_]

        Returns:
            The created user (email not yet verified)

        Raises:
            ValidationFailedError: Malformed input
            UserAlreadyExistsError: Email in use
            UsernameTakenError: Username in use
            WeakPasswordError: Strength score below the policy minimum
        """
        raise_for_errors(
            validate_email(email) + validate_username(username) + validate_password_input(password)
        )
        email = normalize_email(email)

        if self.is_email_in_use(email):
            raise UserAlreadyExistsError()
        if username is not None and self.is_username_in_use(username):
            raise UsernameTakenError()

        self._check_strength(password)

        user_id = generate_user_id(self._config.user_id_length)
        while self._store.get(User, user_id) is not None:
            user_id = generate_user_id(self._config.user_id_length)

        now = self._clock.now()
        user = User(
            id=user_id,
            email=email,
            hashed_password=self._hasher.hash_password(password),
            username=username,
            created_at=now,
            updated_at=now,
        )

        self._save_user([user])
        logger.info("Registered user %s", user.id)
        return user

    def sign_in(self, email: str, password: str, expires_at: datetime,
                two_factor_code: Optional[str] = None) -> Session:
        """
        Authenticate and open a session.

        Args:
            email: Account email
            password: Plaintext password
            expires_at: Requested session expiration
            two_factor_code: TOTP or recovery code, when enrolled

        Returns:
            The new session; its ID is the bearer token

        Raises:
            ValidationFailedError: Malformed input
            InvalidCredentialsError: Unknown email or wrong password
            TwoFactorRequiredError: Enrolled and no code given
            InvalidTwoFactorCodeError: Code rejected
            InvalidSessionExpirationError: Expiration outside the window
            MaxSessionsExceededError: Too many active sessions
        """
        raise_for_errors(validate_email(email) + _require_password(password))
        identifier = normalize_email(email)

        user = self._store.find_one(User, lambda u: u.email == identifier)
        if user is None:
            # Same cost as a real verification
            self._hasher.verify_password(password, self._get_dummy_hash())
            raise self._failed_sign_in(identifier)
        if not self._hasher.verify_password(password, user.hashed_password):
            raise self._failed_sign_in(identifier)

        if two_factor_code is None and self.two_factor.status(user) is not None:
            raise TwoFactorRequiredError()

        check = self.two_factor.check_second_factor(user, two_factor_code)
        if check.outcome is SecondFactorOutcome.REJECTED:
            logger.warning("Rejected second factor for user %s", user.id)
            raise InvalidTwoFactorCodeError()

        session = self.sessions.build_session(user, expires_at)

        activities = [self.activity.record(user.id, ActivityType.LOGIN, session_prefix=session.id[:8])]
        entities: List[object] = [session]
        expected: List[object] = []
        if check.updated is not None:
            entities.append(check.updated)
            expected.append(check.previous)
            activities.append(self.activity.record(
                user.id, ActivityType.RECOVERY_CODE_USED, remaining=len(check.updated.recovery_codes)
            ))
        if self._hasher.needs_rehash(user.hashed_password):
            user.hashed_password = self._hasher.hash_password(password)
            entities.append(user)

        try:
            self._store.save(entities + activities, expected=expected)
        except StaleWriteError as e:
            logger.warning("Recovery code for user %s was already redeemed", user.id)
            raise InvalidTwoFactorCodeError() from e
        self.activity.committed(*activities)

        logger.info("User %s signed in (session %s...)", user.id, session.id[:8])
        return session

    def sign_out(self, session_id: str, user: Optional[User] = None) -> bool:
        """
        Delete a session.

        Raises:
            InvalidSessionError: Unknown session, or owned by another user
        """
        session = self.sessions.get_session(session_id, user)
        activity = self.activity.record(session.user_id, ActivityType.LOGOUT)

        self._store.save([activity], delete=[session])
        self.activity.committed(activity)

        logger.info("User %s signed out (session %s...)", session.user_id, session.id[:8])
        return True

    def current_user(self, session_id: Optional[str]) -> Optional[User]:
        """The user behind an unexpired session, or None."""
        return self.sessions.find_user_by_session(session_id)

    def require_user(self, session_id: Optional[str]) -> User:
        """
        Raises:
            InvalidSessionError: No unexpired session with this ID
        """
        user = self.current_user(session_id)
        if user is None:
            raise InvalidSessionError()
        return user

    # ========================================================================
    # Temporary codes
    # ========================================================================

    def request_temp_code(self, purpose: TempCodePurpose, subject_id: str) -> bool:
        """
        Issue a code and email it to the subject.

        The code is committed before sending; if delivery fails the code
        stays outstanding until it expires.

        Raises:
            UserNotFoundError: Unknown subject
            DuplicateCodeError: An unexpired code is outstanding
            MailDeliveryError: The mailer failed after the code was stored
        """
        user = self._get_user(subject_id)
        issued = self.temp_codes.issue(purpose, user.id)

        message = EmailMessage(
            sender=self._config.mail_sender,
            to=user.email,
            subject=purpose.subject,
            html_body=render_code_email(purpose.subject, issued.code),
        )
        try:
            self._mailer.send(message)
        except MailDeliveryError:
            logger.error("Could not deliver %s code to user %s", purpose.key, user.id)
            raise
        except OSError as e:
            logger.error("Could not deliver %s code to user %s", purpose.key, user.id)
            raise MailDeliveryError(str(e)) from e

        logger.info("Sent %s code to user %s", purpose.key, user.id)
        return True

    def change_password(self, user_id: str, code: str, new_password: str) -> User:
        """
        Set a new password with a CHANGE_PASSWORD code.

        Every session of the user is revoked in the same save.
        """
        raise_for_errors(validate_password_input(new_password, 'new_password'))
        self._check_strength(new_password)

        user = self._get_user(user_id)
        record = self.temp_codes.consume(TempCodePurpose.CHANGE_PASSWORD, user.id, code)

        user.hashed_password = self._hasher.hash_password(new_password)
        user.updated_at = self._clock.now()
        sessions = self._store.find_all(Session, lambda s: s.user_id == user.id)
        activity = self.activity.record(user.id, ActivityType.PASSWORD_CHANGE, revoked_sessions=len(sessions))

        self._save_user([user, activity], delete=sessions, redeemed=record)
        self.activity.committed(activity)

        logger.info("Password changed for user %s; %d sessions revoked", user.id, len(sessions))
        return user

    def change_email(self, user_id: str, code: str, new_email: str) -> User:
        """
        Move the account to a new email with a CHANGE_EMAIL code.

        The new address starts unverified.
        """
        raise_for_errors(validate_email(new_email))
        new_email = normalize_email(new_email)

        user = self._get_user(user_id)
        if self._store.exists(User, lambda u: u.email == new_email and u.id != user.id):
            raise UserAlreadyExistsError()

        record = self.temp_codes.consume(TempCodePurpose.CHANGE_EMAIL, user.id, code)

        user.email = new_email
        user.is_email_verified = False
        user.updated_at = self._clock.now()
        activity = self.activity.record(user.id, ActivityType.EMAIL_CHANGE)

        self._save_user([user, activity], redeemed=record)
        self.activity.committed(activity)

        logger.info("Email changed for user %s", user.id)
        return user

    def verify_email(self, user_id: str, code: str) -> User:
        """Mark the email verified with a VERIFY_EMAIL code."""
        user = self._get_user(user_id)
        record = self.temp_codes.consume(TempCodePurpose.VERIFY_EMAIL, user.id, code)

        user.is_email_verified = True
        user.updated_at = self._clock.now()
        activity = self.activity.record(user.id, ActivityType.EMAIL_VERIFIED)

        self._save_user([user, activity], redeemed=record)
        self.activity.committed(activity)

        logger.info("Email verified for user %s", user.id)
        return user

    def delete_account(self, user_id: str, code: str) -> bool:
        """
        Remove a user and everything owned by it with a DELETE_ACCOUNT code.

        Sessions, the 2FA record, activities and outstanding codes go in the
        same save as the user.
        """
        user = self._get_user(user_id)
        record = self.temp_codes.consume(TempCodePurpose.DELETE_ACCOUNT, user.id, code)

        doomed: List[object] = [user]
        doomed += self._store.find_all(Session, lambda s: s.user_id == user.id)
        doomed += self._store.find_all(UserActivity, lambda a: a.user_id == user.id)
        doomed += self._store.find_all(TempCode, lambda c: c.for_id == user.id)
        two_factor = self._store.get(TwoFactorAuthentication, user.id)
        if two_factor is not None:
            doomed.append(two_factor)

        self._save_user([], delete=doomed, redeemed=record)
        logger.info("Deleted account %s (%d records)", user.id, len(doomed))
        return True

    # ========================================================================
    # Profile
    # ========================================================================

    def update_profile(self, user: User, bio: str) -> User:
        raise_for_errors(validate_bio(bio))
        user = self._get_user(user.id)

        user.bio = bio
        user.updated_at = self._clock.now()
        activity = self.activity.record(user.id, ActivityType.PROFILE_UPDATE, fields=['bio'])

        self._store.save([user, activity])
        self.activity.committed(activity)
        return user

    def is_email_in_use(self, email: str) -> bool:
        email = normalize_email(email)
        return self._store.exists(User, lambda u: u.email == email)

    def is_username_in_use(self, username: str) -> bool:
        return self._store.exists(User, lambda u: u.username == username)

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        user = self._store.get(User, user_id)
        return user.public_view() if user else None

    # ========================================================================
    # Two-factor
    # ========================================================================

    def enable_two_factor(self, user: User) -> Enrollment:
        return self.two_factor.enroll(self._get_user(user.id))

    def disable_two_factor(self, user: User, password: str) -> bool:
        return self.two_factor.disable(self._get_user(user.id), password)

    def regenerate_recovery_codes(self, user: User) -> List[str]:
        return self.two_factor.regenerate_recovery_codes(self._get_user(user.id))

    # ========================================================================
    # Helpers
    # ========================================================================

    def _get_user(self, user_id: str) -> User:
        user = self._store.get(User, user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    def _check_strength(self, password: str) -> None:
        result = self._scorer.score(password)
        if result.score < self._config.min_password_score:
            raise WeakPasswordError(result.score, result.feedback)

    def _failed_sign_in(self, identifier: str) -> InvalidCredentialsError:
        logger.warning("Failed sign-in for %s", identifier)
        return InvalidCredentialsError()

    def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash_password(secrets.token_urlsafe(16))
        return self._dummy_hash

    def _save_user(self, entities: List[object], delete: Iterable[object] = (),
                   redeemed: Optional[TempCode] = None) -> None:
        """
        Save, mapping store conflicts to the user-facing errors.

        A redeemed code is deleted on condition that it is still stored as
        read; if another redemption committed first the code is gone.
        """
        delete = list(delete)
        expected: List[object] = []
        if redeemed is not None:
            delete.append(redeemed)
            expected.append(redeemed)

        try:
            self._store.save(entities, delete=delete, expected=expected)
        except StaleWriteError as e:
            logger.warning("Code %s was already redeemed", e.entity_id)
            raise TempCodeNotFoundError() from e
        except UniqueConstraintError as e:
            if e.constraint == 'users.username':
                raise UsernameTakenError() from e
            if e.constraint == 'users.email':
                raise UserAlreadyExistsError() from e
            raise


def _require_password(password: Optional[str]) -> List[FieldError]:
    if not password:
        return [FieldError('password', "Password is required.")]
    return []
