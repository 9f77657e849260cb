"""
Session Management Module

Implements bearer sessions:
- 128-character random session IDs (the ID is the token)
- Caller-chosen expiration inside a bounded window
- A per-user cap on concurrent active sessions

Security considerations:
- Session IDs come from the CSPRNG and are checked for collisions
- Expired sessions never authenticate, even before cleanup removes them
- Never log full session IDs
"""

import logging
from datetime import datetime
from typing import List, Optional

from ..clock import Clock, SystemClock, ensure_utc
from ..config import DEFAULT_CONFIG, IdentityConfig
from ..exceptions import (
    InvalidSessionError, InvalidSessionExpirationError, MaxSessionsExceededError,
)
from ..models import Session, User
from ..storage import Store
from ..tokens import generate_session_id

logger = logging.getLogger(__name__)


# ============================================================================
# Sessions
# ============================================================================

class SessionManager:
    """
    Creates, resolves and revokes sessions stored in a Store.

    A session is Active until `expires_at`, Expired afterwards (derived from
    the clock, never stored), and Deleted once removed. Deleted is terminal.

    Example:
        >>> manager = SessionManager(store, clock)
        >>> session = manager.create_session(user, clock.now() + timedelta(days=7))
        >>> manager.find_user_by_session(session.id).id == user.id
        True
    """

    def __init__(self, store: Store, clock: Optional[Clock] = None,
                 config: IdentityConfig = DEFAULT_CONFIG):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config

    def validate_expiration(self, expires_at: datetime) -> datetime:
        """
        Check a requested expiration against the allowed window.

        Both bounds are inclusive.

        Returns:
            The expiration, normalized to UTC

        Raises:
            InvalidSessionExpirationError: If outside [now + min, now + max]
        """
        expires_at = ensure_utc(expires_at)
        now = self._clock.now()
        earliest = now + self._config.session_min_lifetime
        latest = now + self._config.session_max_lifetime

        if expires_at < earliest or expires_at > latest:
            raise InvalidSessionExpirationError(earliest, latest)
        return expires_at

    def active_sessions(self, user: User) -> List[Session]:
        now = self._clock.now()
        return self._store.find_all(
            Session, lambda s: s.user_id == user.id and not s.is_expired(now)
        )

    def ensure_capacity(self, user: User) -> None:
        """
        Raises:
            MaxSessionsExceededError: If the user already holds the maximum
                number of unexpired sessions
        """
        now = self._clock.now()
        active = self._store.count(
            Session, lambda s: s.user_id == user.id and not s.is_expired(now)
        )
        if active >= self._config.max_sessions_per_user:
            logger.warning("Session cap reached for user %s", user.id)
            raise MaxSessionsExceededError(self._config.max_sessions_per_user)

    def build_session(self, user: User, expires_at: datetime) -> Session:
        """
        Validate and construct a session without persisting it.

        Raises:
            InvalidSessionExpirationError: Expiration outside the window
            MaxSessionsExceededError: Too many active sessions
        """
        expires_at = self.validate_expiration(expires_at)
        self.ensure_capacity(user)

        session_id = generate_session_id(self._config.session_id_length)
        while self._store.get(Session, session_id) is not None:
            session_id = generate_session_id(self._config.session_id_length)

        return Session(
            id=session_id,
            user_id=user.id,
            expires_at=expires_at,
            created_at=self._clock.now(),
        )

    def create_session(self, user: User, expires_at: datetime) -> Session:
        """Build and persist a session."""
        session = self.build_session(user, expires_at)
        self._store.save([session])
        logger.info("Created session %s... for user %s", session.id[:8], user.id)
        return session

    def get_session(self, session_id: str, user: Optional[User] = None) -> Session:
        """
        Look up a stored session, optionally checking its owner.

        Expired sessions are still returned so they can be deleted.

        Raises:
            InvalidSessionError: Unknown ID, or owned by someone else
        """
        session = self._store.get(Session, session_id) if session_id else None
        if session is None or (user is not None and session.user_id != user.id):
            raise InvalidSessionError()
        return session

    def delete_session(self, session_id: str, user: Optional[User] = None) -> bool:
        """
        Delete (sign out) a session.

        Raises:
            InvalidSessionError: Unknown ID, or owned by someone else
        """
        session = self.get_session(session_id, user)
        self._store.save([], delete=[session])
        logger.info("Deleted session %s... for user %s", session.id[:8], session.user_id)
        return True

    def find_user_by_session(self, session_id: str) -> Optional[User]:
        """The session's user, or None if unknown or expired."""
        if not session_id:
            return None
        session = self._store.get(Session, session_id)
        if session is None or session.is_expired(self._clock.now()):
            return None
        return self._store.get(User, session.user_id)

    def list_sessions(self, user: User) -> List[Session]:
        """A user's unexpired sessions, newest first."""
        return sorted(self.active_sessions(user), key=lambda s: s.created_at, reverse=True)

    def delete_all_sessions(self, user: User) -> int:
        """Revoke every session of a user, expired or not."""
        sessions = self._store.find_all(Session, lambda s: s.user_id == user.id)
        if sessions:
            self._store.save([], delete=sessions)
        logger.info("Deleted %d sessions for user %s", len(sessions), user.id)
        return len(sessions)

    def cleanup_expired(self) -> int:
        """
        Remove expired sessions.

        Returns:
            Number of sessions removed
        """
        now = self._clock.now()
        expired = self._store.find_all(Session, lambda s: s.is_expired(now))
        if expired:
            self._store.save([], delete=expired)
        logger.debug("Removed %d expired sessions", len(expired))
        return len(expired)
