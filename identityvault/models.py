"""
Identity Entities

Plain dataclasses persisted through a Store:
- User (with PrivacySettings and UserPreferences sub-records)
- Session
- TwoFactorAuthentication (one-to-one with User, keyed by the user's id)
- TempCode
- UserActivity

Secrets (password hash, TOTP secret, recovery codes, code hashes) live on
the entities but are never part of a public view.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# User sub-records
# ============================================================================

class AudienceLevel(Enum):
    PUBLIC = "public"
    FOLLOWERS = "followers"
    PRIVATE = "private"


class MentionPermission(Enum):
    ANYONE = "anyone"
    FOLLOWERS = "followers"
    DISABLED = "disabled"


@dataclass
class PrivacySettings:
    """Visibility controls; everything public by default."""
    profile_audience: AudienceLevel = AudienceLevel.PUBLIC
    social_connections_audience: AudienceLevel = AudienceLevel.PUBLIC
    activity_audience: AudienceLevel = AudienceLevel.PUBLIC
    who_can_mention: MentionPermission = MentionPermission.ANYONE
    require_follower_approval: bool = False
    show_in_search_results: bool = True


@dataclass
class UserPreferences:
    """Notification preferences; every push channel on by default."""
    push_notifications: bool = True
    push_on_new_followers: bool = True
    push_on_mentions: bool = True
    push_on_comments: bool = True
    push_on_comment_replies: bool = True
    push_on_recommendations: bool = True


# ============================================================================
# Entities
# ============================================================================

@dataclass
class User:
    """An identity record."""
    id: str
    email: str
    hashed_password: str
    username: Optional[str] = None
    bio: str = ""
    is_email_verified: bool = False
    privacy: PrivacySettings = field(default_factory=PrivacySettings)
    preferences: UserPreferences = field(default_factory=UserPreferences)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def public_view(self) -> 'UserProfile':
        """Profile fields that are safe to show to anyone."""
        return UserProfile(
            id=self.id,
            username=self.username,
            bio=self.bio,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        # Keep the password hash out of logs and tracebacks
        return f"User(id='{self.id}', email='{self.email}', username={self.username!r})"


@dataclass(frozen=True)
class UserProfile:
    id: str
    username: Optional[str]
    bio: str
    created_at: datetime
    updated_at: datetime


@dataclass
class Session:
    """
    A bearer credential.

    The id itself is the token. A session is Active until `expires_at`,
    Expired afterwards, and Deleted once removed from the store.
    """
    id: str
    user_id: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def __repr__(self) -> str:
        return f"Session(id='{self.id[:8]}...', user_id='{self.user_id}', expires_at={self.expires_at.isoformat()})"


@dataclass
class TwoFactorAuthentication:
    """TOTP secret and single-use recovery codes for one user."""
    id: str  # the owning user's id
    secret: str
    recovery_codes: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __repr__(self) -> str:
        return f"TwoFactorAuthentication(user_id='{self.id}', recovery_codes_left={len(self.recovery_codes)})"


class TempCodePurpose(Enum):
    """
    What a temporary code authorizes.

    Each member carries the subject line of the email that delivers it, so a
    purpose cannot be added without one.
    """
    CHANGE_PASSWORD = ("change_password", "Change Password")
    CHANGE_EMAIL = ("change_email", "Change Email")
    VERIFY_EMAIL = ("verify_email", "Email Verification")
    DELETE_ACCOUNT = ("delete_account", "Removing Account")

    def __init__(self, key: str, subject: str):
        self.key = key
        self.subject = subject

    @classmethod
    def from_key(cls, key: str) -> 'TempCodePurpose':
        for purpose in cls:
            if purpose.key == key:
                return purpose
        raise ValueError(f"Unknown temp code purpose: {key}")


@dataclass
class TempCode:
    """A salted hash of a short-lived code; the plaintext is never stored."""
    id: str
    purpose: TempCodePurpose
    for_id: str
    hashed_code: str
    code_salt: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ActivityType(Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    PROFILE_UPDATE = "profile_update"
    PASSWORD_CHANGE = "password_change"
    EMAIL_CHANGE = "email_change"
    EMAIL_VERIFIED = "email_verified"
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    RECOVERY_CODES_REGENERATED = "recovery_codes_regenerated"
    RECOVERY_CODE_USED = "recovery_code_used"


@dataclass
class UserActivity:
    """A simple record of something a user did."""
    id: str
    user_id: str
    type: ActivityType
    description: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
