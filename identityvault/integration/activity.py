"""
Activity Records

Builds the simple per-user activity trail kept alongside identity data.

Records are created here but persisted by the operation that produced them,
in the same save, so an activity exists exactly when its change committed.

Metadata never contains secrets (passwords, codes, TOTP secrets, full
session tokens).
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..clock import Clock, SystemClock
from ..models import ActivityType, UserActivity
from ..storage import Store
from ..tokens import generate_record_id

logger = logging.getLogger(__name__)


DEFAULT_DESCRIPTIONS: Dict[ActivityType, str] = {
    ActivityType.LOGIN: "Signed in",
    ActivityType.LOGOUT: "Signed out",
    ActivityType.PROFILE_UPDATE: "Updated profile",
    ActivityType.PASSWORD_CHANGE: "Changed password",
    ActivityType.EMAIL_CHANGE: "Changed email address",
    ActivityType.EMAIL_VERIFIED: "Verified email address",
    ActivityType.TWO_FACTOR_ENABLED: "Enabled two-factor authentication",
    ActivityType.TWO_FACTOR_DISABLED: "Disabled two-factor authentication",
    ActivityType.RECOVERY_CODES_REGENERATED: "Generated new recovery codes",
    ActivityType.RECOVERY_CODE_USED: "Signed in with a recovery code",
}


class ActivityRecorder:
    """
    Factory and reader for UserActivity records.

    Example:
        >>> recorder = ActivityRecorder(store)
        >>> activity = recorder.record(user.id, ActivityType.LOGIN)
        >>> store.save([session, activity])
    """

    def __init__(self, store: Store, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or SystemClock()
        self._callbacks: List[Callable[[UserActivity], None]] = []

    def record(self, user_id: str, activity_type: ActivityType,
               description: Optional[str] = None, **metadata: Any) -> UserActivity:
        """
        Build an activity record (not yet persisted).

        Args:
            user_id: The acting user
            activity_type: What happened
            description: Human readable text (defaults per type)
            **metadata: Extra non-secret details

        Returns:
            The new UserActivity
        """
        return UserActivity(
            id=generate_record_id(),
            user_id=user_id,
            type=activity_type,
            description=description or DEFAULT_DESCRIPTIONS[activity_type],
            metadata=dict(metadata),
            created_at=self._clock.now(),
        )

    def committed(self, *activities: UserActivity) -> None:
        """Announce activities whose save has committed."""
        for activity in activities:
            logger.info("Activity %s for user %s", activity.type.value, activity.user_id)
            for callback in self._callbacks:
                callback(activity)

    def add_callback(self, callback: Callable[[UserActivity], None]) -> None:
        """Add a callback to be notified of committed activities."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[UserActivity], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def history(self, user_id: str, activity_type: Optional[ActivityType] = None) -> List[UserActivity]:
        """A user's activities, oldest first."""
        activities = self._store.find_all(
            UserActivity,
            lambda a: a.user_id == user_id and (activity_type is None or a.type == activity_type),
        )
        return sorted(activities, key=lambda a: a.created_at)
