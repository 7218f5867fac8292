from playtest_levels.engines.notifications.dispatcher import (
    NotificationDispatcher,
    NotificationPreferences,
    NotificationStat,
)

__all__ = ["NotificationDispatcher", "NotificationPreferences", "NotificationStat"]
