"""
Kernel Data Models

SQLAlchemy models for the levels engine and the play-side tables it reads.
"""

from playtest_levels.kernel.models.base import (
    Base,
    TimestampMixin,
    ensure_utc,
    enum_value,
    generate_uuid,
    utcnow,
)
from playtest_levels.kernel.models.play import (
    AnswerEvent,
    AnswerResult,
    ClassEnrollment,
    ContentBlock,
    Question,
)
from playtest_levels.kernel.models.levels import (
    GLOBAL_SCOPE,
    LevelDefinition,
    LevelProgressionEvent,
    LevelType,
    TransitionDirection,
    UserLevel,
)
from playtest_levels.kernel.models.badges import (
    RARITY_RANK,
    BadgeDefinition,
    BadgeRarity,
    UserBadge,
)
from playtest_levels.kernel.models.payments import PaymentStatus, WeeklyPayment
from playtest_levels.kernel.models.currency import CurrencyAccount, CurrencyTransaction
from playtest_levels.kernel.models.notifications import (
    Notification,
    NotificationKind,
    NotificationPreference,
    NotificationPriority,
)
from playtest_levels.kernel.models.event_log import EventLog, EventType

__all__ = [
    "Base",
    "TimestampMixin",
    "ensure_utc",
    "enum_value",
    "generate_uuid",
    "utcnow",
    # Play
    "AnswerEvent",
    "AnswerResult",
    "ClassEnrollment",
    "ContentBlock",
    "Question",
    # Levels
    "GLOBAL_SCOPE",
    "LevelDefinition",
    "LevelProgressionEvent",
    "LevelType",
    "TransitionDirection",
    "UserLevel",
    # Badges
    "RARITY_RANK",
    "BadgeDefinition",
    "BadgeRarity",
    "UserBadge",
    # Payments
    "PaymentStatus",
    "WeeklyPayment",
    "CurrencyAccount",
    "CurrencyTransaction",
    # Notifications
    "Notification",
    "NotificationKind",
    "NotificationPreference",
    "NotificationPriority",
    # Audit
    "EventLog",
    "EventType",
]
