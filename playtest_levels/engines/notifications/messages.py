"""
Notification copy for each event kind.
"""

import uuid
from typing import NamedTuple, Optional

from playtest_levels.kernel.models import LevelType, NotificationPriority


class Message(NamedTuple):
    title: str
    message: str
    action_url: str
    priority: NotificationPriority


def level_up_message(
    level_type: LevelType,
    new_level: str,
    metrics: dict,
    weekly_reward: int = 0,
    block_id: Optional[uuid.UUID] = None,
    block_title: Optional[str] = None,
) -> Message:
    if level_type == LevelType.LEARNER:
        return Message(
            title=f"Level {new_level} reached!",
            message=(
                f'You reached {new_level} in "{block_title or "this block"}" '
                f"with {metrics.get('consolidation', 0)}% consolidation."
            ),
            action_url=f"/blocks/{block_id}/progress",
            priority=NotificationPriority.HIGH,
        )
    if level_type == LevelType.CREATOR:
        return Message(
            title=f"New creator level: {new_level}!",
            message=(
                f"You reached {new_level} as a creator with {metrics.get('active_users', 0)} "
                f"active players. You will earn {weekly_reward} coins every week."
            ),
            action_url="/creator/dashboard",
            priority=NotificationPriority.HIGH,
        )
    return Message(
        title=f"New instructor level: {new_level}!",
        message=(
            f"You reached {new_level} as an instructor with {metrics.get('active_students', 0)} "
            f"active students. You will earn {weekly_reward} coins every week."
        ),
        action_url="/instructor/dashboard",
        priority=NotificationPriority.HIGH,
    )


def weekly_payment_message(amount: int, week_start: str, levels: list) -> Message:
    names = ", ".join(entry["level_name"] for entry in levels) or "your levels"
    return Message(
        title="Weekly reward received",
        message=f"You received {amount} coins for the week of {week_start} ({names}).",
        action_url="/profile/payments",
        priority=NotificationPriority.MEDIUM,
    )


def level_progress_message(
    level_type: LevelType,
    next_level: str,
    gap: float,
    progress_pct: float,
    block_id: Optional[uuid.UUID] = None,
    block_title: Optional[str] = None,
) -> Message:
    if level_type == LevelType.LEARNER:
        text = (
            f'You are {progress_pct:.0f}% of the way to {next_level} in "{block_title or "this block"}". '
            f"Only {gap:.0f}% more consolidation needed!"
        )
        url = f"/blocks/{block_id}/progress"
    elif level_type == LevelType.CREATOR:
        text = f"You are {progress_pct:.0f}% of the way to {next_level}. {gap:.0f} more active players needed."
        url = "/creator/dashboard"
    else:
        text = f"You are {progress_pct:.0f}% of the way to {next_level}. {gap:.0f} more active students needed."
        url = "/instructor/dashboard"
    return Message(
        title="Close to the next level!",
        message=text,
        action_url=url,
        priority=NotificationPriority.LOW,
    )
