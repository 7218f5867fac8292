"""
Ladder - the ordered rungs of one level track and the threshold walk over them.
"""

import uuid
from typing import List, Optional, Sequence

from pydantic import BaseModel

from playtest_levels.engines.errors import LevelConfigurationError, UnknownLevelTypeError
from playtest_levels.kernel.models import LevelDefinition, LevelType


class LadderRung(BaseModel):
    """Immutable copy of a LevelDefinition row."""

    id: uuid.UUID
    level_type: LevelType
    order: int
    name: str
    min_threshold: float
    max_threshold: Optional[float] = None
    weekly_reward: int = 0

    @classmethod
    def from_row(cls, row: LevelDefinition) -> "LadderRung":
        return cls(
            id=row.id,
            level_type=LevelType(row.level_type),
            order=row.level_order,
            name=row.name,
            min_threshold=row.min_threshold,
            max_threshold=row.max_threshold,
            weekly_reward=row.weekly_reward,
        )


class Ladder:
    """
    Ordered rungs for one level type.

    The walk starts at the lowest rung and climbs while the metric meets each
    rung's minimum, so a single evaluation can jump several rungs or fall back
    several rungs.
    """

    def __init__(self, level_type: LevelType, rungs: Sequence[LadderRung]):
        if not rungs:
            raise LevelConfigurationError(f"No level definitions configured for '{level_type.value}'")
        ordered = sorted(rungs, key=lambda r: r.order)
        for lower, upper in zip(ordered, ordered[1:]):
            if lower.order == upper.order:
                raise LevelConfigurationError(
                    f"Duplicate level order {upper.order} in '{level_type.value}' ladder"
                )
            if upper.min_threshold < lower.min_threshold:
                raise LevelConfigurationError(
                    f"Thresholds of '{level_type.value}' ladder decrease at '{upper.name}'"
                )
        self.level_type = level_type
        self.rungs: List[LadderRung] = ordered

    def best_qualifying(self, metric: float) -> Optional[LadderRung]:
        """Highest rung whose minimum threshold the metric meets, or None."""
        best = None
        for rung in self.rungs:
            if metric < rung.min_threshold:
                break
            best = rung
        return best

    def get(self, level_id: Optional[uuid.UUID]) -> Optional[LadderRung]:
        if level_id is None:
            return None
        for rung in self.rungs:
            if rung.id == level_id:
                return rung
        return None

    def next_above(self, rung: Optional[LadderRung]) -> Optional[LadderRung]:
        """The rung right after `rung`; the lowest rung when `rung` is None."""
        if rung is None:
            return self.rungs[0]
        for candidate in self.rungs:
            if candidate.order > rung.order:
                return candidate
        return None

    def __len__(self) -> int:
        return len(self.rungs)


_LEVEL_TYPE_ALIASES = {
    "user": LevelType.LEARNER,
    "teacher": LevelType.INSTRUCTOR,
}


def parse_level_type(value: str) -> LevelType:
    """Track name from user input; 'user' and 'teacher' are accepted aliases."""
    key = (value or "").strip().lower()
    if key in _LEVEL_TYPE_ALIASES:
        return _LEVEL_TYPE_ALIASES[key]
    try:
        return LevelType(key)
    except ValueError:
        raise UnknownLevelTypeError(f"Unknown level type '{value}'") from None
