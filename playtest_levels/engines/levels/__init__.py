"""
Levels Engine - three ladders (learner, creator, instructor), one evaluator.
"""

from playtest_levels.engines.levels.evaluator import (
    LevelEvaluator,
    LevelTransition,
    RecomputeResult,
    TrackEvaluation,
)
from playtest_levels.engines.levels.ladder import Ladder, LadderRung
from playtest_levels.engines.levels.reports import LevelReports

__all__ = [
    "LevelEvaluator",
    "LevelTransition",
    "RecomputeResult",
    "TrackEvaluation",
    "Ladder",
    "LadderRung",
    "LevelReports",
]
