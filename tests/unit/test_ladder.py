"""Unit tests for the level ladder walk and level type parsing."""

import uuid

import pytest

from playtest_levels.engines.errors import LevelConfigurationError, UnknownLevelTypeError
from playtest_levels.engines.levels.ladder import Ladder, LadderRung, parse_level_type
from playtest_levels.kernel.models import LevelType


def rung(name: str, order: int, minimum: float, reward: int = 0) -> LadderRung:
    return LadderRung(
        id=uuid.uuid4(),
        level_type=LevelType.LEARNER,
        order=order,
        name=name,
        min_threshold=minimum,
        weekly_reward=reward,
    )


@pytest.fixture
def medals() -> Ladder:
    return Ladder(LevelType.LEARNER, [rung("Gold", 3, 75), rung("Bronze", 1, 0), rung("Silver", 2, 40)])


class TestLadder:
    """Tests for the threshold walk."""

    def test_rungs_sorted_by_order(self, medals: Ladder):
        assert [r.name for r in medals.rungs] == ["Bronze", "Silver", "Gold"]
        assert len(medals) == 3

    @pytest.mark.parametrize(
        "metric,expected",
        [(0, "Bronze"), (30, "Bronze"), (40, "Silver"), (74.99, "Silver"), (80, "Gold"), (100, "Gold")],
    )
    def test_best_qualifying(self, medals: Ladder, metric, expected):
        assert medals.best_qualifying(metric).name == expected

    def test_below_lowest_rung_has_no_level(self):
        ladder = Ladder(LevelType.CREATOR, [rung("Seed", 1, 1), rung("Spark", 2, 50)])
        assert ladder.best_qualifying(0) is None

    def test_next_above(self, medals: Ladder):
        bronze, silver, gold = medals.rungs
        assert medals.next_above(None) is bronze
        assert medals.next_above(bronze) is silver
        assert medals.next_above(gold) is None

    def test_get_by_id(self, medals: Ladder):
        silver = medals.rungs[1]
        assert medals.get(silver.id) is silver
        assert medals.get(None) is None
        assert medals.get(uuid.uuid4()) is None

    def test_empty_ladder_is_a_configuration_error(self):
        with pytest.raises(LevelConfigurationError):
            Ladder(LevelType.INSTRUCTOR, [])

    def test_duplicate_order_rejected(self):
        with pytest.raises(LevelConfigurationError):
            Ladder(LevelType.LEARNER, [rung("A", 1, 0), rung("B", 1, 10)])

    def test_decreasing_thresholds_rejected(self):
        with pytest.raises(LevelConfigurationError):
            Ladder(LevelType.LEARNER, [rung("A", 1, 50), rung("B", 2, 10)])


class TestParseLevelType:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("learner", LevelType.LEARNER),
            ("Creator", LevelType.CREATOR),
            (" instructor ", LevelType.INSTRUCTOR),
            ("user", LevelType.LEARNER),
            ("teacher", LevelType.INSTRUCTOR),
        ],
    )
    def test_known_values(self, value, expected):
        assert parse_level_type(value) is expected

    def test_unknown_value(self):
        with pytest.raises(UnknownLevelTypeError):
            parse_level_type("wizard")

    def test_unknown_value_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_level_type("")
