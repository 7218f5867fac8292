"""
Exception hierarchy for the levels engine.

Input errors subclass ValueError so the API maps them to 400 the same way it
maps any other rejected argument. Configuration errors are fatal for the call
and surface to the operator.
"""


class LevelsError(Exception):
    """Base class for levels engine errors."""


class LevelConfigurationError(LevelsError):
    """A level ladder is missing, empty or inconsistent."""


class InvalidWeekError(LevelsError, ValueError):
    """A week specifier could not be parsed or does not start on a Monday."""


class UnknownLevelTypeError(LevelsError, ValueError):
    """A level type outside learner / creator / instructor."""


class QuestionSetMissingError(LevelsError, ValueError):
    """A content block has no questions to aggregate over."""


class CurrencyCreditError(LevelsError):
    """The currency ledger refused or failed a credit."""
