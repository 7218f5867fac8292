"""
Consolidation Engine - recency and position weighted mastery scores.

Scores are derived on demand from the answer ledger and never stored as the
source of truth.
"""

from playtest_levels.engines.consolidation.calculator import (
    BlockConsolidation,
    ConsolidationCalculator,
    ConsolidationParams,
    score_question,
)
from playtest_levels.engines.consolidation.ledger import (
    AnswerLedgerReader,
    AnswerRecord,
    QuestionRef,
    SqlAnswerLedger,
)

__all__ = [
    "BlockConsolidation",
    "ConsolidationCalculator",
    "ConsolidationParams",
    "score_question",
    "AnswerLedgerReader",
    "AnswerRecord",
    "QuestionRef",
    "SqlAnswerLedger",
]
