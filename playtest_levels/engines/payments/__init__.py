"""
Payments Engine - idempotent weekly reward batch with capped retries.
"""

from playtest_levels.engines.payments.processor import (
    PaymentBatchResult,
    PaymentOutcome,
    PaymentProcessor,
)
from playtest_levels.engines.payments.reports import PaymentReports, WeeklySummary

__all__ = [
    "PaymentBatchResult",
    "PaymentOutcome",
    "PaymentProcessor",
    "PaymentReports",
    "WeeklySummary",
]
