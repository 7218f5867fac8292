"""
State machine for WeeklyPayment status.

pending -> paid      credit committed
pending -> failed    credit raised; attempts incremented
failed  -> pending   a retry claimed the row

Nothing leaves `paid`.
"""

from typing import FrozenSet, List, Tuple

from playtest_levels.kernel.models import PaymentStatus, enum_value

_TRANSITIONS: FrozenSet[Tuple[str, str]] = frozenset({
    (PaymentStatus.PENDING.value, PaymentStatus.PAID.value),
    (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value),
    (PaymentStatus.FAILED.value, PaymentStatus.PENDING.value),
})


def valid_transitions(from_status) -> List[str]:
    """Statuses reachable from `from_status`."""
    current = enum_value(from_status)
    return sorted(t for f, t in _TRANSITIONS if f == current)


def can_transition(from_status, to_status) -> bool:
    return (enum_value(from_status), enum_value(to_status)) in _TRANSITIONS


def assert_transition(from_status, to_status) -> None:
    """Raise ValueError for a transition the payment lifecycle does not allow."""
    if not can_transition(from_status, to_status):
        raise ValueError(
            f"Invalid payment transition {enum_value(from_status)} -> {enum_value(to_status)}"
        )
