"""
Append-only audit logging.
"""

from playtest_levels.kernel.events.event_store import EventStore

__all__ = ["EventStore"]
