"""
Append-only audit event store.
"""

from coolscool.kernel.events.event_store import EventStore, log_mastery_achieved, log_session_transition

__all__ = ["EventStore", "log_mastery_achieved", "log_session_transition"]
