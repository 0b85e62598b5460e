"""Append-only audit log and state snapshots."""

from zkgate.persistence.event_log import EventKind, EventLog, EventRecord
from zkgate.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
