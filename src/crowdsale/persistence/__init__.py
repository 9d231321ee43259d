"""Persistence — append-only audit log and state snapshots."""

from crowdsale.persistence.event_log import EventKind, EventLog, EventRecord
from crowdsale.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
