"""Durable storage for ledger events."""

from privest.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
