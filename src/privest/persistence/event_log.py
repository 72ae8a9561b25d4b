"""Append-only event log — the durable record of every committed ledger change.

Each committed ledger transaction appends its event records together, in
one write, after the transaction succeeds. Records are immutable once written.
The log serves as:
1. The audit trail for payout registration and claims.
2. The source of truth for rebuilding ledger state after a restart.

Payloads hold amounts as decimal strings so that uint256 values survive
JSON round-trips without loss.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence


class EventKind(str, enum.Enum):
    """Classification of ledger events."""
    FUNDS_DEPOSITED = "funds_deposited"
    PAYOUTS_PROCESSED = "payouts_processed"
    DIVIDEND_CLAIMED = "dividend_claimed"
    SUBMITTER_AUTHORIZED = "submitter_authorized"
    SUBMITTER_REVOKED = "submitter_revoked"


def _canonical_digest(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable ledger event.

    The event_hash is computed at creation time over the canonical JSON
    of every other field.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str  # SHA-256 of canonical JSON

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_digest(
                event_id, event_kind.value, ts_str, actor_id, payload
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional file persistence.

    Events can only be appended, never modified or deleted.
    The log can be persisted to a JSONL file (one JSON object per line)
    and loaded back for recovery.

    Usage:
        log = EventLog(Path("data/ledger.jsonl"))
        ledger = PayoutLedger(owner=OWNER, event_log=log)
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = Path(storage_path) if storage_path else None
        self._event_ids: set[str] = set()

        if self._storage_path and self._storage_path.exists():
            self._load_from_file(self._storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        self.append_many([event])

    def append_many(self, events: Sequence[EventRecord]) -> None:
        """Append several events as one unit: all are recorded or none are.

        Raises ValueError if any event_id is a duplicate, of a logged event
        or within the batch. If the file write fails, the file is cut back
        to its previous length and the error propagates.
        """
        batch = list(events)
        seen = set(self._event_ids)
        for event in batch:
            if event.event_id in seen:
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            seen.add(event.event_id)
        if not batch:
            return

        if self._storage_path:
            self._append_to_file(batch)

        self._events.extend(batch)
        self._event_ids.update(e.event_id for e in batch)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(list(self._events))

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_to_file(self, events: list[EventRecord]) -> None:
        """Append events to the JSONL file in a single write."""
        path = self._storage_path
        path.parent.mkdir(parents=True, exist_ok=True)
        data = "".join(
            json.dumps(e.to_dict(), sort_keys=True, ensure_ascii=False) + "\n"
            for e in events
        ).encode("utf-8")
        start = path.stat().st_size if path.exists() else 0
        try:
            self._write(data)
        except OSError:
            # Drop any partially written tail.
            if path.exists():
                with path.open("r+b") as f:
                    f.truncate(start)
            raise

    def _write(self, data: bytes) -> None:
        with self._storage_path.open("ab") as f:
            f.write(data)

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch), unknown
        event kinds and duplicate event IDs (replay protection on recovery).
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                event_id = data["event_id"]
                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_digest(
                    data["event_id"],
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=data["event_id"],
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                self._events.append(event)
                self._event_ids.add(event.event_id)
