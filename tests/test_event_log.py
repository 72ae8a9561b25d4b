"""Tests for the event log — proves append-only, tamper-evident persistence."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from privest.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str = "evt_1", kind: EventKind = EventKind.FUNDS_DEPOSITED) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        actor_id="0x78731D3Ca6b7E34aC0F824c42a7cC18A495cabaB",
        payload={"amount": "10", "timestamp": 1790000000},
        timestamp_utc=_now(),
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event().event_hash.startswith("sha256:")

    def test_hash_covers_payload(self) -> None:
        other = EventRecord.create(
            event_id="evt_1",
            event_kind=EventKind.FUNDS_DEPOSITED,
            actor_id="0x78731D3Ca6b7E34aC0F824c42a7cC18A495cabaB",
            payload={"amount": "11", "timestamp": 1790000000},
            timestamp_utc=_now(),
        )
        assert other.event_hash != _event().event_hash

    def test_timestamp_format(self) -> None:
        assert _event().timestamp_utc == "2026-10-01T12:00:00Z"


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event("evt_1"))
        log.append(_event("evt_2", EventKind.DIVIDEND_CLAIMED))
        assert log.count == 2
        assert [e.event_id for e in log.events(EventKind.DIVIDEND_CLAIMED)] == ["evt_2"]
        assert log.last_event.event_id == "evt_2"

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event("evt_1"))
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(_event("evt_1"))
        assert log.count == 1

    def test_events_returns_copy(self) -> None:
        log = EventLog()
        log.append(_event())
        log.events().clear()
        assert log.count == 1


class TestEventLogPersistence:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(path)
        log.append(_event("evt_1"))
        log.append(_event("evt_2", EventKind.PAYOUTS_PROCESSED))

        restored = EventLog(path)
        assert restored.events() == log.events()

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "events.jsonl"
        EventLog(path).append(_event())
        assert path.exists()

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(path).append(_event())
        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["amount"] = "1000000"
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(path)

    def test_replayed_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(path).append(_event())
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(path)

    def test_append_many_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(path)
        log.append_many([_event("evt_1"), _event("evt_2", EventKind.DIVIDEND_CLAIMED)])
        assert log.count == 2
        assert EventLog(path).events() == log.events()

    def test_append_many_duplicate_within_batch(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(path)
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append_many([_event("evt_1"), _event("evt_1")])
        assert log.count == 0
        assert not path.exists()

    def test_failed_write_is_cut_back(self, tmp_path: Path) -> None:
        class TornWriteLog(EventLog):
            fail = False

            def _write(self, data: bytes) -> None:
                if self.fail:
                    with self._storage_path.open("ab") as f:
                        f.write(data[:10])
                    raise OSError("disk full")
                super()._write(data)

        path = tmp_path / "events.jsonl"
        log = TornWriteLog(path)
        log.append(_event("evt_1"))
        before = path.read_bytes()

        log.fail = True
        with pytest.raises(OSError):
            log.append_many([_event("evt_2"), _event("evt_3")])

        assert path.read_bytes() == before
        assert [e.event_id for e in log.events()] == ["evt_1"]
        assert EventLog(path).count == 1

    def test_unknown_kind_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        record = _event().to_dict()
        record["event_kind"] = "mint_tokens"
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")
        with pytest.raises(ValueError):
            EventLog(path)
