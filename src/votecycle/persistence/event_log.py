"""Append-only event log — the default notification sink.

Every committed command produces one or more event records, appended
here only after the mutation is fully applied. Events are immutable once
written. The log can be kept in memory or mirrored to a JSONL file (one
JSON object per line) and reloaded with integrity verification.

Any object with an ``append(event)`` method can stand in for the log;
see EventSink.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol


class EventKind(str, enum.Enum):
    """Classification of workflow notifications."""
    VOTER_REGISTERED = "voter_registered"
    PHASE_CHANGED = "phase_changed"
    PROPOSAL_REGISTERED = "proposal_registered"
    VOTE_CAST = "vote_cast"
    VOTE_CHANGED = "vote_changed"
    RESULT_COMPUTED = "result_computed"
    CYCLE_RESET = "cycle_reset"
    CONFIGURATION_CHANGED = "configuration_changed"


# Keys every stored payload of a kind must carry.
PAYLOAD_KEYS: dict[EventKind, frozenset[str]] = {
    EventKind.VOTER_REGISTERED: frozenset({"voter_id"}),
    EventKind.PHASE_CHANGED: frozenset({"previous", "new"}),
    EventKind.PROPOSAL_REGISTERED: frozenset({"proposal_id"}),
    EventKind.VOTE_CAST: frozenset({"voter_id", "proposal_id"}),
    EventKind.VOTE_CHANGED: frozenset({"voter_id", "previous_proposal_id", "proposal_id"}),
    EventKind.RESULT_COMPUTED: frozenset({"winning_proposal_id", "vote_count"}),
    EventKind.CYCLE_RESET: frozenset({"cycle"}),
    EventKind.CONFIGURATION_CHANGED: frozenset({"allow_vote_update"}),
}


def _canonical_hash(
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
    """A single immutable notification.

    event_hash is computed at creation time over the canonical JSON of
    the other fields.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

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
        ts_str = ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, actor_id, payload,
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


class EventSink(Protocol):
    """Anything the service can publish notifications to."""

    def append(self, event: EventRecord) -> None: ...


def _parse_record(data: dict[str, Any], line_num: int) -> EventRecord:
    """Rebuild one stored record, rejecting tampered or malformed lines."""
    event_id = data["event_id"]
    expected = _canonical_hash(
        event_id,
        data["event_kind"],
        data["timestamp_utc"],
        data["actor_id"],
        data["payload"],
    )
    if data["event_hash"] != expected:
        raise ValueError(
            f"Integrity check failed (line {line_num}): event {event_id} "
            f"stored hash {data['event_hash']} != computed {expected}"
        )
    kind = EventKind(data["event_kind"])
    missing = PAYLOAD_KEYS[kind] - set(data["payload"])
    if missing:
        raise ValueError(
            f"Malformed {kind.value} payload (line {line_num}): "
            f"missing {sorted(missing)}"
        )
    return EventRecord(
        event_id=event_id,
        event_kind=kind,
        timestamp_utc=data["timestamp_utc"],
        actor_id=data["actor_id"],
        payload=data["payload"],
        event_hash=data["event_hash"],
    )


def read_records(path: Path) -> list[EventRecord]:
    """Read and verify every record of a JSONL event file.

    Fail-closed: a hash mismatch, an unknown kind, a payload without its
    required keys or a repeated event id raises ValueError.
    """
    records: list[EventRecord] = []
    seen: set[str] = set()
    with path.open("r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            record = _parse_record(json.loads(line), line_num)
            if record.event_id in seen:
                raise ValueError(
                    f"Duplicate event ID on recovery (line {line_num}): {record.event_id}"
                )
            seen.add(record.event_id)
            records.append(record)
    return records


class EventLog:
    """Append-only event log, in memory or mirrored to a JSONL file.

    When several processes share one file, call refresh() under the
    store lock before appending so ids and counts reflect their writes.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._records: list[EventRecord] = []
        self._ids: set[str] = set()
        self.refresh()

    def refresh(self) -> None:
        """Reload from the backing file. A failed reload leaves the log as it was."""
        if self._storage_path is None or not self._storage_path.exists():
            return
        records = read_records(self._storage_path)
        self._records = records
        self._ids = {r.event_id for r in records}

    def append(self, event: EventRecord) -> None:
        """Append one record. Raises ValueError on a reused event id."""
        if event.event_id in self._ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if self._storage_path is not None:
            line = json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        self._records.append(event)
        self._ids.add(event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        return [r for r in self._records if kind is None or r.event_kind == kind]

    @property
    def count(self) -> int:
        return len(self._records)
