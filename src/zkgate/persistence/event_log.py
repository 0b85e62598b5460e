"""Audit event stream for the registry, verifier and pipeline.

Indexers and auditors read this stream; nothing in zkgate reads it back to
make a decision. Records are hashed over their canonical JSON form when
created, so a persisted stream can be checked line by line on reload.

Ordering rule: a success event is appended only after the operation it
describes has passed every check, and before the operation's effects
become visible. A rejected verification leaves no trace here (the
failure goes to the caller and to operational logging).

An append writes the JSONL mirror first and the in-memory stream second,
so a failed write leaves both untouched. ``deferred()`` holds a thread's
appends until a block exits cleanly, for callers that must make state
durable before the events describing it are published.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class EventKind(str, enum.Enum):
    MODEL_REGISTERED = "model_registered"
    MODEL_UPDATED = "model_updated"
    MODEL_DEPRECATED = "model_deprecated"
    INFERENCE_VERIFIED = "inference_verified"
    INFERENCE_STORED = "inference_stored"
    INVOCATION_COMMITTED = "invocation_committed"
    INVOCATION_ABORTED = "invocation_aborted"


def _record_hash(fields: dict[str, Any]) -> str:
    canonical = json.dumps(fields, sort_keys=True, ensure_ascii=False)
    return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class EventRecord:
    """One audit event. event_hash covers every other field."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        event_id: Optional[str] = None,
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        fields = {
            "event_id": event_id or f"evt_{uuid.uuid4().hex}",
            "event_kind": event_kind.value,
            "timestamp_utc": (
                timestamp_utc or datetime.now(timezone.utc)
            ).strftime(TIMESTAMP_FORMAT),
            "actor_id": actor_id,
            "payload": payload,
        }
        return EventRecord(
            event_id=fields["event_id"],
            event_kind=event_kind,
            timestamp_utc=fields["timestamp_utc"],
            actor_id=actor_id,
            payload=payload,
            event_hash=_record_hash(fields),
        )

    def hashed_fields(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.hashed_fields(), "event_hash": self.event_hash}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> EventRecord:
        """Rebuild a record, refusing one whose hash does not match its fields.

        Raises:
            ValueError: Hash mismatch or unknown event kind.
        """
        record = EventRecord(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            actor_id=data["actor_id"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )
        computed = _record_hash(record.hashed_fields())
        if computed != record.event_hash:
            raise ValueError(
                f"Integrity check failed for event {record.event_id}: "
                f"recorded {record.event_hash}, computed {computed}"
            )
        return record


class EventLog:
    """In-memory event stream, optionally mirrored to a JSONL file.

    Appends are serialised under a lock, so the registry, verifiers and
    pipelines of one process can share a single log. Event ids are unique;
    a repeated id is refused rather than overwritten.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._events: list[EventRecord] = []
        self._seen: set[str] = set()
        self._lock = threading.Lock()
        self._local = threading.local()
        if storage_path is not None and storage_path.exists():
            self._replay(storage_path)

    def emit(
        self,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> EventRecord:
        """Create an event and append it."""
        event = EventRecord.create(event_kind, actor_id, payload)
        self.append(event)
        return event

    def append(self, event: EventRecord) -> None:
        """Append a record.

        Raises:
            ValueError: The event id is already in the log.
            OSError: The JSONL mirror could not be written; the event is
                not in the log.
        """
        pending: Optional[list[EventRecord]] = getattr(self._local, "pending", None)
        with self._lock:
            if event.event_id in self._seen or (
                pending is not None
                and any(e.event_id == event.event_id for e in pending)
            ):
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            if pending is not None:
                pending.append(event)
                return
            self._commit([event])

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """Hold this thread's appends until the block exits.

        On a clean exit the held events are written in one batch; if the
        block raises they are dropped. Nested blocks join the outermost one.

        Usage:
            with log.deferred():
                registry.update_model(...)
                store.save(...)
        """
        if getattr(self._local, "pending", None) is not None:
            yield
            return
        pending: list[EventRecord] = []
        self._local.pending = pending
        try:
            yield
        finally:
            self._local.pending = None
        if pending:
            with self._lock:
                self._commit(pending)

    def events(
        self,
        kind: Optional[EventKind] = None,
        actor_id: Optional[str] = None,
    ) -> list[EventRecord]:
        """Snapshot of the stream, oldest first, optionally filtered."""
        with self._lock:
            snapshot = list(self._events)
        return [
            e for e in snapshot
            if (kind is None or e.event_kind == kind)
            and (actor_id is None or e.actor_id == actor_id)
        ]

    def events_since(
        self,
        since_utc: str,
        kind: Optional[EventKind] = None,
    ) -> list[EventRecord]:
        return [e for e in self.events(kind) if e.timestamp_utc >= since_utc]

    def event_hashes(self, kind: Optional[EventKind] = None) -> list[str]:
        return [e.event_hash for e in self.events(kind)]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        with self._lock:
            return self._events[-1] if self._events else None

    def _commit(self, events: list[EventRecord]) -> None:
        # Caller holds self._lock. Disk first, memory second.
        if self._storage_path is not None:
            lines = "".join(
                json.dumps(e.to_dict(), sort_keys=True, ensure_ascii=False) + "\n"
                for e in events
            )
            with self._storage_path.open("a", encoding="utf-8") as handle:
                handle.write(lines)
        self._events.extend(events)
        self._seen.update(e.event_id for e in events)

    def _replay(self, path: Path) -> None:
        """Load a persisted stream. Any bad or repeated line aborts the load."""
        with path.open("r", encoding="utf-8") as handle:
            for line_num, line in enumerate(handle, 1):
                if not line.strip():
                    continue
                try:
                    event = EventRecord.from_dict(json.loads(line))
                except ValueError as exc:
                    raise ValueError(f"{path} line {line_num}: {exc}") from exc
                if event.event_id in self._seen:
                    raise ValueError(
                        f"{path} line {line_num}: Duplicate event ID {event.event_id}"
                    )
                self._events.append(event)
                self._seen.add(event.event_id)
        logger.debug("Replayed %d events from %s", len(self._events), path)
