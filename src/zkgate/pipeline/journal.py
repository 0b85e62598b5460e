"""Effect journal: all-or-nothing rollback for a protected invocation.

The protected operation records an undo action for every effect it
applies. If the invocation aborts at any later point (including a
failing post-check), the journal replays the undo actions in reverse,
restoring the state seen before the invocation started.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, MutableMapping

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class JournalEntry:
    description: str
    undo: Callable[[], None]


class EffectJournal:
    """Ordered log of undo actions for one invocation.

    Usage:
        journal.set_item(balances, "alice", balances["alice"] - 10)
        journal.record(lambda: outbox.pop(), "queue notification")
    """

    def __init__(self) -> None:
        self._entries: list[JournalEntry] = []
        self._closed = False

    def record(self, undo: Callable[[], None], description: str = "") -> None:
        """Record the undo action for an effect that has just been applied."""
        if self._closed:
            raise RuntimeError("Journal already committed or rolled back")
        self._entries.append(JournalEntry(description=description, undo=undo))

    def set_item(self, mapping: MutableMapping[Any, Any], key: Any, value: Any) -> None:
        """Assign mapping[key] = value, recording how to restore it."""
        previous = mapping.get(key, _MISSING)
        mapping[key] = value

        def undo() -> None:
            if previous is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = previous

        self.record(undo, f"set {key!r}")

    def delete_item(self, mapping: MutableMapping[Any, Any], key: Any) -> None:
        """Delete mapping[key], recording how to restore it."""
        previous = mapping.pop(key)

        def undo() -> None:
            mapping[key] = previous

        self.record(undo, f"delete {key!r}")

    def __len__(self) -> int:
        return len(self._entries)

    def commit(self) -> None:
        """Keep every effect. The journal accepts no further entries."""
        self._closed = True
        self._entries.clear()

    def rollback(self) -> None:
        """Undo every recorded effect, newest first.

        Every undo action runs even if an earlier one fails; the first
        failure is re-raised once all have been attempted.
        """
        self._closed = True
        first_error: BaseException | None = None
        while self._entries:
            entry = self._entries.pop()
            try:
                entry.undo()
            except Exception as exc:
                logger.error("Undo failed for %s: %s", entry.description or "effect", exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error
