"""The debug log: an ordered, clearable record of lifecycle events.

Events are stored in the order they are appended (the order the client
produced them). Events of one exchange therefore always appear in their
chronological order, while events of concurrent exchanges may interleave.
``by_exchange()`` gives the exchange-major view.
"""

from __future__ import annotations

import json
import logging
import threading
import typing as _t

from pydantic import BaseModel, ConfigDict

from .events import LifecycleEvent

__all__ = [
    "DebugLog",
    "Listener",
    "LogEntry",
    "LoggingListener",
]

logger = logging.getLogger(__name__)


class LogEntry(BaseModel):
    """One appended event with its position and owning exchange."""

    model_config = ConfigDict(frozen=True)

    seq: int
    exchange_id: str
    event: LifecycleEvent

    def to_record(self) -> dict[str, dict[str, _t.Any]]:
        return self.event.to_record()


Listener = _t.Callable[[LogEntry], None]


class DebugLog:
    """Append-only (until cleared) sequence of lifecycle events.

    A log is owned by whoever creates it and is handed to the tracker, so
    several independent logs can be used side by side. Listeners see entries
    in exactly the order they are stored, and may read from, clear or
    unsubscribe from the log while being notified.
    """

    def __init__(self, listeners: _t.Iterable[Listener] | None = None):
        self._entries: list[LogEntry] = []
        self._listeners: list[Listener] = list(listeners or [])
        self._lock = threading.Lock()
        # Serializes notification only; the data lock is released before listeners run.
        self._notify_lock = threading.RLock()
        self._seq = 0

    def append(self, exchange_id: str, event: LifecycleEvent) -> LogEntry:
        """Store an event and notify listeners. Used by the tracker."""
        with self._notify_lock:
            with self._lock:
                self._seq += 1
                entry = LogEntry(seq=self._seq, exchange_id=exchange_id, event=event)
                self._entries.append(entry)
                listeners = list(self._listeners)
            for listener in listeners:
                try:
                    listener(entry)
                except Exception:
                    logger.exception(f"Debug log listener {listener!r} failed on entry {entry.seq}")
        return entry

    def clear(self) -> None:
        """Drop all stored entries.

        In-flight exchanges keep being tracked and append to the emptied log.
        """
        with self._lock:
            self._entries.clear()
            self._seq = 0

    def entries(self) -> list[LogEntry]:
        with self._lock:
            return list(self._entries)

    def events(self) -> list[LifecycleEvent]:
        """All events in append order."""
        return [entry.event for entry in self.entries()]

    def records(self) -> list[dict[str, dict[str, _t.Any]]]:
        """All events as ``{kind: fields}`` dictionaries, in append order."""
        return [entry.to_record() for entry in self.entries()]

    def for_exchange(self, exchange_id: str) -> list[LifecycleEvent]:
        return [entry.event for entry in self.entries() if entry.exchange_id == exchange_id]

    def exchange_ids(self) -> list[str]:
        """Exchange ids in order of their first appearance."""
        return list(dict.fromkeys(entry.exchange_id for entry in self.entries()))

    def by_exchange(self) -> list[LifecycleEvent]:
        """Events flattened exchange-major, then in event order."""
        grouped: dict[str, list[LifecycleEvent]] = {}
        for entry in self.entries():
            grouped.setdefault(entry.exchange_id, []).append(entry.event)
        return [event for events in grouped.values() for event in events]

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener`` with every entry appended from now on."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> _t.Iterator[LifecycleEvent]:
        return iter(self.events())

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(entries={len(self)})"


class LoggingListener:
    """A listener that writes every appended event to the ``reqdebug.events`` logger."""

    def __init__(self, log_level: int = logging.DEBUG, logger_name: str = "reqdebug.events"):
        self.log_level = log_level
        self._logger = logging.getLogger(logger_name)

    def __call__(self, entry: LogEntry) -> None:
        if not self._logger.isEnabledFor(self.log_level):
            return
        self._logger.log(
            self.log_level,
            f"[{entry.exchange_id}] {json.dumps(entry.to_record(), sort_keys=True)}",
        )
