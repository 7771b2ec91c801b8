"""
Ordered, durable log of registry state changes.

Events are the only way external observers (indexers, notifiers) learn about
changes; the registry has no callbacks or subscriptions.
"""
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import portalocker

from .models import EventType, RegistryEvent

logger = logging.getLogger(__name__)


class EventLog:
    """
    Append-only event log with gapless sequence numbers starting at 1.

    With a ``path`` every event is also appended to a JSON-lines file that
    may be shared by several logs (one per process). The file is the source
    of truth: appends and truncations re-read it under the file lock, so
    sequence numbers stay gapless across writers.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._events: List[RegistryEvent] = []
        self._lock = threading.RLock()
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.reload()

    def _get_lock_path(self) -> str:
        return str(self.path) + ".lock"

    def _read_file(self) -> List[RegistryEvent]:
        """Parse the log file; caller holds the file lock."""
        if not self.path.exists():
            return []
        events = []
        with open(self.path, "r") as f:
            for line in f:
                line = line.strip()
                if line:
                    events.append(RegistryEvent.model_validate_json(line))
        return events

    def reload(self) -> None:
        """Pick up events written by other logs sharing the file. No-op in memory."""
        if self.path is None:
            return
        with self._lock:
            with portalocker.Lock(self._get_lock_path(), timeout=10):
                self._events = self._read_file()
        logger.debug(f"Loaded {len(self._events)} events from {self.path}")

    def append(
        self,
        event_type: EventType,
        identity_key: Optional[str],
        timestamp: int,
        **data: Any
    ) -> RegistryEvent:
        """Record an event and return it with its sequence number."""
        with self._lock:
            if self.path is None:
                event = self._next_event(event_type, identity_key, timestamp, data)
            else:
                with portalocker.Lock(self._get_lock_path(), timeout=10):
                    self._events = self._read_file()
                    event = self._next_event(event_type, identity_key, timestamp, data)
                    with open(self.path, "a") as f:
                        f.write(event.model_dump_json(by_alias=True) + "\n")
            self._events.append(event)
        logger.debug(f"Event #{event.sequence} {event.event_type.value}")
        return event

    def _next_event(
        self,
        event_type: EventType,
        identity_key: Optional[str],
        timestamp: int,
        data: Dict[str, Any]
    ) -> RegistryEvent:
        return RegistryEvent(
            sequence=len(self._events) + 1,
            event_type=event_type,
            identity_key=identity_key,
            timestamp=timestamp,
            data=data,
        )

    def truncate(self, sequence: int) -> None:
        """
        Drop every event numbered after ``sequence``.

        Used when the operation that emitted them rolls back; events at or
        below the mark, whoever wrote them, are kept.
        """
        with self._lock:
            if self.path is None:
                del self._events[sequence:]
                return
            with portalocker.Lock(self._get_lock_path(), timeout=10):
                current = self._read_file()
                kept = [e for e in current if e.sequence <= sequence]
                if len(kept) != len(current):
                    with open(self.path, "w") as f:
                        for event in kept:
                            f.write(event.model_dump_json(by_alias=True) + "\n")
                self._events = kept

    def since(self, sequence: int) -> List[RegistryEvent]:
        """Events with a sequence number greater than ``sequence``."""
        with self._lock:
            return list(self._events[sequence:])

    def of_type(self, event_type: EventType) -> List[RegistryEvent]:
        with self._lock:
            return [e for e in self._events if e.event_type == event_type]

    def for_identity(self, identity_key: str) -> List[RegistryEvent]:
        with self._lock:
            return [e for e in self._events if e.identity_key == identity_key]

    def as_dicts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [e.model_dump(by_alias=True, mode="json") for e in self._events]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))

    @property
    def last(self) -> Optional[RegistryEvent]:
        return self._events[-1] if self._events else None
