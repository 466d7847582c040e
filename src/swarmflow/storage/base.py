# base.py - Memory Store Protocol & InMemoryMemoryStore
#
# Provides:
#   - MemoryEntry: one remembered event (tool outcome, task result, ...)
#   - MemoryStore: Protocol that any memory backend must implement
#   - InMemoryMemoryStore: bounded FIFO short-term buffer + keyed long-term log

import json
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Protocol, runtime_checkable, Any, Optional


@dataclass
class MemoryEntry:
    content: str
    type: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    importance: float = 0.5
    references: list[str] = field(default_factory=list)


@runtime_checkable
class MemoryStore(Protocol):
    """
    Protocol for agent memory backends.

    The engine calls append() after notable events (tool executions,
    task outcomes). It never reads memory back on its own.
    """

    def append(self, entry: MemoryEntry) -> None:
        ...

    def recent(self, n: int) -> list[MemoryEntry]:
        ...

    def search(self, memory_type: str, filter: Optional[dict[str, Any]] = None) -> list[MemoryEntry]:
        ...

    def serialize(self) -> str:
        ...

    def deserialize(self, data: str) -> None:
        ...


class InMemoryMemoryStore:
    """
    Dict-based memory store. Zero config, dies with process.

    Short-term memory is a FIFO buffer of at most `max_short_term`
    entries; long-term memory keeps every typed entry, grouped by type.
    Safe to share between concurrently running agents.
    """

    def __init__(self, max_short_term: int = 100):
        self.max_short_term = max_short_term
        self._short_term: list[MemoryEntry] = []
        self._long_term: dict[str, list[MemoryEntry]] = {}
        self._lock = threading.Lock()

    def append(self, entry: MemoryEntry) -> None:
        with self._lock:
            self._short_term.append(entry)
            if len(self._short_term) > self.max_short_term:
                # Drop oldest once capacity is exceeded
                self._short_term = self._short_term[-self.max_short_term:]
            if entry.type:
                self._long_term.setdefault(entry.type, []).append(entry)

    def recent(self, n: int) -> list[MemoryEntry]:
        with self._lock:
            if n <= 0:
                return []
            return list(self._short_term[-n:])

    def search(self, memory_type: str, filter: Optional[dict[str, Any]] = None) -> list[MemoryEntry]:
        with self._lock:
            entries = self._long_term.get(memory_type, [])
            if not filter:
                return list(entries)
            return [
                e for e in entries
                if all(k in e.context and e.context[k] == v for k, v in filter.items())
            ]

    def serialize(self) -> str:
        with self._lock:
            return json.dumps({
                "short_term": [asdict(e) for e in self._short_term],
                "long_term": {
                    t: [asdict(e) for e in entries]
                    for t, entries in self._long_term.items()
                },
            }, default=str)

    def deserialize(self, data: str) -> None:
        loaded = json.loads(data)
        short_term = [MemoryEntry(**e) for e in loaded.get("short_term", [])]
        long_term = {
            t: [MemoryEntry(**e) for e in entries]
            for t, entries in loaded.get("long_term", {}).items()
        }
        with self._lock:
            self._short_term = short_term
            self._long_term = long_term
