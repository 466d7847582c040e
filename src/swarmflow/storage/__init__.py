# storage - Agent memory backends
from .base import MemoryEntry, MemoryStore, InMemoryMemoryStore

__all__ = [
    "MemoryEntry",
    "MemoryStore",
    "InMemoryMemoryStore",
]
