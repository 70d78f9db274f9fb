"""Object state store with one exclusion gate per object identifier.

Entries are created on first reference and never evicted. Creation goes
through a single registry lock, so two callers racing on an unseen object
identifier always end up sharing one state record and one gate.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from conflict_arbiter.arbitration.models import ObjectState


@dataclass
class _StoreEntry:
    state: ObjectState
    gate: threading.Lock = field(default_factory=threading.Lock)


class ObjectStateStore:
    """Mapping from object identifier to its state and exclusion gate."""

    def __init__(self) -> None:
        self._entries: dict[str, _StoreEntry] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)

    def __contains__(self, object_id: object) -> bool:
        with self._registry_lock:
            return object_id in self._entries

    def object_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._entries)

    def _get_or_create(self, object_id: str, max_queue_size: int) -> _StoreEntry:
        with self._registry_lock:
            entry = self._entries.get(object_id)
            if entry is None:
                entry = _StoreEntry(state=ObjectState(object_id=object_id, max_queue_size=max_queue_size))
                self._entries[object_id] = entry
            return entry

    def _get(self, object_id: str) -> _StoreEntry | None:
        with self._registry_lock:
            return self._entries.get(object_id)

    @contextmanager
    def locked(self, object_id: str, max_queue_size: int) -> Iterator[ObjectState]:
        """Hold the object's gate, creating its state on first use.

        ``max_queue_size`` only applies when the state is created here.
        """
        entry = self._get_or_create(object_id, max_queue_size)
        with entry.gate:
            yield entry.state

    @contextmanager
    def locked_existing(self, object_id: str) -> Iterator[ObjectState | None]:
        """Hold the gate of an already referenced object; yields None otherwise."""
        entry = self._get(object_id)
        if entry is None:
            yield None
            return
        with entry.gate:
            yield entry.state
