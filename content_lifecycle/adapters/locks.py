"""
Per-item lock registry.

Serializes every mutation of one item's publication state or stage inside
this process: manual API calls, dispatcher firings and bulk job workers all
go through the same registry. Different items never contend.

Locks are created on demand and dropped once no thread holds or waits for
them, so the registry does not grow with the number of items ever touched.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from content_lifecycle.core.errors import ItemBusyError


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class ItemLockRegistry:
    """Keyed mutual exclusion with bounded acquisition."""

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self._timeout = timeout_seconds
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, item_id: str, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the lock for item_id.

        Raises:
            ItemBusyError: lock not acquired within the timeout
        """
        wait = self._timeout if timeout is None else timeout
        entry = self._checkout(item_id)
        try:
            if not entry.lock.acquire(timeout=wait):
                raise ItemBusyError(item_id, wait)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(item_id, entry)

    def is_held(self, item_id: str) -> bool:
        with self._guard:
            entry = self._entries.get(item_id)
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, item_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(item_id)
            if entry is None:
                entry = _Entry()
                self._entries[item_id] = entry
            entry.users += 1
            return entry

    def _checkin(self, item_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(item_id, None)
