"""
Item Lock Interface.

Every mutation of one item's publication state or stage runs while holding
that item's lock. The in-process registry covers a single process; the
SQLite lease registry extends the same exclusion to every process sharing
the database file.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol


class ItemLockPort(Protocol):
    """Per-item mutual exclusion."""

    def hold(self, item_id: str, timeout: float | None = None) -> AbstractContextManager[None]:
        """
        Hold the item's lock.

        A timeout of 0 tries once without waiting; None uses the
        configured default. Raises ItemBusyError on timeout.
        """
        ...

    def is_held(self, item_id: str) -> bool:
        """True while some holder has the item's lock."""
        ...
