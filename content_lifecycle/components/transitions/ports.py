"""
Transitions component port definitions.
"""

from content_lifecycle.core.ports import ContentRepositoryPort, ItemLockPort

__all__ = ["ContentRepositoryPort", "ItemLockPort"]
